"""Shared domain models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Literal

Role = Literal["system", "user", "assistant"]

ROLES: tuple[str, ...] = ("system", "user", "assistant")


@dataclass(slots=True, frozen=True)
class ChatMessage:
    """One entry of an ordered conversation history."""

    role: Role
    text: str


@dataclass(slots=True)
class StoreRecord:
    """A single Knowledge Store row (one chunk, string, or object)."""

    id: str
    vector: list[float]
    metadata: dict[str, Any]
    deleted: bool = False


@dataclass(slots=True)
class Neighbor:
    """A query result. Lower score means more relevant."""

    id: str
    score: float
    metadata: dict[str, Any]

    @property
    def text(self) -> str:
        return str(self.metadata.get("text", ""))


@dataclass(slots=True)
class TaggedDocument:
    """Catalog entry with free-form string tags."""

    id: str
    content: str
    tags: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_text(cls, content: str, **tags: str) -> "TaggedDocument":
        return cls(id=str(uuid.uuid4()), content=content, tags=dict(tags))

    def set_tag(self, key: str, value: str) -> None:
        self.tags[key] = value

    def to_text(self) -> str:
        """Render the document as plain text for embedding.

        Content comes first, followed by one ``key: value`` line per tag in
        insertion order.
        """

        lines = [self.content]
        lines.extend(f"{key}: {value}" for key, value in self.tags.items())
        return "\n".join(lines)
