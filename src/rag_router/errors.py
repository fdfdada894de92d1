"""Typed failures returned by every router operation.

All exceptions inherit from `RouterError` and carry:
- message: human-readable summary
- details: optional extra context for the caller
- context: additional key-value pairs for debugging

Nothing in the package retries; callers decide whether to retry, degrade, or
abort based on the concrete type.
"""

from __future__ import annotations

from typing import Any


class RouterError(Exception):
    """Base exception for all router errors."""

    kind: str = "router_error"

    def __init__(self, message: str, details: str | None = None, **context: Any) -> None:
        self.message = message
        self.details = details
        self.context = context or None
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert the error to a JSON-serialisable payload."""
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
            "context": self.context,
        }


class ConfigurationError(RouterError):
    """A required model, path, or setting is missing or invalid."""

    kind = "configuration_error"


class NotFoundError(RouterError):
    """Unknown route, session, template, rule set, fact collection, or record."""

    kind = "not_found"

    def __init__(
        self,
        message: str,
        details: str | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        **context: Any,
    ) -> None:
        ctx = {**context}
        if resource_type:
            ctx["resource_type"] = resource_type
        if resource_id:
            ctx["resource_id"] = resource_id
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message, details, **ctx)


class SchemaError(RouterError):
    """A refinement response failed strict structural validation."""

    kind = "schema_error"


class StoreError(RouterError):
    """Knowledge Store lock or storage I/O failure."""

    kind = "store_error"


class CollaboratorError(RouterError):
    """The inference, rule, or template engine call failed."""

    kind = "collaborator_error"


class RuleParseError(CollaboratorError):
    """Rule source text could not be parsed."""

    kind = "rule_parse_error"


class CapacityError(RouterError):
    """A session append would exceed its configured maximum length."""

    kind = "capacity_error"


class ChunkingError(RouterError):
    """Text could not be split into chunks."""

    kind = "chunking_error"
