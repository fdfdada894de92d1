"""Named conversation histories independent of any route."""

from __future__ import annotations

import threading

from loguru import logger

from rag_router.errors import CapacityError, NotFoundError
from rag_router.types import ChatMessage, Role


class Session:
    """An ordered message history with an optional length cap.

    With `max_length` set, a session accepts exactly `max_length` appends
    after its seed: the system prompt given at construction, if any, does not
    count against the cap. Rejected appends leave the history untouched.
    """

    def __init__(self, system_prompt: str | None = None, max_length: int | None = None) -> None:
        if max_length is not None and max_length < 0:
            raise ValueError("max_length must not be negative")
        self.max_length = max_length
        self.lock = threading.RLock()
        self._messages: list[ChatMessage] = []
        if system_prompt is not None:
            self._messages.append(ChatMessage("system", system_prompt))
        self._seeded = len(self._messages)

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def remaining(self) -> int | None:
        """Appends still accepted, or None when the session is unbounded."""
        if self.max_length is None:
            return None
        return max(0, self.max_length - (len(self._messages) - self._seeded))

    def append_system(self, text: str) -> None:
        self._append("system", text)

    def append_user(self, text: str) -> None:
        self._append("user", text)

    def append_assistant(self, text: str) -> None:
        self._append("assistant", text)

    def _append(self, role: Role, text: str) -> None:
        if self.max_length is not None and len(self._messages) - self._seeded >= self.max_length:
            raise CapacityError(
                "Session is full",
                details=f"max_length={self.max_length}",
                role=role,
            )
        self._messages.append(ChatMessage(role, text))


class SessionStore:
    """Owns every named session; re-opening a name replaces it."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def open(
        self, name: str, system_prompt: str | None = None, max_length: int | None = None
    ) -> Session:
        session = Session(system_prompt, max_length)
        with self._lock:
            replaced = name in self._sessions
            self._sessions[name] = session
        logger.debug("Opened session {} (replaced={})", name, replaced)
        return session

    def get(self, name: str) -> Session:
        with self._lock:
            session = self._sessions.get(name)
        if session is None:
            raise NotFoundError(
                f"Session not found: {name}", resource_type="session", resource_id=name
            )
        return session

    def remove(self, name: str) -> None:
        with self._lock:
            if self._sessions.pop(name, None) is None:
                raise NotFoundError(
                    f"Session not found: {name}", resource_type="session", resource_id=name
                )
        logger.debug("Removed session {}", name)

    def names(self) -> set[str]:
        with self._lock:
            return set(self._sessions)
