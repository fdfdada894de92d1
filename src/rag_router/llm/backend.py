"""Shared inference backend and persistent model handles."""

from __future__ import annotations

import threading
from math import sqrt
from typing import TYPE_CHECKING

from loguru import logger

from rag_router.config import SamplingConfig
from rag_router.errors import CapacityError, CollaboratorError, ConfigurationError, RouterError
from rag_router.llm.engines import InferenceEngine, ModelLoader
from rag_router.obs.tracing import Timer
from rag_router.types import ChatMessage

if TYPE_CHECKING:
    from rag_router.routing.sessions import Session


class InferenceBackend:
    """Explicit process-wide context that owns loaded engines.

    Construct one at process start and pass it to every route and refiner.
    Engines are loaded once per model name and shared by every handle that
    asks for that name.
    """

    def __init__(
        self,
        loader: ModelLoader | None = None,
        engines: dict[str, InferenceEngine] | None = None,
    ) -> None:
        self._loader = loader
        self._engines: dict[str, InferenceEngine] = dict(engines or {})
        self._lock = threading.Lock()

    def register(self, name: str, engine: InferenceEngine) -> None:
        with self._lock:
            self._engines[name] = engine

    def names(self) -> set[str]:
        with self._lock:
            return set(self._engines)

    def engine(self, name: str) -> InferenceEngine:
        with self._lock:
            engine = self._engines.get(name)
            if engine is not None:
                return engine
            if self._loader is None:
                raise ConfigurationError(f"Model not available: {name}", model=name)
            try:
                engine = self._loader(name)
            except RouterError:
                raise
            except Exception as exc:
                raise ConfigurationError(
                    f"Failed to load model: {name}", details=str(exc), model=name
                ) from exc
            self._engines[name] = engine
            logger.info("Loaded model {}", name)
            return engine

    def load_model(
        self,
        name: str,
        system_prompt: str,
        sampling: SamplingConfig | None = None,
    ) -> "ModelHandle":
        return ModelHandle(
            name=name,
            engine=self.engine(name),
            system_prompt=system_prompt,
            sampling=sampling,
        )


class ModelHandle:
    """A loaded model plus its own conversation history.

    A handle is not reentrant: concurrent `chat` calls on one handle have no
    defined history order, so callers serialise access (routes hold a lock).
    """

    def __init__(
        self,
        *,
        name: str,
        engine: InferenceEngine,
        system_prompt: str,
        sampling: SamplingConfig | None = None,
    ) -> None:
        self.name = name
        self.engine = engine
        self.system_prompt = system_prompt
        self.sampling = sampling or SamplingConfig()
        self._messages: list[ChatMessage] = [ChatMessage("system", system_prompt)]

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    def reset_messages(self, system_prompt: str | None = None) -> None:
        self._messages = [ChatMessage("system", system_prompt or self.system_prompt)]

    def add_inference_to_prompt(self, data: str) -> None:
        self._messages.append(ChatMessage("assistant", data))

    def chat(self, prompt: str, sampling: SamplingConfig | None = None) -> str:
        """Generate with history; the exchange is recorded only on success."""
        user = ChatMessage("user", prompt)
        reply = self._generate([*self._messages, user], sampling)
        self._messages.extend([user, ChatMessage("assistant", reply)])
        return reply

    def ask(self, prompt: str, sampling: SamplingConfig | None = None) -> str:
        """Generate against the current history without recording the exchange."""
        return self._generate([*self._messages, ChatMessage("user", prompt)], sampling)

    def chat_in(
        self, session: "Session", prompt: str, sampling: SamplingConfig | None = None
    ) -> str:
        """Generate using `session` as the conversation context."""
        remaining = session.remaining()
        if remaining is not None and remaining < 2:
            raise CapacityError(
                "Session is full", details=f"room for {remaining} more message(s)"
            )
        reply = self._generate([*session.messages, ChatMessage("user", prompt)], sampling)
        session.append_user(prompt)
        session.append_assistant(reply)
        return reply

    def embed(self, texts: list[str]) -> list[list[float]]:
        try:
            vectors = self.engine.embed(list(texts))
        except RouterError:
            raise
        except Exception as exc:
            raise CollaboratorError(
                f"Embedding failed on model {self.name}", details=str(exc), model=self.name
            ) from exc
        if len(vectors) != len(texts):
            raise CollaboratorError(
                f"Model {self.name} returned {len(vectors)} vectors for {len(texts)} texts"
            )
        return [_normalize(vector) for vector in vectors]

    def _generate(self, messages: list[ChatMessage], sampling: SamplingConfig | None) -> str:
        try:
            with Timer() as timer:
                reply = self.engine.generate(messages, sampling or self.sampling)
        except RouterError:
            raise
        except Exception as exc:
            raise CollaboratorError(
                f"Generation failed on model {self.name}", details=str(exc), model=self.name
            ) from exc
        logger.debug(
            "Model {} replied in {:.1f} ms ({} messages)",
            self.name,
            timer.elapsed_ms,
            len(messages),
        )
        return reply


def _normalize(vector: list[float]) -> list[float]:
    norm = sqrt(sum(value * value for value in vector))
    if norm == 0:
        return [float(value) for value in vector]
    return [value / norm for value in vector]
