"""Inference engine contract and LangChain-based adapters."""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any, Protocol

from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from loguru import logger

from rag_router.config import SamplingConfig
from rag_router.errors import ConfigurationError
from rag_router.types import ChatMessage

_MESSAGE_TYPES: dict[str, type[BaseMessage]] = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}


class InferenceEngine(Protocol):
    """Opaque text generation / embedding collaborator."""

    def generate(self, messages: list[ChatMessage], sampling: SamplingConfig) -> str:
        """Generate a reply for an ordered message list."""

    def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts."""


ModelLoader = Callable[[str], InferenceEngine]


class LangChainEngine:
    """Adapts a LangChain chat model and/or embeddings to `InferenceEngine`.

    Either side may be omitted: an embedding-only engine raises
    `ConfigurationError` on `generate`, and vice versa.
    """

    def __init__(
        self,
        *,
        chat_model: BaseChatModel | None = None,
        embeddings: Embeddings | None = None,
    ) -> None:
        if chat_model is None and embeddings is None:
            raise ConfigurationError("LangChainEngine needs a chat model or embeddings")
        self.chat_model = chat_model
        self.embeddings = embeddings

    def generate(self, messages: list[ChatMessage], sampling: SamplingConfig) -> str:
        if self.chat_model is None:
            raise ConfigurationError("Engine has no chat model")
        kwargs = sampling.call_kwargs()
        runnable: Any = self.chat_model.bind(**kwargs) if kwargs else self.chat_model
        response = runnable.invoke(to_langchain_messages(messages))
        return _message_text(response)

    def embed(self, texts: list[str]) -> list[list[float]]:
        if self.embeddings is None:
            raise ConfigurationError("Engine has no embedding model")
        return [list(vector) for vector in self.embeddings.embed_documents(list(texts))]


def to_langchain_messages(messages: list[ChatMessage]) -> list[BaseMessage]:
    return [_MESSAGE_TYPES[message.role](content=message.text) for message in messages]


def openai_loader(api_key: str | None = None) -> ModelLoader:
    """Build a loader resolving model names to OpenAI chat + embedding clients.

    Construction is lazy on the network side: nothing is called until the
    first `generate`/`embed`.
    """

    key = api_key or os.getenv("OPENAI_API_KEY")
    if not key:
        raise ConfigurationError("OPENAI_API_KEY is not configured")
    try:
        from langchain_openai import ChatOpenAI, OpenAIEmbeddings
    except ImportError as exc:  # pragma: no cover - optional extra
        raise ConfigurationError(
            "langchain-openai is not installed", details="pip install rag-router[openai]"
        ) from exc

    def _load(name: str) -> InferenceEngine:
        logger.debug("Creating OpenAI engine for model {}", name)
        return LangChainEngine(
            chat_model=ChatOpenAI(model=name, api_key=key),
            embeddings=OpenAIEmbeddings(model=name, api_key=key),
        )

    return _load


def _message_text(response: Any) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()
    return str(content)
