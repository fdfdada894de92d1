import json
from collections.abc import Callable
from typing import Any

import pytest

from rag_router.config import RouterConfig, SamplingConfig
from rag_router.ingest import HashingEmbeddings
from rag_router.llm import InferenceBackend, LangChainEngine
from rag_router.routing.router import Router
from rag_router.types import ChatMessage


class ScriptedEngine:
    """Inference engine double: replays scripted replies and records every call."""

    def __init__(self, replies: list[str] | tuple[str, ...] = ()) -> None:
        self.replies = list(replies)
        self.calls: list[list[ChatMessage]] = []
        self.sampling: list[SamplingConfig] = []
        self._embeddings = HashingEmbeddings()

    def generate(self, messages: list[ChatMessage], sampling: SamplingConfig) -> str:
        self.calls.append(list(messages))
        self.sampling.append(sampling)
        if not self.replies:
            raise RuntimeError("no scripted reply left")
        return self.replies.pop(0)

    def embed(self, texts: list[str]) -> list[list[float]]:
        return self._embeddings.embed_documents(texts)


def recommended_payload(
    raw_prompt: str = "Tell me about the sky", **overrides: Any
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "raw_prompt": raw_prompt,
        "clarifying_questions": [],
        "prompts": {
            "deterministic": "List the sky's colour in one sentence.",
            "balanced": "Explain why the sky looks blue.",
            "creative": "Write a short poem about the colour of the sky.",
        },
        "rationale_bullets": ["Names the subject", "Sets the length", "Fixes the tone"],
        "suggested_parameters": {
            "temperature": 0.2,
            "top_p": 0.9,
            "max_tokens": 256,
            "stop": [],
            "seed": 7,
        },
        "quick_tests": ["sky at noon", "sky at dusk", "sky on Mars"],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def scripted_engine() -> type[ScriptedEngine]:
    return ScriptedEngine


@pytest.fixture
def refined_json() -> Callable[..., str]:
    def _make(raw_prompt: str = "Tell me about the sky", **overrides: Any) -> str:
        return json.dumps(recommended_payload(raw_prompt, **overrides))

    return _make


@pytest.fixture
def embedder() -> LangChainEngine:
    return LangChainEngine(embeddings=HashingEmbeddings())


@pytest.fixture
def make_router(tmp_path) -> Callable[..., tuple[Router, ScriptedEngine, ScriptedEngine]]:
    """Build a Router whose refiner and chat models are scripted engines.

    Model names: ``refiner`` (prompt model), ``embedder`` (default embedding
    model), and ``chat`` (for routes).
    """

    def _build(
        prompt_replies: list[str] | tuple[str, ...] = (),
        chat_replies: list[str] | tuple[str, ...] = (),
        **config: Any,
    ) -> tuple[Router, ScriptedEngine, ScriptedEngine]:
        prompt_engine = ScriptedEngine(prompt_replies)
        chat_engine = ScriptedEngine(chat_replies)
        backend = InferenceBackend(
            engines={
                "refiner": prompt_engine,
                "embedder": LangChainEngine(embeddings=HashingEmbeddings()),
                "chat": chat_engine,
            }
        )
        router_config = RouterConfig(
            prompt_model="refiner",
            default_embed_model="embedder",
            catalog_path=str(tmp_path / "catalog"),
            **config,
        )
        return Router(router_config, backend), prompt_engine, chat_engine

    return _build
