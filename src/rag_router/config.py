"""Configuration models for routes, stores, and the router."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from rag_router.errors import ConfigurationError

DEFAULT_CHUNK_SIZE = 1024
DEFAULT_CHUNK_OVERLAP = 128
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


class SamplingConfig(BaseModel):
    """Sampling parameters forwarded to the inference engine."""

    temperature: float | None = Field(default=0.8, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, gt=0.0, le=1.0)
    max_tokens: int | None = Field(default=None, ge=1)
    seed: int | None = 1337
    stop: list[str] | None = None

    def call_kwargs(self) -> dict[str, Any]:
        """Only the parameters that are actually set."""
        return self.model_dump(exclude_none=True)


class StoreConfig(BaseModel):
    """Chunking and compaction settings for one Knowledge Store."""

    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, ge=1)
    chunk_overlap: int = Field(default=DEFAULT_CHUNK_OVERLAP, ge=0)
    doc_prefix: str = ""
    compaction_threshold: float = Field(default=0.25, gt=0.0, le=1.0)

    @model_validator(mode="after")
    def _overlap_below_size(self) -> "StoreConfig":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be less than chunk_size")
        return self


class RouteConfig(BaseModel):
    """Everything needed to build one named route.

    Defaults:
    - no embedding model and no store (`embed_model=None`, `db_path=None`)
    - chunk_size 1024, chunk_overlap 128
    - retrieval k=5, alpha=0.7 (vector-weighted), max_score=1.0
    """

    model_config = ConfigDict(extra="forbid")

    chat_model: str = Field(min_length=1)
    embed_model: str | None = None
    db_path: str | None = None
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    doc_prefix: str = ""
    query_prefix: str = ""
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, ge=1)
    chunk_overlap: int = Field(default=DEFAULT_CHUNK_OVERLAP, ge=0)
    k: int = Field(default=5, ge=1)
    alpha: float = Field(default=0.7, ge=0.0, le=1.0)
    max_score: float = Field(default=1.0, ge=0.0)
    compaction_threshold: float = Field(default=0.25, gt=0.0, le=1.0)
    sampling: SamplingConfig = Field(default_factory=SamplingConfig)

    @model_validator(mode="after")
    def _overlap_below_size(self) -> "RouteConfig":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be less than chunk_size")
        return self

    def store_config(self) -> StoreConfig:
        return StoreConfig(
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            doc_prefix=self.doc_prefix,
            compaction_threshold=self.compaction_threshold,
        )


class RouterConfig(BaseModel):
    """Top-level router settings; both models are required."""

    model_config = ConfigDict(extra="forbid")

    prompt_model: str = Field(min_length=1)
    default_embed_model: str = Field(min_length=1)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    embedding_query_prefix: str = ""
    catalog_path: str = "./catalog"
    query_preference: str = "balanced"
    catalog_k: int = Field(default=5, ge=1)
    catalog_alpha: float = Field(default=0.7, ge=0.0, le=1.0)
    catalog_max_score: float = Field(default=1.0, ge=0.0)
    refiner_sampling: SamplingConfig = Field(
        default_factory=lambda: SamplingConfig(temperature=0.2)
    )


def validate_config(model: type[BaseModel], payload: Any) -> Any:
    """Validate a config payload, turning pydantic failures into ConfigurationError."""

    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid {model.__name__}", details=str(exc)
        ) from exc
