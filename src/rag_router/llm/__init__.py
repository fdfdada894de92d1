"""Inference collaborators: engines, the shared backend, and model handles."""

from .backend import InferenceBackend, ModelHandle
from .engines import InferenceEngine, LangChainEngine, ModelLoader, openai_loader

__all__ = [
    "InferenceBackend",
    "InferenceEngine",
    "LangChainEngine",
    "ModelHandle",
    "ModelLoader",
    "openai_loader",
]
