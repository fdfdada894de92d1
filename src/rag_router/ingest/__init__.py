"""Chunking and embedding utilities used when writing to a Knowledge Store."""

from .chunker import SlidingWindowChunker
from .embedder import HashingEmbeddings

__all__ = ["HashingEmbeddings", "SlidingWindowChunker"]
