"""Sliding-window character chunking."""

from __future__ import annotations

from rag_router.errors import ChunkingError


class SlidingWindowChunker:
    """Splits text into fixed-size windows that overlap their predecessor.

    Windows are `chunk_size` characters long and start every
    `stride = chunk_size - chunk_overlap` characters; the last window ends at
    the end of the text and may be shorter. For a text of length `n` this
    yields `ceil((n - overlap) / stride)` chunks when `n > overlap`, a single
    chunk when `0 < n <= overlap`, and no chunks for empty text. Consecutive
    windows share exactly `chunk_overlap` characters.
    """

    def __init__(self, chunk_size: int, chunk_overlap: int) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        if chunk_overlap < 0:
            raise ValueError("chunk_overlap must not be negative")
        if chunk_overlap >= chunk_size:
            raise ValueError("chunk_overlap must be less than chunk_size")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    @property
    def stride(self) -> int:
        return self.chunk_size - self.chunk_overlap

    def split(self, text: str) -> list[str]:
        if not isinstance(text, str):
            raise ChunkingError(f"Cannot chunk {type(text).__name__}; expected str")

        chunks: list[str] = []
        i = 0
        while i < len(text):
            chunks.append(text[i : i + self.chunk_size])
            if i + self.chunk_size >= len(text):
                break
            i += self.stride
        return chunks
