"""Offline embeddings for routes, the catalog and tests."""

from __future__ import annotations

import re
from hashlib import blake2b
from math import sqrt

from langchain_core.embeddings import Embeddings

_TOKEN_PATTERN = re.compile(r"\w+", flags=re.UNICODE)


class HashingEmbeddings(Embeddings):
    """Signed feature-hashing of word tokens into a unit vector.

    Plugged into `LangChainEngine(embeddings=...)` it gives a route or the
    router's catalog an embedding model that needs no network. Texts sharing
    words land close under cosine distance, which is enough for keyword-heavy
    knowledge stores and keeps retrieval tests deterministic.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = [token.lower() for token in _TOKEN_PATTERN.findall(text)]
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]
