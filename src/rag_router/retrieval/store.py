"""Persistent hybrid retrieval index over chunked text and tagged objects."""

from __future__ import annotations

import json
import os
import sqlite3
from contextlib import closing
from datetime import timedelta
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

from rag_router.config import StoreConfig
from rag_router.errors import (
    ChunkingError,
    CollaboratorError,
    NotFoundError,
    RouterError,
    StoreError,
)
from rag_router.ingest.chunker import SlidingWindowChunker
from rag_router.obs.tracing import Timer
from rag_router.retrieval.locking import ReadWriteLock
from rag_router.retrieval.scoring import hybrid_score, keyword_distance, tokenize, vector_distance
from rag_router.types import Neighbor, StoreRecord, TaggedDocument

DB_FILENAME = "knowledge.sqlite3"
TAG_PREFIX = "tag:"


class Embedder(Protocol):
    def embed(self, texts: list[str]) -> list[list[float]]:
        """Return one unit-length vector per text."""


def chunk_id(doc_id: str, sequence_index: int) -> str:
    return f"{doc_id}-chunk-{sequence_index:04d}"


def store_root(path: str | Path) -> Path:
    """Directory a store at `path` lives in, with `~` and env vars expanded."""
    return Path(os.path.expandvars(str(path))).expanduser()


class KnowledgeStore:
    """Hybrid vector + keyword index with soft deletes and explicit saves.

    Writes (`add_*`, `upsert`, `delete`, `compact`, `save`) take the exclusive
    side of a reader/writer lock; `query`, `get` and `len` share the read
    side. Every change is staged in memory until `save()`, which is the only
    operation that touches durable storage.

    Deleted records are tombstoned: they disappear from `query`, `get` and
    `len` immediately but stay in memory (and on disk, if saved) until a
    compaction reclaims them. `save()` compacts once the tombstoned share of
    all records reaches `config.compaction_threshold`.
    """

    def __init__(self, path: Path | None = None, config: StoreConfig | None = None) -> None:
        self.path = path
        self.config = config or StoreConfig()
        self._chunker = SlidingWindowChunker(self.config.chunk_size, self.config.chunk_overlap)
        self._records: dict[str, StoreRecord] = {}
        self._terms: dict[str, set[str]] = {}
        self._dimension: int | None = None
        self._lock = ReadWriteLock()

    @classmethod
    def open(cls, path: str | Path, config: StoreConfig | None = None) -> "KnowledgeStore":
        """Open (creating if needed) the store rooted at directory `path`."""

        root = store_root(path)
        if not root.exists():
            logger.debug("Creating knowledge store directory {}", root)
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError(f"Cannot create store directory {root}", details=str(exc)) from exc
        store = cls(root, config)
        store._load()
        return store

    @property
    def dimension(self) -> int | None:
        return self._dimension

    def split_text(self, text: str) -> list[str]:
        """Best-effort chunking: an unsplittable input yields no chunks."""
        try:
            return self._chunker.split(text)
        except ChunkingError as exc:
            logger.debug("Failed to split text: {}", exc)
            return []

    def add_document(self, doc_id: str, text: str, embedder: Embedder) -> timedelta:
        """Chunk, embed and upsert a document one chunk at a time.

        Chunk records are named ``{doc_id}-chunk-{n:04d}`` and carry metadata
        ``{"id": doc_id, "sequence_index": n, "text": chunk}``. An embedding
        failure aborts the call, but chunks upserted before it stay in place.
        Leftover chunks from an earlier, longer version of the document are
        tombstoned once every new chunk is in. Text that cannot be chunked
        leaves the store untouched.
        """

        with Timer() as timer:
            try:
                chunks = self._chunker.split(text)
            except ChunkingError as exc:
                logger.debug("Skipping document {}: {}", doc_id, exc)
                chunks = None
            if chunks is not None:
                self._write_chunks(doc_id, chunks, embedder)
        if chunks is not None:
            logger.info(
                "Added document {} ({} chunks) in {:.1f} ms",
                doc_id,
                len(chunks),
                timer.elapsed_ms,
            )
        return timer.duration

    def _write_chunks(self, doc_id: str, chunks: list[str], embedder: Embedder) -> None:
        with self._lock.write():
            for n, chunk in enumerate(chunks):
                vector = self._embed_one(embedder, chunk)
                self._upsert_locked(
                    chunk_id(doc_id, n),
                    vector,
                    {"id": doc_id, "sequence_index": n, "text": chunk},
                )
            for record in self._records.values():
                if (
                    not record.deleted
                    and record.metadata.get("id") == doc_id
                    and record.metadata.get("sequence_index", -1) >= len(chunks)
                ):
                    record.deleted = True

    def add_string(self, record_id: str, text: str, embedder: Embedder) -> None:
        with self._lock.write():
            vector = self._embed_one(embedder, text)
            self._upsert_locked(record_id, vector, {"id": record_id, "text": text})

    def add_object(self, record_id: str, obj: TaggedDocument, embedder: Embedder) -> None:
        """Store a tagged object; tags land in metadata under ``tag:<name>``."""
        metadata: dict[str, Any] = {"id": record_id, "text": obj.content}
        for key, value in obj.tags.items():
            metadata[f"{TAG_PREFIX}{key}"] = value
        with self._lock.write():
            vector = self._embed_one(embedder, obj.to_text())
            self._upsert_locked(record_id, vector, metadata)

    def upsert(self, record_id: str, vector: list[float], metadata: dict[str, Any]) -> None:
        if "text" not in metadata:
            raise ValueError("record metadata must include 'text'")
        vector = [float(value) for value in vector]
        with self._lock.write():
            self._upsert_locked(record_id, vector, metadata)

    def delete(self, record_id: str) -> int:
        """Tombstone `record_id` and every chunk of document `record_id`."""

        with self._lock.write():
            targets = [
                record
                for rid, record in self._records.items()
                if not record.deleted
                and (rid == record_id or record.metadata.get("id") == record_id)
            ]
            if not targets:
                raise NotFoundError(
                    f"Record not found: {record_id}",
                    resource_type="record",
                    resource_id=record_id,
                )
            for record in targets:
                record.deleted = True
        logger.debug("Tombstoned {} record(s) for {}", len(targets), record_id)
        return len(targets)

    def get(self, record_id: str) -> StoreRecord:
        with self._lock.read():
            record = self._records.get(record_id)
            if record is None or record.deleted:
                raise NotFoundError(
                    f"Record not found: {record_id}",
                    resource_type="record",
                    resource_id=record_id,
                )
            return StoreRecord(
                id=record.id, vector=list(record.vector), metadata=dict(record.metadata)
            )

    def query(
        self,
        vector: list[float] | None,
        keywords: str = "",
        *,
        k: int = 5,
        alpha: float = 0.7,
        max_score: float = 1.0,
    ) -> list[Neighbor]:
        """Return up to `k` live records ordered best (lowest score) first.

        Results scoring above `max_score` are dropped after ranking, so fewer
        than `k` neighbours may come back.
        """

        if k < 0:
            raise ValueError("k must not be negative")
        if not 0.0 <= alpha <= 1.0:
            raise ValueError("alpha must be within [0, 1]")
        if max_score < 0.0:
            raise ValueError("max_score must not be negative")
        query_terms = tokenize(keywords or "")
        if vector is None and not query_terms:
            raise ValueError("query needs a vector, keywords, or both")

        with self._lock.read():
            if vector is not None:
                self._check_dimension(vector)
            scored: list[tuple[float, StoreRecord]] = []
            for record in self._records.values():
                if record.deleted:
                    continue
                score = hybrid_score(
                    vector=vector_distance(vector, record.vector) if vector is not None else None,
                    keyword=(
                        keyword_distance(query_terms, self._terms[record.id])
                        if query_terms
                        else None
                    ),
                    alpha=alpha,
                )
                scored.append((score, record))

            scored.sort(key=lambda item: (item[0], item[1].id))
            return [
                Neighbor(id=record.id, score=score, metadata=dict(record.metadata))
                for score, record in scored[:k]
                if score <= max_score
            ]

    def __len__(self) -> int:
        with self._lock.read():
            return sum(1 for record in self._records.values() if not record.deleted)

    @property
    def tombstones(self) -> int:
        with self._lock.read():
            return sum(1 for record in self._records.values() if record.deleted)

    @property
    def physical_size(self) -> int:
        """Records held in memory, tombstones included."""
        with self._lock.read():
            return len(self._records)

    def compact(self) -> int:
        with self._lock.write():
            return self._compact_locked()

    def save(self) -> None:
        """Optimise, compact if the tombstone threshold is met, then persist."""

        with Timer() as timer, self._lock.write():
            self._optimize_locked()
            total = len(self._records)
            dead = sum(1 for record in self._records.values() if record.deleted)
            if dead and dead / total >= self.config.compaction_threshold:
                self._compact_locked()
            if self.path is not None:
                self._persist_locked()
        logger.info(
            "Saved knowledge store {} ({} records) in {:.1f} ms",
            self.path or "<memory>",
            len(self._records),
            timer.elapsed_ms,
        )

    def _embed_one(self, embedder: Embedder, text: str) -> list[float]:
        try:
            vectors = embedder.embed([f"{self.config.doc_prefix}{text}"])
            return [float(value) for value in vectors[0]]
        except RouterError:
            raise
        except Exception as exc:
            raise CollaboratorError("Embedding failed", details=str(exc)) from exc

    def _upsert_locked(self, record_id: str, vector: list[float], metadata: dict[str, Any]) -> None:
        self._check_dimension(vector)
        if self._dimension is None:
            self._dimension = len(vector)
        self._records[record_id] = StoreRecord(
            id=record_id, vector=list(vector), metadata=dict(metadata)
        )
        self._terms[record_id] = tokenize(str(metadata["text"]))

    def _check_dimension(self, vector: list[float]) -> None:
        if not vector:
            raise StoreError("Empty vector")
        if self._dimension is not None and len(vector) != self._dimension:
            raise StoreError(
                "Vector dimension mismatch",
                details=f"expected {self._dimension}, got {len(vector)}",
            )

    def _optimize_locked(self) -> None:
        self._terms = {
            rid: self._terms.get(rid) or tokenize(str(record.metadata.get("text", "")))
            for rid, record in self._records.items()
            if not record.deleted
        }

    def _compact_locked(self) -> int:
        dead = [rid for rid, record in self._records.items() if record.deleted]
        for rid in dead:
            del self._records[rid]
            self._terms.pop(rid, None)
        if not self._records:
            self._dimension = None
        if dead:
            logger.info("Compacted {} tombstoned record(s)", len(dead))
        return len(dead)

    def _persist_locked(self) -> None:
        root = self._root()
        rows = []
        try:
            for record in self._records.values():
                rows.append(
                    (
                        record.id,
                        json.dumps(record.vector),
                        json.dumps(record.metadata, ensure_ascii=False),
                        int(record.deleted),
                    )
                )
        except (TypeError, ValueError) as exc:
            raise StoreError("Record metadata is not JSON serialisable", details=str(exc)) from exc

        try:
            with closing(sqlite3.connect(root / DB_FILENAME)) as conn, conn:
                _ensure_records_table(conn)
                conn.execute("DELETE FROM records")
                conn.executemany(
                    "INSERT INTO records(id, vector, metadata, deleted) VALUES(?, ?, ?, ?)",
                    rows,
                )
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to save store at {self.path}", details=str(exc)) from exc

    def _root(self) -> Path:
        if self.path is None:
            raise StoreError("In-memory store has no storage directory")
        return self.path

    def _load(self) -> None:
        db_file = self._root() / DB_FILENAME
        if not db_file.exists():
            return
        try:
            with closing(sqlite3.connect(db_file)) as conn:
                _ensure_records_table(conn)
                rows = conn.execute(
                    "SELECT id, vector, metadata, deleted FROM records ORDER BY rowid"
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to open store at {self.path}", details=str(exc)) from exc

        try:
            for rid, vector_json, metadata_json, deleted in rows:
                vector = json.loads(vector_json)
                metadata = json.loads(metadata_json)
                self._records[rid] = StoreRecord(
                    id=rid, vector=vector, metadata=metadata, deleted=bool(deleted)
                )
                if not deleted:
                    self._terms[rid] = tokenize(str(metadata.get("text", "")))
                if self._dimension is None:
                    self._dimension = len(vector)
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Corrupt record in store at {self.path}", details=str(exc)) from exc
        logger.debug("Loaded {} record(s) from {}", len(self._records), db_file)


def _ensure_records_table(conn: sqlite3.Connection) -> None:
    conn.execute(
        "CREATE TABLE IF NOT EXISTS records ("
        "id TEXT PRIMARY KEY, vector TEXT NOT NULL, metadata TEXT NOT NULL, "
        "deleted INTEGER NOT NULL DEFAULT 0)"
    )
