"""Knowledge Store: hybrid vector + keyword retrieval with soft deletes."""

from .locking import ReadWriteLock
from .scoring import hybrid_score, keyword_distance, vector_distance
from .store import DB_FILENAME, TAG_PREFIX, Embedder, KnowledgeStore, chunk_id, store_root

__all__ = [
    "DB_FILENAME",
    "TAG_PREFIX",
    "Embedder",
    "KnowledgeStore",
    "ReadWriteLock",
    "chunk_id",
    "store_root",
    "hybrid_score",
    "keyword_distance",
    "vector_distance",
]
