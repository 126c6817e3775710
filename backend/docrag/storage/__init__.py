"""Vector index and on-disk record store."""

from .base import VectorIndex
from .memory import InMemoryVectorIndex
from .jsonl import IndexFileStore, make_index_store

__all__ = [
    "VectorIndex",
    "InMemoryVectorIndex",
    "IndexFileStore",
    "make_index_store",
]
