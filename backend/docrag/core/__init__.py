"""Core functionality for docrag."""

from .models import Chunk, Record, SearchHit, IngestResult, LoadResult, CompactionResult, make_id
from .chunking import Chunker, CharChunker, chunk_text, sanitize
from .embeddings import Embedder, OllamaEmbedder, SentenceTransformersEmbedder, make_embedder
from .extraction import TextExtractor
from .vectors import normalize, cosine

__all__ = [
    "Chunk",
    "Record",
    "SearchHit",
    "IngestResult",
    "LoadResult",
    "CompactionResult",
    "make_id",
    "Chunker",
    "CharChunker",
    "chunk_text",
    "sanitize",
    "Embedder",
    "OllamaEmbedder",
    "SentenceTransformersEmbedder",
    "make_embedder",
    "TextExtractor",
    "normalize",
    "cosine",
]
