"""Indexing functionality for docrag."""

from .ingestion import BatchIngestResult, IngestionService
from .scheduler import ScanResult, WatchScheduler

__all__ = [
    "BatchIngestResult",
    "IngestionService",
    "ScanResult",
    "WatchScheduler",
]
