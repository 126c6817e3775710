"""Retrieval over the vector index."""

from .hints import EntityHintExtractor, heuristic_hints, make_hint_extractor
from .retrieval import RetrievalResult, RetrievalService, build_context, mmr_select, make_retrieval_service

__all__ = [
    "EntityHintExtractor",
    "heuristic_hints",
    "make_hint_extractor",
    "RetrievalResult",
    "RetrievalService",
    "build_context",
    "mmr_select",
    "make_retrieval_service",
]
