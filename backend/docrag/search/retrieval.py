"""Multi-query retrieval with optional MMR reranking."""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..core.embeddings import Embedder
from ..core.models import SearchHit
from ..core.vectors import normalize
from ..storage.base import VectorIndex
from .hints import EntityHintExtractor

logger = logging.getLogger(__name__)

NO_MATCHES = "(no matches)"

# the base query always asks the index for at least this many candidates
MIN_BASE_CANDIDATES = 6
MAX_HINTS = 8
MIN_HINTS = 3


@dataclasses.dataclass
class RetrievalResult:
    hits: List[SearchHit]
    context: str
    hints_used: List[str]

    def retrieved(self) -> List[Dict]:
        """Lightweight view of the hits for clients (no chunk text)."""
        return [{"source": h.source, "chunkIndex": h.chunk_index, "score": h.score} for h in self.hits]


def dedupe_best(hits: Sequence[SearchHit]) -> List[SearchHit]:
    """One hit per id, keeping the best score, sorted by score descending.

    Hits with equal scores keep the order in which their ids were first seen.
    """
    best: Dict[str, SearchHit] = {}
    for h in hits:
        prev = best.get(h.id)
        if prev is None or h.score > prev.score:
            best[h.id] = h
    return sorted(best.values(), key=lambda h: -h.score)


def mmr_select(
    candidates: Sequence[SearchHit],
    candidate_vectors: np.ndarray,
    query_vector: np.ndarray,
    k: int,
    lam: float = 0.5,
) -> List[SearchHit]:
    """Greedy Maximal Marginal Relevance selection.

    Each step picks the candidate maximizing
    ``lam * cos(q, c) - (1 - lam) * max(cos(c, s) for s in selected)``.
    ``candidate_vectors`` holds one unit vector per candidate (rows).
    With ``lam == 1`` this is plain relevance order.
    """
    n = len(candidates)
    if n == 0 or k <= 0:
        return []

    rel = candidate_vectors @ query_vector
    sim = candidate_vectors @ candidate_vectors.T
    used = np.zeros(n, dtype=bool)
    # max similarity of each candidate to anything selected so far
    div = np.zeros(n, dtype=np.float64)
    selected: List[SearchHit] = []

    for _ in range(min(k, n)):
        best_score = -1e9
        best_idx = -1
        for i in range(n):
            if used[i]:
                continue
            score = lam * float(rel[i]) - (1.0 - lam) * float(div[i])
            if score > best_score:
                best_score = score
                best_idx = i
        if best_idx < 0:
            break
        used[best_idx] = True
        selected.append(candidates[best_idx])
        div = np.maximum(div, sim[best_idx])
    return selected


def build_context(hits: Sequence[SearchHit], max_chars: int) -> str:
    """Source-labeled context block that never exceeds ``max_chars``.

    Each hit contributes a header line ``[source#chunk] (score 0.812)`` and its text.
    Assembly stops at the first header that does not fit; the last text may be cut
    to fill the remaining budget exactly.
    """
    if not hits:
        return NO_MATCHES
    parts: List[str] = []
    length = 0
    for h in hits:
        header = f"\n[{h.source}#{h.chunk_index}] (score {h.score:.3f})\n"
        if length + len(header) > max_chars:
            break
        parts.append(header)
        length += len(header)
        remain = max_chars - length
        if len(h.text) <= remain:
            parts.append(h.text)
            length += len(h.text)
        else:
            parts.append(h.text[:max(0, remain)])
            break
    return "".join(parts)


class RetrievalService:
    """Multi-query retriever.

    1) embed the full question and search the index,
    2) ask for entity hints and search each hint (a failing hint is skipped),
    3) dedupe by id keeping the best score,
    4) optionally rerank an overfetched pool with MMR,
    5) build a context block within the character budget.
    """

    def __init__(
        self,
        embedder: Embedder,
        index: VectorIndex,
        hints: Optional[EntityHintExtractor] = None,
        mmr_enabled: bool = True,
        mmr_lambda: float = 0.5,
        mmr_overfetch: int = 24,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.hints = hints
        self.mmr_enabled = mmr_enabled
        self.mmr_lambda = mmr_lambda
        self.mmr_overfetch = mmr_overfetch

    def retrieve(self, text: str, top_k: int = 6, max_context_chars: int = 6000) -> RetrievalResult:
        if not text or not text.strip():
            return RetrievalResult([], NO_MATCHES, [])
        top_k = max(1, top_k)
        t0 = time.perf_counter()

        query = normalize(self.embedder.embed_one(text))
        merged: List[SearchHit] = list(self.index.search(query, max(top_k, MIN_BASE_CANDIDATES)))

        hints = self._safe_hints(text, top_k)
        per_hint = max(2, top_k // max(1, len(hints)))
        for h in hints:
            try:
                merged.extend(self.index.search(self.embedder.embed_one(h), per_hint))
            except Exception as e:
                logger.debug(f"Searching hint '{h}' failed: {e}")

        candidates = dedupe_best(merged)
        if self.mmr_enabled and len(candidates) > top_k:
            pool = candidates[:min(max(self.mmr_overfetch, top_k * 3), len(candidates))]
            vectors = self._candidate_vectors(pool, query.shape[0])
            hits = mmr_select(pool, vectors, query, top_k, self.mmr_lambda)
        else:
            hits = candidates[:top_k]

        context = build_context(hits, max_context_chars)
        logger.debug(
            f"Retrieved {len(hits)} of {len(candidates)} candidate(s) with {len(hints)} hint(s) "
            f"in {time.perf_counter() - t0:.3f}s"
        )
        return RetrievalResult(hits, context, hints)

    def _safe_hints(self, text: str, top_k: int) -> List[str]:
        if self.hints is None:
            return []
        cap = min(MAX_HINTS, max(MIN_HINTS, top_k))
        try:
            return list(self.hints.extract_hints(text, cap) or [])
        except Exception as e:
            logger.debug(f"Hint extraction failed: {e}")
            return []

    def _candidate_vectors(self, pool: Sequence[SearchHit], dim: int) -> np.ndarray:
        """Re-embed the pool texts; a failed embedding becomes the zero vector."""
        rows = np.zeros((len(pool), dim), dtype=np.float32)
        for i, h in enumerate(pool):
            try:
                vec = normalize(self.embedder.embed_one(h.text))
            except Exception as e:
                logger.debug(f"Embedding candidate '{h.id}' failed: {e}")
                continue
            if vec.shape[0] == dim:
                rows[i] = vec
        return rows


def make_retrieval_service(
    cfg: Dict,
    embedder: Embedder,
    index: VectorIndex,
    hints: Optional[EntityHintExtractor] = None,
) -> RetrievalService:
    mmr = cfg.get("retrieval", {}).get("mmr", {})
    return RetrievalService(
        embedder,
        index,
        hints=hints,
        mmr_enabled=bool(mmr.get("enabled", True)),
        mmr_lambda=float(mmr.get("lambda", 0.5)),
        mmr_overfetch=int(mmr.get("overfetch", 24)),
    )
