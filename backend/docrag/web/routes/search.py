"""Retrieval, hint and embedding check routes."""

import time

import numpy as np
from fastapi import APIRouter, Depends, HTTPException

from ...errors import DocragError
from ..schemas import (
    EmbedRequest,
    EmbedResponse,
    HintRequest,
    HintResponse,
    RetrieveRequest,
    RetrieveResponse,
    RetrievedHit,
)
from ..services import Services
from . import get_services, to_http

router = APIRouter(tags=["search"])


@router.post("/retrieve", response_model=RetrieveResponse)
def retrieve(request: RetrieveRequest, services: Services = Depends(get_services)):
    """Run multi-query retrieval and return the hits with the assembled context."""
    cfg = services.config["retrieval"]
    top_k = request.top_k if request.top_k and request.top_k > 0 else int(cfg.get("top_k", 6))
    budget = request.max_context_chars or int(cfg.get("max_context_chars", 6000))
    try:
        rr = services.retrieval.retrieve(request.text, top_k, budget)
    except DocragError as e:
        raise to_http(e) from e
    return RetrieveResponse(
        hits=[RetrievedHit(**h) for h in rr.retrieved()],
        hints_used=rr.hints_used,
        context=rr.context,
    )


@router.post("/hints", response_model=HintResponse)
def hints(request: HintRequest, max: int = 6, services: Services = Depends(get_services)):
    if not request.text or not request.text.strip():
        raise HTTPException(status_code=400, detail="(empty input)")
    t0 = time.perf_counter()
    out = services.hints.extract_hints(request.text, max)
    return HintResponse(hints=out, ms=int((time.perf_counter() - t0) * 1000), text=request.text)


@router.post("/embedding/test", response_model=EmbedResponse)
def embedding_test(request: EmbedRequest, services: Services = Depends(get_services)):
    """Embed a text and report dimension, norm and the first few components."""
    if not request.text or not request.text.strip():
        raise HTTPException(status_code=400, detail="text must not be empty")
    try:
        vec = services.embedder.embed_one(request.text)
    except DocragError as e:
        raise to_http(e) from e
    arr = np.asarray(vec, dtype=np.float64)
    return EmbedResponse(dimension=len(vec), preview=[float(x) for x in vec[:8]], norm=float(np.linalg.norm(arr)))
