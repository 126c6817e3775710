"""Retrieval-augmented chat routes (one-shot JSON and SSE streaming)."""

import json
import logging
import threading
from typing import Optional

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse
from starlette.concurrency import iterate_in_threadpool, run_in_threadpool

from ...errors import DocragError
from ...llm import ThinkMode
from ..schemas import ChatRequest, ChatResponse, RetrievedHit
from ..services import Services
from . import get_services, to_http

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("", response_model=ChatResponse)
def chat(
    request: ChatRequest,
    topK: Optional[int] = None,
    think: str = "FAST",
    debug: bool = False,
    services: Services = Depends(get_services),
):
    """Embed the latest user message, retrieve context and ask the chat model."""
    mode = ThinkMode.parse(think)
    messages = [m.model_dump() for m in request.messages]
    try:
        reply = services.chat.answer(messages, top_k=topK, think=mode)
    except DocragError as e:
        raise to_http(e) from e
    return ChatResponse(
        model=reply.model,
        answer=reply.answer,
        retrieved=[RetrievedHit(**h) for h in reply.retrieved],
        context=reply.context if debug else None,
        think=reply.think,
    )


@router.post("/stream")
async def chat_stream(
    request: ChatRequest,
    topK: Optional[int] = None,
    think: str = "FAST",
    services: Services = Depends(get_services),
):
    """Stream the reply as SSE: ``meta`` first, then ``delta`` fragments, then ``done``.

    Failures are reported as an ``error`` event. A client disconnect stops the
    upstream read at the next frame.
    """
    mode = ThinkMode.parse(think)
    messages = [m.model_dump() for m in request.messages]
    cancel = threading.Event()

    async def event_generator():
        try:
            prepared = await run_in_threadpool(services.chat.prepare, messages, topK)
            yield {
                "event": "meta",
                "data": json.dumps({
                    "model": services.chat.model,
                    "retrieved": prepared.retrieved(),
                    "context": prepared.context,
                    "think": mode.value,
                }),
            }
            async for delta in iterate_in_threadpool(services.chat.stream(prepared, mode, cancel)):
                yield {"event": "delta", "data": delta}
            yield {"event": "done", "data": "ok"}
        except DocragError as e:
            logger.warning(f"Chat stream failed: {e}")
            yield {"event": "error", "data": str(e)}
        finally:
            cancel.set()

    return EventSourceResponse(event_generator())

