"""Retrieval-augmented chat on top of the Ollama chat client."""

from __future__ import annotations

import dataclasses
import enum
import threading
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from ..errors import BadChatRequest
from ..search.retrieval import RetrievalResult, RetrievalService
from .client import LLMResponse, OllamaChatClient

SYSTEM_PROMPT = (
    "You are a helpful assistant. Use the provided CONTEXT to answer the user's question.\n"
    "If the answer is not clearly in the context, say you don't know.\n"
    "Be concise and cite the source chunk like [source#chunk] when useful (e.g., [people_food.txt#0]).\n"
    "CONTEXT:\n"
)


class ThinkMode(str, enum.Enum):
    """How much the model may write, mapped to generation options."""

    FAST = "FAST"
    MEDIUM = "MEDIUM"
    LONG = "LONG"
    XLONG = "XLONG"
    MAX = "MAX"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ThinkMode":
        if value is None:
            return cls.MEDIUM
        t = value.strip().upper()
        if t == "SHORT":
            return cls.FAST
        if t in ("VERY_LONG", "DEEP"):
            return cls.XLONG
        try:
            return cls(t)
        except ValueError:
            return cls.MEDIUM

    def options(self) -> Dict:
        num_predict, temperature, top_p = _THINK_OPTIONS[self]
        return {"num_predict": num_predict, "temperature": temperature, "top_p": top_p}


_THINK_OPTIONS: Dict[ThinkMode, Tuple[int, float, float]] = {
    ThinkMode.FAST: (256, 0.2, 0.9),
    ThinkMode.MEDIUM: (512, 0.4, 0.95),
    ThinkMode.LONG: (1024, 0.6, 0.98),
    ThinkMode.XLONG: (2048, 0.7, 0.98),
    ThinkMode.MAX: (4096, 0.7, 0.98),
}


@dataclasses.dataclass
class PreparedChat:
    messages: List[Dict[str, str]]
    retrieval: RetrievalResult
    latest_user_text: str
    system: str

    @property
    def context(self) -> str:
        return self.retrieval.context

    def retrieved(self) -> List[Dict]:
        return self.retrieval.retrieved()


@dataclasses.dataclass
class ChatReply:
    model: str
    answer: str
    retrieved: List[Dict]
    context: str
    think: str


class ChatService:
    """Answers chat requests with the library context injected as a system prompt.

    The latest user message is the retrieval query. Client-supplied system messages
    are dropped in favour of the context-bearing system prompt.
    """

    def __init__(
        self,
        client: OllamaChatClient,
        retrieval: RetrievalService,
        default_top_k: int = 6,
        max_context_chars: int = 6000,
    ) -> None:
        self.client = client
        self.retrieval = retrieval
        self.default_top_k = default_top_k
        self.max_context_chars = max_context_chars

    @property
    def model(self) -> str:
        return self.client.model

    def prepare(self, messages: Sequence[Mapping[str, str]], top_k: Optional[int] = None) -> PreparedChat:
        if not messages:
            raise BadChatRequest("Missing 'messages'")
        if not self.model:
            raise BadChatRequest("Chat model is not configured (ollama.chat_model)")

        latest = None
        for m in reversed(messages):
            if str(m.get("role", "")).lower() == "user":
                latest = m
                break
        latest_text = (latest or {}).get("content") or ""
        if not latest_text.strip():
            raise BadChatRequest("No user message found in 'messages'")

        k = top_k if top_k is not None and top_k > 0 else max(1, self.default_top_k)
        result = self.retrieval.retrieve(latest_text, k, self.max_context_chars)
        system = SYSTEM_PROMPT + result.context

        out = [{"role": "system", "content": system}]
        for m in messages:
            role = str(m.get("role", ""))
            if role.lower() != "system":
                out.append({"role": role, "content": m.get("content") or ""})
        return PreparedChat(out, result, latest_text, system)

    def answer(
        self,
        messages: Sequence[Mapping[str, str]],
        top_k: Optional[int] = None,
        think: ThinkMode = ThinkMode.FAST,
    ) -> ChatReply:
        p = self.prepare(messages, top_k)
        resp: LLMResponse = self.client.chat(
            p.messages, options=think.options(), system=p.system, prompt=p.latest_user_text
        )
        return ChatReply(self.model, resp.content, p.retrieved(), p.context, think.value)

    def stream(
        self,
        prepared: PreparedChat,
        think: ThinkMode = ThinkMode.FAST,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[str]:
        return self.client.stream_chat(prepared.messages, options=think.options(), cancel=cancel)
