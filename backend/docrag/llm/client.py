from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

import requests
from pydantic import BaseModel

from ..errors import ChatError

logger = logging.getLogger(__name__)

NO_CONTENT = "[no content]"


class LLMResponse(BaseModel):
    content: str
    # "chat" or "generate", whichever endpoint answered
    endpoint: str
    time_taken: float


@dataclass
class LLMConfig:
    api_base: str = "http://localhost:11434"
    model: str = ""
    timeout: float = 120.0
    keep_alive: str = "5m"


class OllamaChatClient:

    def __init__(self, config: LLMConfig | None = None, session: Optional[requests.Session] = None):
        self.config = config or LLMConfig()
        self.config.api_base = self.config.api_base.rstrip("/")
        self.session = session or requests.Session()

    @property
    def model(self) -> str:
        return (self.config.model or "").strip()

    def chat(
        self,
        messages: List[Dict[str, str]],
        options: Optional[Dict] = None,
        system: str = "",
        prompt: str = "",
    ) -> LLMResponse:
        """One-shot reply from ``/api/chat``.

        If ``/api/chat`` answers with an HTTP error, retries once against
        ``/api/generate`` with ``prompt`` and ``system`` instead of the message list.

        Raises:
            ChatError: If the server is unreachable or both endpoints fail
        """
        start_time = time.time()
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": options or {},
        }
        try:
            response = self.session.post(
                f"{self.config.api_base}/api/chat",
                json=payload,
                timeout=self.config.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            logger.warning(f"/api/chat failed with {status}, falling back to /api/generate")
            return self._generate(prompt, system, options, start_time)
        except (requests.RequestException, ValueError) as e:
            raise ChatError(f"Chat request failed: {e}") from e

        return LLMResponse(
            content=_reply_text(data),
            endpoint="chat",
            time_taken=time.time() - start_time,
        )

    def _generate(self, prompt: str, system: str, options: Optional[Dict], start_time: float) -> LLMResponse:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "system": system,
            "stream": False,
            "options": options or {},
        }
        try:
            response = self.session.post(
                f"{self.config.api_base}/api/generate",
                json=payload,
                timeout=self.config.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ChatError(f"Chat request failed: {e}") from e

        content = data.get("response") if isinstance(data, dict) else None
        return LLMResponse(
            content=content if isinstance(content, str) else NO_CONTENT,
            endpoint="generate",
            time_taken=time.time() - start_time,
        )

    def stream_chat(
        self,
        messages: List[Dict[str, str]],
        options: Optional[Dict] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[str]:
        """Yield reply fragments from a streaming ``/api/chat`` call.

        The server sends one JSON object per line. ``cancel`` is checked between
        lines; once set, the upstream response is closed and the iterator simply ends.

        Raises:
            ChatError: On a connection failure, a non-2xx status or a malformed frame
        """
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": True,
            "options": options or {},
            "keep_alive": self.config.keep_alive,
        }
        try:
            response = self.session.post(
                f"{self.config.api_base}/api/chat",
                json=payload,
                timeout=self.config.timeout,
                stream=True,
            )
        except requests.RequestException as e:
            raise ChatError(f"Chat request failed: {e}") from e

        try:
            if not response.ok:
                body = response.text.strip()
                raise ChatError(body or f"Chat request failed with status {response.status_code}")

            for line in response.iter_lines(decode_unicode=True):
                if cancel is not None and cancel.is_set():
                    logger.info("Chat stream cancelled by client")
                    return
                if not line or not line.strip():
                    continue
                try:
                    frame = json.loads(line)
                except ValueError as e:
                    raise ChatError(f"Malformed stream frame: {line[:200]!r}") from e
                if not isinstance(frame, dict):
                    continue

                delta = _frame_delta(frame)
                if delta:
                    yield delta
                if frame.get("done"):
                    return
        except requests.RequestException as e:
            raise ChatError(f"Chat stream failed: {e}") from e
        finally:
            response.close()


def _reply_text(data: Dict) -> str:
    if not isinstance(data, dict):
        return NO_CONTENT
    message = data.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]
    if isinstance(data.get("response"), str):
        return data["response"]
    return NO_CONTENT


def _frame_delta(frame: Dict) -> Optional[str]:
    message = frame.get("message")
    if isinstance(message, dict) and "content" in message:
        return message.get("content") or None
    return frame.get("response") or None


def make_chat_client(cfg: Dict) -> OllamaChatClient:
    ollama_cfg = cfg.get("ollama", {})
    return OllamaChatClient(
        LLMConfig(
            api_base=ollama_cfg.get("base_url", "http://localhost:11434"),
            model=ollama_cfg.get("chat_model") or "",
            timeout=float(ollama_cfg.get("timeout", 120)),
        )
    )
