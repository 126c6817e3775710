"""Chat with a local Ollama model."""

from .client import LLMConfig, LLMResponse, OllamaChatClient, make_chat_client
from .chat import ChatReply, ChatService, PreparedChat, ThinkMode
from .health import HealthReport, OllamaHealthCheck, make_health_check

__all__ = [
    "LLMConfig",
    "LLMResponse",
    "OllamaChatClient",
    "make_chat_client",
    "ChatReply",
    "ChatService",
    "PreparedChat",
    "ThinkMode",
    "HealthReport",
    "OllamaHealthCheck",
    "make_health_check",
]
