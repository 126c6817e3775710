from pydantic import BaseModel
from typing import Optional, List, Dict


class ChatMessage(BaseModel):
    role: str
    content: str = ""


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = []


class RetrievedHit(BaseModel):
    source: str
    chunkIndex: int
    score: float


class ChatResponse(BaseModel):
    model: Optional[str] = None
    answer: str
    retrieved: List[RetrievedHit] = []
    context: Optional[str] = None
    think: Optional[str] = None


class RetrieveRequest(BaseModel):
    text: str
    top_k: Optional[int] = None
    max_context_chars: Optional[int] = None


class RetrieveResponse(BaseModel):
    hits: List[RetrievedHit]
    hints_used: List[str]
    context: str


class HintRequest(BaseModel):
    text: str


class HintResponse(BaseModel):
    hints: List[str]
    ms: int
    text: str


class EmbedRequest(BaseModel):
    text: str


class EmbedResponse(BaseModel):
    dimension: int
    preview: List[float]
    norm: float


class FileIngestResponse(BaseModel):
    source: str
    chunks: int
    total_seconds: float
    embed_seconds: float
    upsert_seconds: float
    index_info: Dict


class LibraryFile(BaseModel):
    path: str
    size: int
    mtime_ns: int
