from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, List, Optional

from app.schemas.manual import SearchMatchResponse


class ChatRequest(BaseModel):
    machine_id: int
    message: str
    session_id: Optional[str] = None
    # Defaults to the start of the first message
    title: Optional[str] = Field(None, max_length=200)
    use_manuals: bool = True


class ChatTurn(BaseModel):
    role: str  # "user" or "assistant"
    content: Any


class ChatResponse(BaseModel):
    session_id: str
    message: str
    sources: List[SearchMatchResponse]


class ChatHistoryResponse(BaseModel):
    session_id: str
    machine_id: Optional[int] = None
    title: Optional[str] = None
    messages: List[ChatTurn]


class ChatSessionSummary(BaseModel):
    session_id: str
    machine_id: Optional[int] = None
    machine_name: Optional[str] = None
    machine_model: Optional[str] = None
    title: str
    message_count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
