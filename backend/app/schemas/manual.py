from pydantic import BaseModel
from datetime import datetime
from typing import List, Literal, Optional

ProcessingMode = Literal["text", "images", "both"]


class ManualResponse(BaseModel):
    id: int
    company_id: int
    title: str
    machine_type: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    file_name: Optional[str] = None
    file_url: Optional[str] = None
    processing_status: str
    processing_started_at: Optional[datetime] = None
    has_text: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ManualDetail(ManualResponse):
    chunk_count: int = 0
    page_image_count: int = 0


class ProcessingQueued(BaseModel):
    manual_id: int
    mode: ProcessingMode
    message: str


class ManualDeleted(BaseModel):
    message: str
    chunks_deleted: int
    page_images_deleted: int
    files_deleted: int


class SearchRequest(BaseModel):
    query: str


class SearchMatchResponse(BaseModel):
    id: int
    manual_id: int
    manual_title: str
    source: str
    content: str
    similarity: float
    page_number: Optional[int] = None
    image_url: Optional[str] = None


class SearchResponse(BaseModel):
    query: str
    matches: List[SearchMatchResponse]
