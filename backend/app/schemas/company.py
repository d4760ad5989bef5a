from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class CompanyBase(BaseModel):
    name: str
    tax_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    logo_url: Optional[str] = None


class CompanyUpdate(BaseModel):
    name: Optional[str] = None
    tax_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    logo_url: Optional[str] = None


class CompanyResponse(CompanyBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AISettingsUpdate(BaseModel):
    provider: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None  # omitted or empty keeps the stored key
    model: Optional[str] = None
    system_prompt: Optional[str] = None


class AISettingsResponse(BaseModel):
    provider: str
    family: str
    base_url: str
    model: str
    embedding_model: str
    system_prompt: str
    has_api_key: bool


class ModelListRequest(BaseModel):
    """Credentials to try before saving; missing fields fall back to the stored settings."""
    provider: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
