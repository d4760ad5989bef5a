from pydantic import BaseModel
from datetime import datetime
from typing import Any, Literal, Optional

from app.schemas.machine import MachineSummary

TicketStatus = Literal["open", "in_progress", "resolved", "closed"]
TicketUrgency = Literal["low", "medium", "high", "critical"]


class TicketBase(BaseModel):
    machine_id: int
    problem_description: str
    urgency: TicketUrgency = "medium"
    location: Optional[str] = None


class TicketCreate(TicketBase):
    status: TicketStatus = "open"


class ProblemReport(TicketBase):
    """Ticket created together with an AI diagnostic analysis."""
    pass


class TicketStatusUpdate(BaseModel):
    status: TicketStatus


class TicketResponse(TicketBase):
    id: int
    machine_id: Optional[int] = None
    status: str
    ai_analysis: Optional[Any] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    machine: Optional[MachineSummary] = None

    class Config:
        from_attributes = True


class AnalysisRequest(BaseModel):
    machine_id: int
    problem_description: str
