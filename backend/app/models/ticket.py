from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base


class SupportTicket(Base):
    __tablename__ = "support_tickets"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    machine_id = Column(Integer, ForeignKey("machines.id", ondelete="SET NULL"))

    problem_description = Column(Text, nullable=False)
    urgency = Column(String(20), default="medium")  # low, medium, high, critical
    location = Column(String(200))
    status = Column(String(20), nullable=False, default="open")  # open, in_progress, resolved, closed

    # Diagnostic payload, or {"error": "..."} when the AI call failed
    ai_analysis = Column(JSON)

    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    machine = relationship("Machine")
