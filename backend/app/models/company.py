from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base


class Company(Base):
    """Tenant. Owns users, machines, tickets, manuals and the AI settings."""

    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    tax_id = Column(String(32))
    email = Column(String(255))
    phone = Column(String(50))
    address = Column(String(500))
    logo_url = Column(String(500))

    # Stored provider configuration: provider, base_url, api_key, model, system_prompt
    ai_settings = Column(JSON)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    users = relationship("User", back_populates="company")
