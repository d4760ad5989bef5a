from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pgvector.sqlalchemy import Vector
from app.core.database import Base


class Manual(Base):
    __tablename__ = "manuals"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    machine_type = Column(String(100))
    brand = Column(String(100))
    model = Column(String(100))

    # Object storage reference for the raw PDF (bucket "manuals")
    file_name = Column(String(255))
    file_path = Column(String(500))
    file_url = Column(String(500))

    # Filled by text ingestion; kept even if embedding later fails
    content_extracted = Column(Text)
    processing_status = Column(String(20), nullable=False, default="pending")  # pending, processing, done, failed
    # Set when a run claims the manual; old claims are treated as abandoned
    processing_started_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def has_text(self) -> bool:
        return bool(self.content_extracted)

    chunks = relationship(
        "ManualChunk", back_populates="manual", cascade="all, delete-orphan"
    )
    page_images = relationship(
        "ManualPageImage", back_populates="manual", cascade="all, delete-orphan"
    )


class ManualChunk(Base):
    __tablename__ = "manual_chunks"

    id = Column(Integer, primary_key=True, index=True)
    manual_id = Column(Integer, ForeignKey("manuals.id", ondelete="CASCADE"), nullable=False, index=True)

    content = Column(Text, nullable=False)

    # Dimension depends on the embedding model, so the column is unsized
    embedding = Column(Vector())
    embedding_provider = Column(String(20), nullable=False)
    embedding_model = Column(String(100), nullable=False)

    metadata_ = Column("metadata", JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    manual = relationship("Manual", back_populates="chunks")


class ManualPageImage(Base):
    __tablename__ = "manual_page_images"

    id = Column(Integer, primary_key=True, index=True)
    manual_id = Column(Integer, ForeignKey("manuals.id", ondelete="CASCADE"), nullable=False, index=True)

    page_number = Column(Integer, nullable=False)  # 1-based
    image_url = Column(String(500))
    image_description = Column(Text, nullable=False)

    embedding = Column(Vector())
    embedding_provider = Column(String(20), nullable=False)
    embedding_model = Column(String(100), nullable=False)

    metadata_ = Column("metadata", JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    manual = relationship("Manual", back_populates="page_images")
