"""SQLAlchemy models (2.x style) for enriched content records.

One row per processed item, keyed by the record id. PostgreSQL with pgvector
holds the optional embedding.
"""

from __future__ import annotations

from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .config import settings


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class ContentRecord(Base):
    """Processed content table."""
    __tablename__ = "content_records"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    original_content: Mapped[dict] = mapped_column(JSON, nullable=False)
    structured: Mapped[dict] = mapped_column(JSON, nullable=False)
    keywords: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    embedding: Mapped[list[float] | None] = mapped_column(Vector(settings.embeddings.dim))
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processing_time: Mapped[int] = mapped_column(Integer, nullable=False)
    model: Mapped[str] = mapped_column(String(255), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, index=True)
    error: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        # "most recent record for this domain / URL" lookups
        Index("ix_content_records_domain_processed_at", "domain", "processed_at"),
        Index("ix_content_records_url_processed_at", "url", "processed_at"),
    )
