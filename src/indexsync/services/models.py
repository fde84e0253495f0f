"""SQLAlchemy ORM models for SQL-backed indexes.

One row per index holds its descriptor properties; one row per document
holds the serialized field entries plus the aggregate text that full-text
search runs against.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, JSON on SQLite
JSONType = JSONB().with_variant(JSON(), "sqlite")


def generate_uuid() -> str:
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for index storage models."""

    pass


class IndexRecord(Base):
    """A named index and its descriptor properties."""

    __tablename__ = "kdx_indexes"

    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    properties: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    documents: Mapped[list[DocumentRecord]] = relationship(
        "DocumentRecord", back_populates="index", cascade="all, delete-orphan"
    )


class DocumentRecord(Base):
    """A stored document of an index."""

    __tablename__ = "kdx_documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    index_name: Mapped[str] = mapped_column(
        String(255), ForeignKey("kdx_indexes.name", ondelete="CASCADE"), nullable=False
    )
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    fields: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list, nullable=False)
    content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    index: Mapped[IndexRecord] = relationship("IndexRecord", back_populates="documents")

    __table_args__ = (
        Index("ix_kdx_documents_identifier", "index_name", "identifier", unique=True),
    )
