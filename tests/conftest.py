"""Shared test fixtures for indexsync."""

import os
from collections.abc import Generator
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any

import pytest
from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from indexsync import IndexedStore, IndexSettings
from indexsync.core.types import Document, IndexDescriptor
from indexsync.exceptions import RemoteIndexError
from indexsync.services.memory import MemoryIndex, MemoryIndexService

TEST_ENDPOINT = "memory://test"


def _psycopg_available() -> bool:
    """Check if psycopg is installed."""
    try:
        import psycopg  # noqa: F401

        return True
    except ImportError:
        return False


# Skip marker for tests requiring PostgreSQL
requires_postgresql = pytest.mark.skipif(
    not _psycopg_available(),
    reason="psycopg not installed (install with: pip install indexsync[postgresql])",
)


def _now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


class Film(Base):
    __tablename__ = "films"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now
    )

    widgets: Mapped[list["Widget"]] = relationship(
        back_populates="film", cascade="all, delete-orphan"
    )


class Widget(Base):
    __tablename__ = "widgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    film_id: Mapped[int] = mapped_column(ForeignKey("films.id"))
    name: Mapped[str] = mapped_column(String(100))

    film: Mapped[Film] = relationship(back_populates="widgets")


class Poster(Base):
    """Declares its index fields inline on the columns."""

    __tablename__ = "posters"

    code: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(
        String(100), info={"index": {"role": "title", "browse": True}}
    )
    url: Mapped[str | None] = mapped_column(
        String(200), nullable=True, info={"index": {"kind": "keyword", "boolean": True}}
    )
    width: Mapped[int | None] = mapped_column(Integer, nullable=True, info={"index": True})
    modified: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, info={"mtime": True}
    )


class Credit(Base):
    """Composite primary key; cannot be indexed."""

    __tablename__ = "credits"

    film_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    person: Mapped[str] = mapped_column(String(100), primary_key=True)
    role: Mapped[str | None] = mapped_column(String(50), nullable=True)


class RecordingIndex(MemoryIndex):
    """Memory index that records every call and can fail on demand."""

    def __init__(self, descriptor: IndexDescriptor) -> None:
        super().__init__(descriptor)
        self.calls: list[tuple[str, Any]] = []
        self.fail_on: set[str] = set()

    def _record(self, operation: str, argument: Any) -> None:
        self.calls.append((operation, argument))
        if operation in self.fail_on:
            raise RemoteIndexError(
                f"{operation} failed", index_name=self.name, operation=operation
            )

    def operations(self) -> list[str]:
        return [operation for operation, _ in self.calls]

    def get_document(self, identifier: Any) -> Document | None:
        self._record("get", identifier)
        return super().get_document(identifier)

    def add_document(self, document: Document) -> None:
        self._record("add", document.identifier)
        super().add_document(document)

    def update_document(self, document: Document) -> None:
        self._record("update", document.identifier)
        super().update_document(document)

    def delete_document(self, identifier: Any) -> bool:
        self._record("delete", identifier)
        return super().delete_document(identifier)


class RecordingService(MemoryIndexService):
    index_class = RecordingIndex


@pytest.fixture
def models() -> SimpleNamespace:
    """Sample declarative models."""
    return SimpleNamespace(
        Base=Base, Film=Film, Widget=Widget, Poster=Poster, Credit=Credit
    )


@pytest.fixture
def service() -> RecordingService:
    """In-memory index service recording index calls."""
    return RecordingService("test")


@pytest.fixture
def settings() -> IndexSettings:
    return IndexSettings(endpoint=TEST_ENDPOINT)


@pytest.fixture
def store(
    service: RecordingService, settings: IndexSettings
) -> Generator[IndexedStore, None, None]:
    """IndexedStore over SQLite in-memory, indexing into the recording service."""
    indexed_store = IndexedStore("sqlite:///:memory:", settings=settings)
    indexed_store.services.register(TEST_ENDPOINT, service)
    indexed_store.create_all(Base.metadata)
    yield indexed_store
    indexed_store.close()


@pytest.fixture
def postgresql_url() -> str:
    """Get PostgreSQL URL from environment or use default.

    Tests using this fixture should also use @requires_postgresql marker.
    """
    url = os.environ.get("TEST_DATABASE_URL") or "postgresql://localhost/indexsync_test"

    if not _psycopg_available():
        pytest.skip("psycopg not installed")

    from indexsync.core.connection import DatabaseConnection
    from indexsync.exceptions import ConfigurationError

    connection = DatabaseConnection(url)
    try:
        connection.test_connection()
    except ConfigurationError:
        pytest.skip(f"Cannot connect to PostgreSQL at {url}")
    finally:
        connection.close()
    return url


# Re-export for use in test files
__all__ = ["requires_postgresql"]
