"""SQL-backed index service.

Documents are stored in ``kdx_documents``; full-text search runs over each
document's aggregate field using SQLite FTS5 (ranked with ``bm25``) or a
PostgreSQL ``tsvector`` column (ranked with ``ts_rank``).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import delete, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from indexsync.core.connection import DatabaseConnection
from indexsync.core.types import Document, IndexDescriptor
from indexsync.exceptions import RemoteIndexError
from indexsync.indexing.descriptor import IDENTIFIER_FIELD
from indexsync.indexing.document import AGGREGATE_FIELD
from indexsync.query.syntax import FullTextSyntax, QuerySyntax
from indexsync.services.base import IndexService, RemoteIndex, SearchHit, SearchResults
from indexsync.services.models import Base, DocumentRecord, IndexRecord

logger = logging.getLogger(__name__)


class SQLIndex(RemoteIndex):
    """An index stored in SQL tables."""

    def __init__(self, descriptor: IndexDescriptor, service: SQLIndexService) -> None:
        super().__init__(descriptor)
        self._service = service

    def _to_document(self, row: DocumentRecord) -> Document:
        return Document.model_validate(
            {
                "identifier_field": self.descriptor.properties.get(IDENTIFIER_FIELD),
                "fields": row.fields,
            }
        )

    def _find(self, session: Session, identifier: Any) -> DocumentRecord | None:
        return session.scalars(
            select(DocumentRecord).where(
                DocumentRecord.index_name == self.name,
                DocumentRecord.identifier == str(identifier),
            )
        ).first()

    def get_document(self, identifier: Any) -> Document | None:
        with self._service.session_scope(self.name, "get") as session:
            row = self._find(session, identifier)
            return self._to_document(row) if row else None

    def add_document(self, document: Document) -> None:
        identifier = self._identifier(document, "add")
        payload = document.model_dump(mode="json")["fields"]
        content = str(document.first(AGGREGATE_FIELD) or "")
        with self._service.session_scope(self.name, "add") as session:
            if self._find(session, identifier) is not None:
                raise RemoteIndexError(
                    f"Document '{identifier}' already exists in '{self.name}'",
                    index_name=self.name,
                    operation="add",
                )
            row = DocumentRecord(
                index_name=self.name, identifier=identifier, fields=payload, content=content
            )
            session.add(row)
            session.flush()
            self._service.write_fts(session, row)

    def update_document(self, document: Document) -> None:
        identifier = self._identifier(document, "update")
        with self._service.session_scope(self.name, "update") as session:
            row = self._find(session, identifier)
            if row is None:
                raise RemoteIndexError(
                    f"Document '{identifier}' does not exist in '{self.name}'",
                    index_name=self.name,
                    operation="update",
                )
            row.fields = document.model_dump(mode="json")["fields"]
            row.content = str(document.first(AGGREGATE_FIELD) or "")
            session.flush()
            self._service.write_fts(session, row)

    def delete_document(self, identifier: Any) -> bool:
        with self._service.session_scope(self.name, "delete") as session:
            row = self._find(session, identifier)
            if row is None:
                return False
            self._service.delete_fts(session, row.id)
            session.delete(row)
            return True

    def _identifier(self, document: Document, operation: str) -> str:
        if document.identifier is None:
            raise RemoteIndexError(
                f"Document has no identifier for index '{self.name}'",
                index_name=self.name,
                operation=operation,
            )
        return str(document.identifier)

    def search(
        self,
        query: str,
        page: int = 1,
        count: int = 10,
        sort: str | None = None,
    ) -> SearchResults:
        with self._service.session_scope(self.name, "search") as session:
            rows = self._service.match(session, self.name, query)

        if sort:
            descending = sort.startswith("-")
            sort_field = sort.lstrip("-")

            def sort_value(fields: list[dict[str, Any]]) -> str | None:
                for entry in fields:
                    if entry.get("name") == sort_field:
                        return str(entry.get("value"))
                return None

            present = [row for row in rows if sort_value(row[2]) is not None]
            missing = [row for row in rows if sort_value(row[2]) is None]
            present.sort(key=lambda row: sort_value(row[2]) or "", reverse=descending)
            rows = present + missing

        start = (max(page, 1) - 1) * count
        hits = [
            SearchHit(identifier=identifier, relevance=score)
            for identifier, score, _ in rows[start : start + count]
        ]
        return SearchResults(hits=hits, total=len(rows))


class SQLIndexService(IndexService):
    """Index service storing indexes in a SQLite or PostgreSQL database."""

    def __init__(self, url: str | DatabaseConnection, echo: bool = False) -> None:
        """Initialize the service and create its tables.

        Args:
            url: Database URL or an existing connection
            echo: Whether to echo SQL statements
        """
        if isinstance(url, DatabaseConnection):
            self._connection = url
        else:
            self._connection = DatabaseConnection(url, echo=echo)
        self._is_postgresql = self._connection.is_postgresql
        self._syntax = FullTextSyntax(self._connection.dialect)
        self._ensure_tables()

    def __repr__(self) -> str:
        return f"SQLIndexService({self._connection.url!r})"

    @property
    def query_syntax(self) -> QuerySyntax:
        return self._syntax

    def _ensure_tables(self) -> None:
        """Create index tables and the full-text structures if missing."""
        engine = self._connection.engine
        Base.metadata.create_all(engine)
        with Session(engine) as session:
            if self._is_postgresql:
                session.execute(
                    text("""
                    ALTER TABLE kdx_documents
                    ADD COLUMN IF NOT EXISTS tsv tsvector
                    GENERATED ALWAYS AS (to_tsvector('english', content)) STORED
                """)
                )
                session.execute(
                    text(
                        "CREATE INDEX IF NOT EXISTS ix_kdx_documents_fts "
                        "ON kdx_documents USING gin(tsv)"
                    )
                )
            else:
                session.execute(
                    text("""
                    CREATE VIRTUAL TABLE IF NOT EXISTS kdx_documents_fts USING fts5(
                        document_id UNINDEXED,
                        index_name UNINDEXED,
                        content,
                        tokenize='porter unicode61 remove_diacritics 2'
                    )
                """)
                )
            session.commit()

    @contextmanager
    def session_scope(self, index_name: str | None, operation: str) -> Iterator[Session]:
        """Session committed on success; database errors become RemoteIndexError."""
        session = self._connection.get_session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise RemoteIndexError(
                f"Index {operation} failed on '{index_name}': {e}",
                index_name=index_name,
                operation=operation,
            ) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def write_fts(self, session: Session, row: DocumentRecord) -> None:
        """Refresh the SQLite FTS5 entry of a document row."""
        if self._is_postgresql:
            return
        self.delete_fts(session, row.id)
        session.execute(
            text("""
            INSERT INTO kdx_documents_fts (document_id, index_name, content)
            VALUES (:document_id, :index_name, :content)
        """),
            {"document_id": row.id, "index_name": row.index_name, "content": row.content},
        )

    def delete_fts(self, session: Session, document_id: str) -> None:
        if self._is_postgresql:
            return
        session.execute(
            text("DELETE FROM kdx_documents_fts WHERE document_id = :document_id"),
            {"document_id": document_id},
        )

    def match(
        self, session: Session, index_name: str, query: str
    ) -> list[tuple[str, float, list[dict[str, Any]]]]:
        """Return (identifier, relevance, fields) of every matching document, best first."""
        params: dict[str, Any] = {"index_name": index_name, "query": query}
        if not query.strip():
            result = session.execute(
                text("""
                SELECT identifier, 1.0 AS score, fields FROM kdx_documents
                WHERE index_name = :index_name
                ORDER BY created_at
            """),
                params,
            )
        elif self._is_postgresql:
            result = session.execute(
                text("""
                SELECT identifier, ts_rank(tsv, query) AS score, fields
                FROM kdx_documents, to_tsquery('english', :query) query
                WHERE index_name = :index_name AND tsv @@ query
                ORDER BY score DESC
            """),
                params,
            )
        else:
            result = session.execute(
                text("""
                SELECT d.identifier, bm25(kdx_documents_fts) AS score, d.fields
                FROM kdx_documents_fts
                JOIN kdx_documents d ON d.id = kdx_documents_fts.document_id
                WHERE kdx_documents_fts MATCH :query
                  AND kdx_documents_fts.index_name = :index_name
                ORDER BY score
            """),
                params,
            )

        rows = []
        for identifier, score, fields in result.fetchall():
            if isinstance(fields, str):
                fields = json.loads(fields)
            # SQLite bm25() is negative, lower is better
            relevance = float(score) if self._is_postgresql or not query.strip() else -float(score)
            rows.append((identifier, relevance, fields or []))
        return rows

    def get_index(self, name: str) -> SQLIndex | None:
        with self.session_scope(name, "get_index") as session:
            record = session.get(IndexRecord, name)
            if record is None:
                return None
            descriptor = IndexDescriptor(name=record.name, properties=dict(record.properties))
        return SQLIndex(descriptor, self)

    def create_index(self, descriptor: IndexDescriptor) -> SQLIndex:
        try:
            with self.session_scope(descriptor.name, "create_index") as session:
                session.add(IndexRecord(name=descriptor.name, properties=descriptor.properties))
        except RemoteIndexError as e:
            if isinstance(e.__cause__, IntegrityError):
                raise RemoteIndexError(
                    f"Index '{descriptor.name}' already exists",
                    index_name=descriptor.name,
                    operation="create",
                ) from e
            raise
        logger.info(f"Created index '{descriptor.name}' in {self._connection.url}")
        return SQLIndex(descriptor, self)

    def drop_index(self, name: str) -> bool:
        """Remove an index and all its documents."""
        with self.session_scope(name, "drop_index") as session:
            if not self._is_postgresql:
                session.execute(
                    text("DELETE FROM kdx_documents_fts WHERE index_name = :name"), {"name": name}
                )
            session.execute(delete(DocumentRecord).where(DocumentRecord.index_name == name))
            deleted = session.execute(delete(IndexRecord).where(IndexRecord.name == name))
            return bool(deleted.rowcount)

    def close(self) -> None:
        self._connection.close()
