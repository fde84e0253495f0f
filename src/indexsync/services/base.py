"""Index service interface.

A service hosts named indexes; an index stores documents keyed by their
identifier and answers queries with identifiers ranked by relevance. Both
sides are abstract so the sync and search layers never depend on a concrete
backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from indexsync.core.types import Document, IndexDescriptor
from indexsync.query.syntax import QuerySyntax


@dataclass
class SearchHit:
    """One ranked search result."""

    identifier: Any
    relevance: float


@dataclass
class SearchResults:
    """A page of ranked results plus the total number of matches."""

    hits: list[SearchHit] = field(default_factory=list)
    total: int = 0

    @property
    def identifiers(self) -> list[Any]:
        return [hit.identifier for hit in self.hits]


class RemoteIndex(ABC):
    """A named index hosted by an :class:`IndexService`."""

    def __init__(self, descriptor: IndexDescriptor) -> None:
        self._descriptor = descriptor

    @property
    def name(self) -> str:
        return self._descriptor.name

    @property
    def descriptor(self) -> IndexDescriptor:
        return self._descriptor

    @abstractmethod
    def get_document(self, identifier: Any) -> Document | None:
        """Fetch a document by identifier.

        Returns:
            The stored document, or None if absent
        """
        ...

    @abstractmethod
    def add_document(self, document: Document) -> None:
        """Store a new document."""
        ...

    @abstractmethod
    def update_document(self, document: Document) -> None:
        """Replace the stored document with the same identifier."""
        ...

    @abstractmethod
    def delete_document(self, identifier: Any) -> bool:
        """Remove a document.

        Returns:
            True if a document was removed
        """
        ...

    @abstractmethod
    def search(
        self,
        query: str,
        page: int = 1,
        count: int = 10,
        sort: str | None = None,
    ) -> SearchResults:
        """Run a query and return one page of ranked hits.

        Args:
            query: Query string in the service's grammar
            page: 1-based page number
            count: Hits per page
            sort: Field to order by instead of relevance; prefix with "-"
                for descending order
        """
        ...

    def count(self, query: str) -> int:
        """Return the number of documents matching a query."""
        return self.search(query, page=1, count=1).total


class IndexService(ABC):
    """A service endpoint hosting indexes."""

    @property
    @abstractmethod
    def query_syntax(self) -> QuerySyntax:
        """Grammar this service's indexes understand."""
        ...

    @abstractmethod
    def get_index(self, name: str) -> RemoteIndex | None:
        """Return the named index, or None if it does not exist."""
        ...

    @abstractmethod
    def create_index(self, descriptor: IndexDescriptor) -> RemoteIndex:
        """Create an index from a descriptor and return it."""
        ...

    def close(self) -> None:
        """Release any resources held by the service."""
        return None
