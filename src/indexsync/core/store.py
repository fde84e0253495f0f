"""Record storage with index synchronization.

:class:`IndexedStore` wraps a SQLAlchemy session and drives the sync
controller around every mutation it performs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from sqlalchemy import MetaData, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from indexsync.config import IndexSettings
from indexsync.core.connection import DatabaseConnection
from indexsync.core.types import SearchAttributes, SyncPolicy
from indexsync.schema.registry import IndexSchema, SchemaRegistry
from indexsync.search.facade import SearchFacade
from indexsync.services.registry import ServiceRegistry
from indexsync.sync.controller import SyncController, SyncOutcome

logger = logging.getLogger(__name__)


class IndexedStore:
    """SQLAlchemy record storage that keeps indexes in sync.

    Records are persisted first; the index is written afterwards from the
    persisted state. Deletes remove the document before the record.

    The store owns one session, so records it returns stay attached and
    relations can be traversed while building documents. Use one store per
    thread.

    Example:
        store = IndexedStore("sqlite:///films.db")
        store.register(Film, fields={"actor": {"source": "actors.name"}})
        store.create_all(Base.metadata)
        film = store.insert(Film(id=7, name="The Great Escape"))
        for film in store.search_index(Film, {"name": "escape"}):
            print(film.name, film.relevance)
    """

    def __init__(
        self,
        url: str,
        registry: SchemaRegistry | None = None,
        settings: IndexSettings | None = None,
        services: ServiceRegistry | None = None,
        echo: bool = False,
    ) -> None:
        """Initialize the store.

        Args:
            url: Database URL for record storage
            registry: Schemas of indexed types; a new one by default
            settings: Indexing settings; read from the environment by default
            services: Shared index service cache
            echo: Whether to echo SQL statements
        """
        self._connection = DatabaseConnection(url, echo=echo)
        self._registry = registry if registry is not None else SchemaRegistry()
        self._settings = settings or IndexSettings()
        self._services = services if services is not None else ServiceRegistry()
        self._controller = SyncController(self._registry, self._services, self._settings)
        self._facade = SearchFacade(self._controller, self)
        self._session: Session | None = None

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    @property
    def controller(self) -> SyncController:
        return self._controller

    @property
    def services(self) -> ServiceRegistry:
        return self._services

    @property
    def session(self) -> Session:
        """The store's session, created on first use."""
        if self._session is None:
            self._session = self._connection.get_session()
        return self._session

    def close(self) -> None:
        """Close the session, the index services and the database connection."""
        if self._session is not None:
            self._session.close()
            self._session = None
        self._services.close()
        self._connection.close()

    def __enter__(self) -> IndexedStore:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    # === Schema ===

    def register(
        self, model: type, fields: Mapping[str, Any] | None = None, **options: Any
    ) -> IndexSchema:
        """Register a model for indexing. See :meth:`SchemaRegistry.register`."""
        return self._registry.register(model, fields, **options)

    def indexed(self, **options: Any) -> Callable[[type], type]:
        """Class decorator registering a model for indexing."""
        return self._registry.indexed(**options)

    def create_all(self, metadata: MetaData) -> None:
        """Create the tables of a declarative metadata."""
        metadata.create_all(self._connection.engine)

    # === Persistence ===

    def _commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    def persist(self, record: Any) -> None:
        """Write a record's pending changes."""
        self.session.add(record)
        self._commit()

    def is_changed(self, record: Any) -> bool:
        """Whether a record has attribute changes not yet written."""
        state = inspect(record, raiseerr=False)
        return bool(state is not None and state.modified)

    def insert(self, record: Any, policy: SyncPolicy | None = None) -> SyncOutcome:
        """Persist a new record, then index it.

        Returns:
            "added", "updated" or "skipped" for the index write
        """
        self.persist(record)
        return self._controller.after_insert(record, self, policy)

    def update(
        self,
        record: Any,
        values: Mapping[str, Any] | None = None,
        policy: SyncPolicy | None = None,
    ) -> SyncOutcome:
        """Apply changes to a record, persist them, then re-index it."""
        for key, value in (values or {}).items():
            setattr(record, key, value)
        self.persist(record)
        return self._controller.after_update(record, self, policy)

    def delete(self, record: Any, policy: SyncPolicy | None = None) -> bool:
        """Remove a record's document, then the record.

        Returns:
            True if a document was removed from the index
        """
        removed = self._controller.before_delete(record, policy)
        self.session.delete(record)
        self._commit()
        return removed

    def find(self, model: type, identifier: Any) -> Any | None:
        """Load a record by primary key."""
        return self.session.get(model, identifier)

    def fetch_many(self, model: type, identifiers: Sequence[Any]) -> list[Any]:
        """Load the records with the given identifiers in one query, in no set order."""
        if not identifiers:
            return []
        primary_column = self._registry.require(model).primary_column()
        column = getattr(model, primary_column)
        return list(self.session.scalars(select(model).where(column.in_(list(identifiers)))))

    # === Index operations ===

    def as_document(self, record: Any) -> Any:
        """Return the index document a record would produce."""
        return self._controller.as_document(record)

    def search_index(
        self,
        model: type,
        condition: Any = None,
        attributes: SearchAttributes | Mapping[str, Any] | None = None,
        **options: Any,
    ) -> list[Any]:
        """Search a model's index. See :meth:`SearchFacade.search_index`."""
        return self._facade.search_index(model, condition, attributes, **options)

    isearch = search_index

    def count_index(self, model: type, condition: Any = None, **options: Any) -> int:
        """Count a model's documents matching a condition."""
        return self._facade.count_index(model, condition, **options)

    def reindex(self, model: type | None = None) -> dict[str, int]:
        """Rewrite the documents of every stored record.

        Args:
            model: Type to reindex, or None for every registered type

        Returns:
            Mapping of type name to documents written
        """
        schemas = [self._registry.require(model)] if model else list(self._registry)
        written: dict[str, int] = {}
        for schema in schemas:
            records = list(self.session.scalars(select(schema.model)))
            written[schema.name] = self._controller.reindex(records)
            logger.info(f"Reindexed {written[schema.name]} {schema.name} records")
        return written
