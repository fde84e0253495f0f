"""indexsync - keep a search index in step with SQLAlchemy records.

Record types declare which attributes become index fields. Every insert,
update and delete made through an :class:`IndexedStore` is mirrored into the
type's index, and index searches come back as stored records ranked by
relevance.

Example:
    from indexsync import IndexedStore

    store = IndexedStore("sqlite:///films.db")
    store.register(
        Film,
        fields={
            "name": {"filters": ["trim"], "browse": True, "sort": True},
            "actor": {"source": "actors.name"},
        },
    )
    store.create_all(Base.metadata)

    store.insert(Film(id=7, name="  The Great Escape  "))
    for film in store.search_index(Film, {"name": "escape"}, rows=20):
        print(film.name, film.relevance)
"""

from indexsync.config import IndexSettings, RetryPolicy, get_index_endpoint
from indexsync.core.store import IndexedStore
from indexsync.core.types import (
    ComputedSource,
    Document,
    FieldDeclaration,
    FieldKind,
    IndexDescriptor,
    IndexField,
    PathSource,
    SearchAttributes,
    SyncPolicy,
)
from indexsync.exceptions import (
    ConfigurationError,
    IndexSyncError,
    InvalidFieldKindError,
    PrimaryKeyError,
    QueryError,
    RemoteIndexError,
    SchemaNotFoundError,
)
from indexsync.indexing import DocumentBuilder, IndexDescriptorBuilder
from indexsync.schema import IndexSchema, SchemaRegistry
from indexsync.search import SearchFacade
from indexsync.services import (
    IndexService,
    MemoryIndexService,
    RemoteIndex,
    SearchResults,
    ServiceRegistry,
    connect_service,
)
from indexsync.sync import SyncController

__version__ = "0.1.0"

__all__ = [
    # Main classes
    "IndexedStore",
    "SyncController",
    "SearchFacade",
    # Schema
    "IndexSchema",
    "SchemaRegistry",
    "DocumentBuilder",
    "IndexDescriptorBuilder",
    # Types
    "FieldKind",
    "FieldDeclaration",
    "PathSource",
    "ComputedSource",
    "SyncPolicy",
    "Document",
    "IndexField",
    "IndexDescriptor",
    "SearchAttributes",
    # Configuration
    "IndexSettings",
    "RetryPolicy",
    "get_index_endpoint",
    # Services
    "IndexService",
    "RemoteIndex",
    "SearchResults",
    "MemoryIndexService",
    "ServiceRegistry",
    "connect_service",
    # Exceptions
    "IndexSyncError",
    "ConfigurationError",
    "PrimaryKeyError",
    "SchemaNotFoundError",
    "InvalidFieldKindError",
    "RemoteIndexError",
    "QueryError",
]
