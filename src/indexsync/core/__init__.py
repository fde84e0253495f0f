"""Core components for indexsync."""

from indexsync.core.connection import DatabaseConnection
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

__all__ = [
    "DatabaseConnection",
    "FieldKind",
    "FieldDeclaration",
    "PathSource",
    "ComputedSource",
    "SyncPolicy",
    "Document",
    "IndexField",
    "IndexDescriptor",
    "SearchAttributes",
]
