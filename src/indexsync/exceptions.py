"""Custom exceptions for indexsync.

Errors carry a human-readable message plus a context dict so that callers
(and logs) can tell a misconfigured schema apart from a flaky index service.
"""

from __future__ import annotations

from typing import Any


class IndexSyncError(Exception):
    """Base exception for all indexsync errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConfigurationError(IndexSyncError):
    """Indexing is misconfigured for a record type.

    Raised for systemic problems (missing or composite primary keys, no
    reachable index service) rather than per-record failures.
    """

    pass


class PrimaryKeyError(ConfigurationError):
    """Record type does not have exactly one primary column."""

    def __init__(self, type_name: str, primary_columns: list[str]) -> None:
        if primary_columns:
            message = (
                f"Indexing requires one primary column; '{type_name}' has "
                f"{len(primary_columns)}: {', '.join(primary_columns)}"
            )
        else:
            message = f"Indexing requires one primary column; '{type_name}' has none"
        super().__init__(
            message, {"type_name": type_name, "primary_columns": primary_columns}
        )
        self.type_name = type_name
        self.primary_columns = primary_columns


class SchemaNotFoundError(ConfigurationError):
    """Record type was never registered for indexing."""

    def __init__(self, type_name: str, registered: list[str] | None = None) -> None:
        available = registered or []
        if available:
            message = (
                f"No index schema registered for '{type_name}'. "
                f"Registered types: {', '.join(available)}"
            )
        else:
            message = f"No index schema registered for '{type_name}'. No types are registered."
        super().__init__(message, {"type_name": type_name, "registered": available})
        self.type_name = type_name


class InvalidFieldKindError(IndexSyncError):
    """Unknown index field kind in a declaration."""

    VALID_KINDS = ["text", "keyword", "unstored", "sorted"]

    def __init__(self, kind: str) -> None:
        message = f"Invalid field kind '{kind}'. Valid kinds: {', '.join(self.VALID_KINDS)}"
        super().__init__(message, {"kind": kind, "valid_kinds": self.VALID_KINDS})
        self.kind = kind


class RemoteIndexError(IndexSyncError):
    """The index service failed while serving a request."""

    def __init__(
        self, message: str, index_name: str | None = None, operation: str | None = None
    ) -> None:
        super().__init__(message, {"index_name": index_name, "operation": operation})
        self.index_name = index_name
        self.operation = operation


class QueryError(IndexSyncError):
    """A search condition cannot be expressed in the target query grammar."""

    pass
