"""Index services: where documents live and queries run."""

from __future__ import annotations

from indexsync.exceptions import ConfigurationError
from indexsync.services.base import IndexService, RemoteIndex, SearchHit, SearchResults
from indexsync.services.memory import MemoryIndex, MemoryIndexService
from indexsync.services.registry import ServiceRegistry

SQL_SCHEMES = ("sqlite", "postgresql")


def connect_service(endpoint: str) -> IndexService:
    """Create an index service for an endpoint URL.

    Args:
        endpoint: ``memory://<name>`` for an in-process index, or a SQLite /
            PostgreSQL database URL

    Returns:
        A new index service

    Raises:
        ConfigurationError: If the endpoint scheme is not supported
    """
    scheme, separator, rest = endpoint.partition("://")
    if not separator:
        raise ConfigurationError(
            f"Index endpoint '{endpoint}' is not a URL", {"endpoint": endpoint}
        )
    if scheme == "memory":
        return MemoryIndexService(rest or "default")

    if scheme.split("+")[0] in SQL_SCHEMES:
        from indexsync.services.sql import SQLIndexService

        return SQLIndexService(endpoint)

    raise ConfigurationError(
        f"Unsupported index endpoint scheme '{scheme}'. Supported: memory, sqlite, postgresql",
        {"endpoint": endpoint},
    )


__all__ = [
    "IndexService",
    "MemoryIndex",
    "MemoryIndexService",
    "RemoteIndex",
    "SearchHit",
    "SearchResults",
    "ServiceRegistry",
    "connect_service",
]
