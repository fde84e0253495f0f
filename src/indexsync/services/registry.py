"""Cache of connected index services keyed by endpoint."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from indexsync.services.base import IndexService

logger = logging.getLogger(__name__)


class ServiceRegistry:
    """Connects each endpoint once and hands out the shared service.

    Safe to use from several threads; connection happens under the lock so a
    given endpoint is never connected twice.
    """

    def __init__(self, connect: Callable[[str], IndexService] | None = None) -> None:
        if connect is None:
            from indexsync.services import connect_service

            connect = connect_service
        self._connect = connect
        self._services: dict[str, IndexService] = {}
        self._lock = threading.Lock()

    def __contains__(self, endpoint: str) -> bool:
        with self._lock:
            return endpoint in self._services

    def __len__(self) -> int:
        with self._lock:
            return len(self._services)

    def get(self, endpoint: str) -> IndexService:
        """Return the service for an endpoint, connecting on first use."""
        with self._lock:
            service = self._services.get(endpoint)
            if service is None:
                service = self._connect(endpoint)
                self._services[endpoint] = service
                logger.debug(f"Connected index service for {endpoint}")
            return service

    def register(self, endpoint: str, service: IndexService) -> None:
        """Use an already-constructed service for an endpoint."""
        with self._lock:
            self._services[endpoint] = service

    def close(self) -> None:
        """Close and forget every connected service."""
        with self._lock:
            services = list(self._services.values())
            self._services.clear()
        for service in services:
            service.close()
