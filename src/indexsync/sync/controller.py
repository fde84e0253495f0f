"""Keeps index documents in step with record mutations.

Record storage calls the lifecycle hooks below around each mutation:
``after_insert`` and ``after_update`` once the record is persisted, and
``before_delete`` before the record is removed. Each hook performs at most
one round trip to the index service for the record itself.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, Literal, Protocol

import tenacity

from indexsync.config import IndexSettings
from indexsync.core.types import Document, SyncPolicy
from indexsync.exceptions import ConfigurationError, RemoteIndexError
from indexsync.indexing.descriptor import IndexDescriptorBuilder
from indexsync.indexing.document import DocumentBuilder
from indexsync.schema.registry import IndexSchema, SchemaRegistry
from indexsync.services.base import IndexService, RemoteIndex
from indexsync.services.registry import ServiceRegistry

logger = logging.getLogger(__name__)

SyncOutcome = Literal["added", "updated", "skipped"]


class RecordStorage(Protocol):
    """What the controller needs from record storage after a sync."""

    def persist(self, record: Any) -> None: ...

    def is_changed(self, record: Any) -> bool: ...


class SyncController:
    """Pushes record changes to their indexes."""

    def __init__(
        self,
        registry: SchemaRegistry,
        services: ServiceRegistry | None = None,
        settings: IndexSettings | None = None,
        builder: DocumentBuilder | None = None,
        descriptor_builder: IndexDescriptorBuilder | None = None,
    ) -> None:
        self._registry = registry
        self._services = services if services is not None else ServiceRegistry()
        self._settings = settings or IndexSettings()
        self._builder = builder or DocumentBuilder()
        self._descriptor_builder = descriptor_builder or IndexDescriptorBuilder()

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    @property
    def services(self) -> ServiceRegistry:
        return self._services

    @property
    def settings(self) -> IndexSettings:
        return self._settings

    # === Resolution ===

    def policy_for(self, schema: IndexSchema, override: SyncPolicy | None = None) -> SyncPolicy:
        """Per-call override, then the type's policy, then the global default."""
        return override or schema.policy or self._settings.default_policy

    def endpoint_for(self, schema: IndexSchema) -> str:
        return schema.endpoint or self._settings.endpoint

    def service_for(self, schema: IndexSchema) -> IndexService:
        """Return the index service hosting a type's index.

        Raises:
            ConfigurationError: If the endpoint cannot be connected
        """
        endpoint = self.endpoint_for(schema)
        try:
            return self._services.get(endpoint)
        except ConfigurationError as e:
            logger.error(f"No index service for {schema.name} at {endpoint}: {e.message}")
            raise

    def get_index(self, schema: IndexSchema) -> RemoteIndex | None:
        """Return the type's index if it already exists."""
        return self.service_for(schema).get_index(schema.index_name())

    def ensure_index(self, schema: IndexSchema) -> RemoteIndex:
        """Return the type's index, creating it from its descriptor if absent.

        Raises:
            ConfigurationError: If no index can be resolved or created
        """
        service = self.service_for(schema)
        name = schema.index_name()
        index = service.get_index(name)
        if index is not None:
            return index

        descriptor = self._descriptor_builder.build(schema)
        if descriptor is not None:
            try:
                index = service.create_index(descriptor)
            except RemoteIndexError:
                # another writer may have created it since the lookup
                index = service.get_index(name)
                if index is None:
                    raise
                logger.debug(f"Index '{name}' was created concurrently, reusing it")
        if index is None:
            logger.error(f"Could not resolve or create index '{name}' for {schema.name}")
            raise ConfigurationError(
                f"Could not resolve or create index '{name}' for {schema.name}",
                {"type_name": schema.name, "index_name": name},
            )
        return index

    # === Documents ===

    def as_document(self, record: Any, document: Document | None = None) -> Document | None:
        """Build the document of a record, refilling ``document`` if given."""
        schema = self._registry.require(record)
        return self._builder.build(record, schema, document)

    def _push(self, operation: Callable[[Document], None], document: Document) -> None:
        retry = self._settings.retry
        if retry.max_attempts <= 1:
            operation(document)
            return

        for attempt in tenacity.Retrying(
            stop=tenacity.stop_after_attempt(retry.max_attempts),
            wait=tenacity.wait_exponential(multiplier=retry.multiplier, max=retry.max_wait),
            retry=tenacity.retry_if_exception_type(RemoteIndexError),
            before_sleep=lambda state: logger.warning(
                f"Index push failed (attempt {state.attempt_number}/{retry.max_attempts}): "
                f"{state.outcome.exception() if state.outcome else 'unknown error'}"
            ),
            reraise=True,
        ):
            with attempt:
                operation(document)

    def update_or_add_document(self, record: Any) -> SyncOutcome:
        """Write a record's document to its index.

        The stored document is fetched by identifier: when present it is
        refilled and replaced, otherwise the new document is added. Service
        errors propagate to the caller.
        """
        schema = self._registry.require(record)
        document = self._builder.build(record, schema)
        if document is None:
            return "skipped"

        index = self.ensure_index(schema)
        existing = index.get_document(document.identifier)
        if existing is not None:
            self._builder.build(record, schema, existing)
            self._push(index.update_document, existing)
            logger.debug(f"Updated document {document.identifier} in '{index.name}'")
            return "updated"

        self._push(index.add_document, document)
        logger.debug(f"Added document {document.identifier} to '{index.name}'")
        return "added"

    def remove_document(self, record: Any) -> bool:
        """Delete a record's document, tolerating service failures.

        Returns:
            True if a document was deleted

        Raises:
            ConfigurationError: If the index cannot be resolved
        """
        schema = self._registry.require(record)
        if not schema.declared_fields():
            return False

        identifier = getattr(record, schema.primary_column(), None)
        index = self.ensure_index(schema)
        try:
            existing = index.get_document(identifier)
            if existing is None:
                logger.debug(f"No document {identifier} in '{index.name}' to delete")
                return False
            return index.delete_document(identifier)
        except Exception as e:
            logger.warning(f"Failed to delete document {identifier} from '{index.name}': {e}")
            return False

    # === Lifecycle hooks ===

    def after_insert(
        self, record: Any, storage: RecordStorage | None = None, policy: SyncPolicy | None = None
    ) -> SyncOutcome:
        """Index a freshly persisted record if the policy asks for it."""
        schema = self._registry.get(record)
        if schema is None or not self.policy_for(schema, policy).indexes_insert():
            return "skipped"
        return self._sync(record, storage)

    def after_update(
        self, record: Any, storage: RecordStorage | None = None, policy: SyncPolicy | None = None
    ) -> SyncOutcome:
        """Re-index an updated record if the policy asks for it."""
        schema = self._registry.get(record)
        if schema is None or not self.policy_for(schema, policy).indexes_update():
            return "skipped"
        return self._sync(record, storage)

    def before_delete(self, record: Any, policy: SyncPolicy | None = None) -> bool:
        """Drop a record's document before the record itself is deleted."""
        schema = self._registry.get(record)
        if schema is None or not self.policy_for(schema, policy).indexes_delete():
            return False
        return self.remove_document(record)

    def _sync(self, record: Any, storage: RecordStorage | None) -> SyncOutcome:
        outcome = self.update_or_add_document(record)
        if outcome == "skipped":
            return outcome
        self.update_dependencies(record, storage)
        # computed sources may cache values on the record
        if storage is not None and storage.is_changed(record):
            logger.debug(f"Record {type(record).__name__} changed while indexing, persisting")
            storage.persist(record)
        return outcome

    def update_dependencies(self, record: Any, storage: RecordStorage | None = None) -> int:
        """Re-index records whose documents derive from this one.

        Dependents come from callables registered with
        :meth:`IndexSchema.add_dependency`. Types without any are left alone.

        Returns:
            Number of dependent documents written
        """
        schema = self._registry.get(record)
        if schema is None:
            return 0

        written = 0
        for resolve in schema.dependents:
            for dependent in resolve(record) or ():
                if dependent is None or self._registry.get(dependent) is None:
                    continue
                if self.update_or_add_document(dependent) != "skipped":
                    written += 1
                    if storage is not None and storage.is_changed(dependent):
                        storage.persist(dependent)
        if written:
            logger.debug(f"Re-indexed {written} dependents of {schema.name}")
        return written

    def reindex(self, records: Iterable[Any]) -> int:
        """Write the documents of many records, returning how many were written."""
        written = 0
        for record in records:
            if self.update_or_add_document(record) != "skipped":
                written += 1
        return written
