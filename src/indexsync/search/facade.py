"""Index search returning stored records ranked by relevance."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from indexsync.core.types import SearchAttributes
from indexsync.schema.registry import IndexSchema
from indexsync.sync.controller import SyncController

logger = logging.getLogger(__name__)


class RecordLoader(Protocol):
    """Bulk record lookup by identifier."""

    def fetch_many(self, model: type, identifiers: Sequence[Any]) -> list[Any]: ...


class SearchFacade:
    """Runs index queries and maps the hits back onto stored records.

    Results keep the index's ranking. Each record gets a ``relevance``
    attribute holding its score. Hits whose record no longer exists in
    storage are dropped.
    """

    def __init__(self, controller: SyncController, loader: RecordLoader) -> None:
        self._controller = controller
        self._loader = loader

    def _attributes(
        self, attributes: SearchAttributes | Mapping[str, Any] | None, options: dict[str, Any]
    ) -> SearchAttributes:
        if isinstance(attributes, SearchAttributes):
            if not options:
                return attributes
            attributes = attributes.model_dump()
        return SearchAttributes.model_validate({**(attributes or {}), **options})

    def _query(self, schema: IndexSchema, condition: Any, attributes: SearchAttributes) -> str:
        if attributes.search_terms:
            return attributes.search_terms
        return self._controller.service_for(schema).query_syntax.where(condition)

    def search_index(
        self,
        model: type,
        condition: Any = None,
        attributes: SearchAttributes | Mapping[str, Any] | None = None,
        **options: Any,
    ) -> list[Any]:
        """Search a type's index and return the matching records.

        Args:
            model: Indexed record type
            condition: Structured condition, raw query string, or None for
                every document
            attributes: Paging and sorting (``start_page``/``page``,
                ``count``/``rows``, ``sort``, ``search_terms``)
            **options: Attributes given as keywords

        Returns:
            Records in relevance order, each with a ``relevance`` attribute

        Raises:
            SchemaNotFoundError: If the type is not registered
            QueryError: If the condition cannot be expressed for the service
        """
        schema = self._controller.registry.require(model)
        attrs = self._attributes(attributes, options)
        index = self._controller.get_index(schema)
        if index is None:
            logger.debug(f"No index '{schema.index_name()}' yet for {schema.name}")
            return []

        settings = self._controller.settings
        query = self._query(schema, condition, attrs)
        results = index.search(
            query,
            page=attrs.start_page or settings.default_page,
            count=attrs.count or settings.default_count,
            sort=attrs.sort,
        )
        if not results.hits:
            return []

        identifiers = [self._coerce(schema, hit.identifier) for hit in results.hits]
        primary_column = schema.primary_column()
        by_identifier = {
            getattr(record, primary_column): record
            for record in self._loader.fetch_many(schema.model, identifiers)
        }

        records = []
        for identifier, hit in zip(identifiers, results.hits, strict=True):
            record = by_identifier.get(identifier)
            if record is None:
                logger.debug(
                    f"Dropping hit {identifier!r} from '{index.name}': no stored {schema.name}"
                )
                continue
            record.relevance = hit.relevance
            records.append(record)
        return records

    isearch = search_index

    def count_index(self, model: type, condition: Any = None, **options: Any) -> int:
        """Return the number of documents matching a condition."""
        schema = self._controller.registry.require(model)
        attrs = self._attributes(None, options)
        index = self._controller.get_index(schema)
        if index is None:
            return 0
        return index.count(self._query(schema, condition, attrs))

    def _coerce(self, schema: IndexSchema, identifier: Any) -> Any:
        """Convert an identifier from the index to the primary column's Python type."""
        column = schema.column_info(schema.primary_column())
        if column is None or identifier is None:
            return identifier
        try:
            python_type = column.type.python_type
        except NotImplementedError:
            return identifier
        if isinstance(identifier, python_type):
            return identifier
        try:
            return python_type(identifier)
        except (TypeError, ValueError):
            return identifier
