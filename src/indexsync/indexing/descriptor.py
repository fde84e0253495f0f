"""Creation descriptors for indexes."""

from __future__ import annotations

from indexsync.core.types import IndexDescriptor
from indexsync.indexing.document import AGGREGATE_FIELD
from indexsync.schema.registry import IndexSchema

DEFAULT_OPERATOR = "index.defaultoperator"
INDEX_SUMMARY = "index.summary"
INDEX_TITLE = "index.title"
DEFAULT_FIELD = "document.defaultfield"
IDENTIFIER_FIELD = "document.identifier"
TITLE_FIELD = "document.title"
UPDATED_FIELD = "document.updated"


class IndexDescriptorBuilder:
    """Derives the descriptor used to create a type's index."""

    def build(self, schema: IndexSchema) -> IndexDescriptor | None:
        """Build the descriptor of a schema's index.

        The document title comes from the field declared with ``role="title"``
        and falls back to the identifier column. When the type has an update
        timestamp column, it is wired as the document's updated field.

        Returns:
            The descriptor, or None if the type declares no fields
        """
        if not schema.declared_fields():
            return None

        name = schema.index_name()
        primary_column = schema.primary_column()
        properties = {
            DEFAULT_OPERATOR: "AND",
            INDEX_SUMMARY: name,
            INDEX_TITLE: name,
            DEFAULT_FIELD: AGGREGATE_FIELD,
            IDENTIFIER_FIELD: primary_column,
            TITLE_FIELD: f"[{primary_column}]",
        }

        updated_column = schema.update_timestamp_column()
        if updated_column:
            properties[UPDATED_FIELD] = updated_column

        title = schema.title_field()
        if title:
            properties[TITLE_FIELD] = f"[{title}]"

        return IndexDescriptor(name=name, properties=properties)
