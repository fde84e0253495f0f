"""Index schemas of record types."""

from indexsync.schema.registry import (
    FIELD_TYPES,
    IndexSchema,
    SchemaRegistry,
    field_type_for,
    storage_type_name,
)

__all__ = [
    "IndexSchema",
    "SchemaRegistry",
    "FIELD_TYPES",
    "field_type_for",
    "storage_type_name",
]
