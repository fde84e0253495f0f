"""Projection of records into index documents and descriptors."""

from indexsync.indexing.descriptor import IndexDescriptorBuilder
from indexsync.indexing.document import AGGREGATE_FIELD, DocumentBuilder
from indexsync.indexing.resolver import (
    AttributeSource,
    MappingAttributes,
    ObjectAttributes,
    resolve,
    resolve_path,
)
from indexsync.indexing.transforms import (
    apply_filter,
    apply_filters,
    register_filter,
    remove_stop_words,
    to_browse_value,
    to_sort_value,
    transliterate,
)

__all__ = [
    "AGGREGATE_FIELD",
    "DocumentBuilder",
    "IndexDescriptorBuilder",
    "AttributeSource",
    "MappingAttributes",
    "ObjectAttributes",
    "resolve",
    "resolve_path",
    "apply_filter",
    "apply_filters",
    "register_filter",
    "remove_stop_words",
    "to_browse_value",
    "to_sort_value",
    "transliterate",
]
