"""Resolution of field sources against records.

A source resolves to a list of values, never a single optional value: one
path segment may fan a record out into many related records
(``widgets.name`` yields one value per widget). Values that fail to resolve
are dropped silently, so a bad path produces an empty list rather than an
error.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from indexsync.core.types import ComputedSource, PathSource

# values with no attributes worth resolving
_PRIMITIVES = (str, bytes, int, float, bool, Decimal)
# values never spread into members
_SCALARS = (*_PRIMITIVES, date, datetime, time)


@runtime_checkable
class AttributeSource(Protocol):
    """Anything that can look up a named attribute, returning None on a miss."""

    def resolve_attribute(self, name: str) -> Any | None: ...


def _takes_no_arguments(func: Callable[..., Any]) -> bool:
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        # builtins without introspectable signatures
        return True
    return all(
        parameter.default is not parameter.empty
        or parameter.kind in (parameter.VAR_POSITIONAL, parameter.VAR_KEYWORD)
        for parameter in signature.parameters.values()
    )


class ObjectAttributes:
    """Attribute lookup on an object (records, related records, value objects).

    Zero-argument methods are called, so paths such as ``created_at.timestamp``
    resolve to the method's result.
    """

    def __init__(self, obj: Any) -> None:
        self._obj = obj

    def resolve_attribute(self, name: str) -> Any | None:
        value = getattr(self._obj, name, None)
        if callable(value) and not isinstance(value, type):
            return value() if _takes_no_arguments(value) else None
        return value


class MappingAttributes:
    """Key lookup on a plain mapping."""

    def __init__(self, mapping: Mapping[str, Any]) -> None:
        self._mapping = mapping

    def resolve_attribute(self, name: str) -> Any | None:
        return self._mapping.get(name)


def attributes_of(value: Any) -> AttributeSource | None:
    """Return the attribute-lookup capability for a value, if it has one."""
    if value is None or isinstance(value, _PRIMITIVES):
        return None
    if isinstance(value, AttributeSource):
        return value
    if isinstance(value, Mapping):
        return MappingAttributes(value)
    return ObjectAttributes(value)


def flatten(value: Any) -> list[Any]:
    """Spread collections into their members and drop None."""
    if value is None:
        return []
    if isinstance(value, _SCALARS) or isinstance(value, Mapping):
        return [value]
    if isinstance(value, Iterable) and not isinstance(value, AttributeSource):
        return [item for item in value if item is not None]
    return [value]


def resolve_path(record: Any, source: PathSource) -> list[Any]:
    """Walk a dotted path from a record, fanning out over collections."""
    values: list[Any] = [record]
    for segment in source.segments:
        resolved: list[Any] = []
        for value in values:
            attributes = attributes_of(value)
            if attributes is None:
                continue
            resolved.extend(flatten(attributes.resolve_attribute(segment)))
        values = resolved
        if not values:
            break
    return values


def resolve(record: Any, source: PathSource | ComputedSource) -> list[Any]:
    """Resolve a field source against a record into zero or more values."""
    if isinstance(source, ComputedSource):
        return flatten(source.func(record))
    return resolve_path(record, source)
