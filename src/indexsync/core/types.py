"""Core types and specifications for indexsync.

Field declarations and sync policies are schema-time values: they are built
once when a record type is registered and never mutated afterwards. Documents
and descriptors are derived per operation and thrown away after use.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from indexsync.exceptions import InvalidFieldKindError


class FieldKind(StrEnum):
    """How the index service treats a field value."""

    TEXT = "text"  # tokenized, searchable, stored
    KEYWORD = "keyword"  # exact match, not tokenized
    UNSTORED = "unstored"  # searchable but not returned
    SORTED = "sorted"  # synthetic sort_/browse_ fields

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid field kind values."""
        return [k.value for k in cls]


class PathSource(BaseModel):
    """Dotted accessor chain over a record and its relations.

    A leading ``me`` segment refers to the record itself and is dropped.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["path"] = "path"
    path: str

    @field_validator("path")
    @classmethod
    def _drop_self_segment(cls, value: str) -> str:
        segments = value.split(".")
        if segments and segments[0].lower() == "me":
            segments = segments[1:]
        return ".".join(segments)

    @property
    def segments(self) -> tuple[str, ...]:
        """Accessor names in traversal order."""
        return tuple(self.path.split(".")) if self.path else ()


class ComputedSource(BaseModel):
    """Function of the record returning a sequence of values."""

    model_config = ConfigDict(frozen=True)

    type: Literal["computed"] = "computed"
    func: Callable[[Any], Any]


ValueSource = Annotated[PathSource | ComputedSource, Field(discriminator="type")]


class FieldDeclaration(BaseModel):
    """Declaration of one index field on a record type.

    Accepts the loose shapes schema authors tend to write: ``source`` as a
    dotted string or a callable, ``type`` as an alias of ``kind``, a single
    ``filter`` or a list of ``filters``, ``exclude_from_default`` as an alias
    of ``exclude_from_aggregate`` and ``boolean=True`` for the ``has`` clause.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str
    source: ValueSource
    kind: FieldKind | None = Field(default=None, alias="type")
    browse: bool = False
    sort: bool = False
    boolean: str | None = None
    filters: tuple[str, ...] = ()
    exclude_from_aggregate: bool = False
    role: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_shapes(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        source = data.get("source")
        if source is None:
            data["source"] = PathSource(path=data.get("name", ""))
        elif isinstance(source, str):
            data["source"] = PathSource(path=source)
        elif callable(source) and not isinstance(source, BaseModel):
            data["source"] = ComputedSource(func=source)

        filters: list[str] = []
        for key in ("filter", "filters"):
            value = data.pop(key, None)
            if not value:
                continue
            if isinstance(value, str):
                filters.append(value)
            else:
                filters.extend(value)
        data["filters"] = tuple(filters)

        if "exclude_from_default" in data:
            excluded = data.pop("exclude_from_default")
            data.setdefault("exclude_from_aggregate", bool(excluded))

        if "kind" in data and "type" not in data:
            data["type"] = data.pop("kind")

        return data

    @field_validator("kind", mode="before")
    @classmethod
    def _check_kind(cls, value: Any) -> Any:
        if value is None or value == "" or isinstance(value, FieldKind):
            return value or None
        if str(value) not in FieldKind.values():
            raise InvalidFieldKindError(str(value))
        return FieldKind(str(value))

    @field_validator("boolean", mode="before")
    @classmethod
    def _clause_name(cls, value: Any) -> str | None:
        # a numeric or truthy flag means the default "has" clause
        if value is None or value is False:
            return None
        if value is True or isinstance(value, int):
            return "has" if value else None
        text = str(value)
        if not text or text == "0":
            return None
        return "has" if text.isdigit() else text

    @property
    def effective_kind(self) -> FieldKind:
        """Declared kind, defaulting to text."""
        return self.kind or FieldKind.TEXT

    @property
    def is_title(self) -> bool:
        """Whether this field supplies the document title."""
        return self.role == "title"


class SyncPolicy(BaseModel):
    """When a record type pushes changes to its index.

    ``auto_index`` forces indexing on every insert and update regardless of
    the two per-event flags, and is the only flag that propagates deletes.
    """

    model_config = ConfigDict(frozen=True)

    index_on_insert: bool = True
    index_on_update: bool = True
    auto_index: bool = False

    def indexes_insert(self) -> bool:
        return self.index_on_insert or self.auto_index

    def indexes_update(self) -> bool:
        return self.index_on_update or self.auto_index

    def indexes_delete(self) -> bool:
        return self.auto_index


class IndexField(BaseModel):
    """A single (name, value, kind) entry of a document."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: Any
    kind: FieldKind


class Document(BaseModel):
    """Fielded unit submitted to and fetched from an index.

    A document maps to exactly one record. It is rebuilt from scratch on
    every sync, so the only mutation it supports is clearing and refilling.
    """

    identifier_field: str | None = None
    fields: list[IndexField] = Field(default_factory=list)

    def add(self, name: str, value: Any, kind: FieldKind | str) -> IndexField:
        """Append a field entry."""
        entry = IndexField(name=name, value=value, kind=FieldKind(kind))
        self.fields.append(entry)
        return entry

    def clear_fields(self) -> None:
        """Drop every field entry, keeping the identifier field name."""
        self.fields.clear()

    def get(self, name: str) -> list[Any]:
        """Return all values of the named field, in insertion order."""
        return [f.value for f in self.fields if f.name == name]

    def first(self, name: str) -> Any | None:
        """Return the first value of the named field, or None."""
        for entry in self.fields:
            if entry.name == name:
                return entry.value
        return None

    def kind_of(self, name: str) -> FieldKind | None:
        """Return the kind of the first entry with this name."""
        for entry in self.fields:
            if entry.name == name:
                return entry.kind
        return None

    def names(self) -> list[str]:
        """Return distinct field names in insertion order."""
        return list(dict.fromkeys(f.name for f in self.fields))

    @property
    def identifier(self) -> Any | None:
        """Value of the identifier field."""
        if self.identifier_field is None:
            return None
        return self.first(self.identifier_field)


class IndexDescriptor(BaseModel):
    """Creation descriptor for an index (name plus service properties)."""

    name: str
    properties: dict[str, str] = Field(default_factory=dict)


class SearchAttributes(BaseModel):
    """Paging and sorting attributes for an index search.

    ``page`` and ``rows`` are accepted as aliases of ``start_page`` and
    ``count``; zero or missing values fall back to the defaults.
    """

    model_config = ConfigDict(extra="ignore")

    search_terms: str | None = None
    start_page: int = 1
    count: int | None = None
    sort: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _apply_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        data["search_terms"] = data.get("search_terms") or data.get("searchTerms")
        data["start_page"] = (
            data.get("start_page") or data.get("startPage") or data.get("page") or 1
        )
        data["count"] = data.get("count") or data.get("rows")
        return data
