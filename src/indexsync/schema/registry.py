"""Index schemas for record types.

An :class:`IndexSchema` holds everything indexing needs to know about one
SQLAlchemy model: its declared fields, index name, endpoint override, sync
policy and primary column. :class:`SchemaRegistry` maps models to schemas.

Fields are declared either inline on a column::

    name: Mapped[str] = mapped_column(
        String(100), info={"index": {"kind": "text", "browse": True, "sort": True}}
    )

or as derived fields when registering the model::

    registry.register(
        Film,
        fields={
            "actor": {"source": "actors.name", "kind": "text"},
            "has_poster": {"source": "poster_url", "boolean": True},
        },
    )
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Any

from sqlalchemy import Column, inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import Mapper
from sqlalchemy.types import TypeDecorator

from indexsync.core.types import FieldDeclaration, FieldKind, SyncPolicy
from indexsync.exceptions import ConfigurationError, PrimaryKeyError, SchemaNotFoundError

logger = logging.getLogger(__name__)

_K = FieldKind.KEYWORD
_T = FieldKind.TEXT

# Native storage type names (lowercased) from several database dialects,
# plus SQLAlchemy's generic type names, mapped onto index field kinds.
FIELD_TYPES: dict[str, FieldKind] = {
    # MySQL
    "bigint": _K,
    "double": _K,
    "decimal": _K,
    "float": _K,
    "int": _K,
    "mediumint": _K,
    "smallint": _K,
    "tinyint": _K,
    "char": _T,
    "varchar": _T,
    "longtext": _T,
    "mediumtext": _T,
    "text": _T,
    "tinytext": _T,
    "tinyblob": _T,
    "blob": _T,
    "mediumblob": _T,
    "longblob": _T,
    "enum": _T,
    "set": _T,
    "date": _T,
    "datetime": _T,
    "time": _T,
    "timestamp": _T,
    "year": _T,
    # Oracle
    "number": _K,
    "varchar2": _T,
    "nvarchar2": _T,
    "long": _K,
    "clob": _T,
    "nclob": _T,
    # Sybase / SQL Server
    "money": _K,
    "real": _K,
    "comment": _T,
    "bit": _K,
    "nvarchar": _T,
    "nchar": _T,
    # PostgreSQL / SQLite
    "integer": _K,
    "numeric": _K,
    "boolean": _K,
    "serial": _K,
    "bigserial": _K,
    "double_precision": _K,
    "uuid": _K,
    "character varying": _T,
    "timestamptz": _T,
    # SQLAlchemy generic names
    "big_integer": _K,
    "small_integer": _K,
    "string": _T,
    "unicode": _T,
    "unicode_text": _T,
}


def storage_type_name(storage_type: Any) -> str | None:
    """Return the lowercased base name of a storage type.

    Accepts a type name ("VARCHAR(50)"), a SQLAlchemy type instance or a
    SQLAlchemy type class.
    """
    if storage_type is None:
        return None
    if isinstance(storage_type, TypeDecorator):
        storage_type = storage_type.impl
    if isinstance(storage_type, str):
        name = storage_type
    else:
        name = getattr(storage_type, "__visit_name__", None) or type(storage_type).__name__
    return str(name).split("(")[0].strip().lower() or None


def field_type_for(storage_type: Any) -> FieldKind | None:
    """Map a storage type onto an index field kind.

    Returns None for types with no mapping; the caller then has to declare
    a kind explicitly (or accept the text default).
    """
    name = storage_type_name(storage_type)
    if name is None:
        return None
    return FIELD_TYPES.get(name)


def _column_type(column_info: Any) -> Any:
    if column_info is None:
        return None
    if isinstance(column_info, Mapping):
        return column_info.get("data_type") or column_info.get("type")
    return getattr(column_info, "type", None)


class IndexSchema:
    """Index configuration of a single record type."""

    def __init__(
        self,
        model: type,
        index: str | None = None,
        endpoint: str | None = None,
        policy: SyncPolicy | None = None,
        primary_key: str | Iterable[str] | None = None,
    ) -> None:
        """Initialize an empty schema.

        Args:
            model: Record type (normally a SQLAlchemy declarative model)
            index: Index name; defaults to the model's table name
            endpoint: Index service endpoint; defaults to the global setting
            policy: Sync policy; defaults to the global setting
            primary_key: Identifier attribute(s) for types SQLAlchemy cannot
                inspect
        """
        self._model = model
        self._index = index
        self._endpoint = endpoint
        self._policy = policy
        if isinstance(primary_key, str):
            primary_key = [primary_key]
        self._primary_key = list(primary_key) if primary_key is not None else None
        self._fields: dict[str, FieldDeclaration] = {}
        self._dependents: list[Callable[[Any], Iterable[Any]]] = []

    def __repr__(self) -> str:
        return (
            f"IndexSchema({self.name!r}, index={self.index_name()!r}, "
            f"fields={list(self._fields)})"
        )

    @property
    def model(self) -> type:
        return self._model

    @property
    def name(self) -> str:
        return self._model.__name__

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    @property
    def policy(self) -> SyncPolicy | None:
        return self._policy

    @property
    def dependents(self) -> tuple[Callable[[Any], Iterable[Any]], ...]:
        return tuple(self._dependents)

    # === Column introspection ===

    def _mapper(self) -> Mapper[Any] | None:
        try:
            return inspect(self._model)
        except NoInspectionAvailable:
            return None

    def columns(self) -> list[tuple[str, Column[Any]]]:
        """Return (attribute name, column) pairs of the mapped model."""
        mapper = self._mapper()
        if mapper is None:
            return []
        return [(key, column) for key, column in mapper.columns.items()]

    def column_info(self, name: str) -> Column[Any] | None:
        """Return the column mapped to the named attribute."""
        for key, column in self.columns():
            if key == name:
                return column
        return None

    def field_type(self, column_name: str) -> FieldKind | None:
        """Infer the field kind of a column from its storage type."""
        column = self.column_info(column_name)
        if column is None:
            return None
        return field_type_for(column.type)

    def primary_columns(self) -> list[str]:
        """Return the attribute names of the identifier columns."""
        if self._primary_key is not None:
            return list(self._primary_key)
        mapper = self._mapper()
        if mapper is None:
            return []
        return [mapper.get_property_by_column(column).key for column in mapper.primary_key]

    def primary_column(self) -> str:
        """Return the single identifier column.

        Raises:
            PrimaryKeyError: If the type has zero or several primary columns
        """
        primary_columns = self.primary_columns()
        if len(primary_columns) != 1:
            raise PrimaryKeyError(self.name, primary_columns)
        return primary_columns[0]

    def update_timestamp_column(self) -> str | None:
        """Return the first column that tracks modification time.

        A column qualifies when its info carries ``mtime`` or when it has an
        ``onupdate`` default.
        """
        for key, column in self.columns():
            if column.info.get("mtime") or column.onupdate is not None:
                return key
        return None

    def index_name(self) -> str:
        """Return the index name, defaulting to the model's table name."""
        if self._index:
            return self._index
        table_name = getattr(self._model, "__tablename__", None)
        if table_name:
            return str(table_name)
        return self.name.lower()

    # === Field registration ===

    def declared_fields(self) -> Mapping[str, FieldDeclaration]:
        """Return a read-only snapshot of the declared fields, in order."""
        return MappingProxyType(dict(self._fields))

    def title_field(self) -> str | None:
        """Return the name of the field carrying the title role, if any."""
        for name, declaration in self._fields.items():
            if declaration.is_title:
                return name
        return None

    def register_column(self, name: str, column: Column[Any]) -> FieldDeclaration | None:
        """Register the field declared in a column's ``info["index"]``."""
        if "index" not in column.info:
            return None
        return self.register_field(name, column.info["index"], column)

    def register_field(
        self,
        name: str,
        info: Any = None,
        column_info: Any = None,
    ) -> FieldDeclaration:
        """Register (or replace) a field declaration.

        Args:
            name: Field name
            info: A kind name, a truthy flag, a declaration mapping or a
                ready-made FieldDeclaration
            column_info: Column (or mapping with ``data_type``) whose storage
                type supplies the kind when none is given; defaults to the
                column mapped to ``name``

        Returns:
            The stored declaration
        """
        if column_info is None:
            column_info = self.column_info(name)
        inferred = field_type_for(_column_type(column_info))

        if isinstance(info, FieldDeclaration):
            declaration = info.model_copy(update={"name": name})
            if declaration.kind is None and inferred is not None:
                declaration = declaration.model_copy(update={"kind": inferred})
        elif info is None or isinstance(info, Mapping):
            data = dict(info or {})
            data["name"] = name
            if not (data.get("kind") or data.get("type")) and inferred is not None:
                data["kind"] = inferred
            declaration = FieldDeclaration.model_validate(data)
        else:
            # bare kind name or flag
            kind = None if isinstance(info, bool | int) or str(info).isdigit() else str(info)
            declaration = FieldDeclaration(name=name, kind=kind or inferred)

        if declaration.is_title:
            current = self.title_field()
            if current is not None and current != name:
                raise ConfigurationError(
                    f"'{self.name}' already has title field '{current}'; "
                    f"cannot also use '{name}'",
                    {"type_name": self.name, "title_field": current, "field_name": name},
                )

        if name in self._fields:
            logger.debug(f"Replacing index field '{name}' on {self.name}")
        self._fields[name] = declaration
        return declaration

    def add_fields(self, *names: str | Mapping[str, Any], **declarations: Any) -> None:
        """Register several fields at once.

        Positional arguments are bare field names or mappings of name to
        declaration; keyword arguments map names to declarations.
        """
        for item in names:
            if isinstance(item, Mapping):
                for field_name, info in item.items():
                    self.register_field(field_name, info)
            else:
                self.register_field(item)
        for field_name, info in declarations.items():
            self.register_field(field_name, info)

    def add_dependency(self, resolve: Callable[[Any], Iterable[Any]]) -> None:
        """Register records of other types whose documents derive from this one.

        ``resolve`` receives a changed record of this type and yields the
        dependent records to re-index.
        """
        self._dependents.append(resolve)


class SchemaRegistry:
    """Maps record types to their index schemas."""

    def __init__(self) -> None:
        self._schemas: dict[type, IndexSchema] = {}
        self._lock = threading.Lock()

    def __contains__(self, model: object) -> bool:
        return self.get(model) is not None

    def __iter__(self) -> Iterator[IndexSchema]:
        with self._lock:
            return iter(list(self._schemas.values()))

    def __len__(self) -> int:
        return len(self._schemas)

    def names(self) -> list[str]:
        """Return the names of all registered types."""
        return [schema.name for schema in self]

    def register(
        self,
        model: type,
        fields: Mapping[str, Any] | None = None,
        *,
        index: str | None = None,
        endpoint: str | None = None,
        policy: SyncPolicy | None = None,
        primary_key: str | Iterable[str] | None = None,
    ) -> IndexSchema:
        """Build and register the schema of a record type.

        Column-level declarations (``info={"index": ...}``) are collected
        first, then ``fields`` are added in order. Registering a type again
        replaces its schema.
        """
        schema = IndexSchema(
            model, index=index, endpoint=endpoint, policy=policy, primary_key=primary_key
        )
        for name, column in schema.columns():
            schema.register_column(name, column)
        if fields:
            schema.add_fields(fields)

        with self._lock:
            self._schemas[model] = schema
        logger.debug(
            f"Registered {schema.name} for index '{schema.index_name()}' "
            f"with fields: {', '.join(schema.declared_fields()) or '(none)'}"
        )
        return schema

    def indexed(self, **options: Any) -> Callable[[type], type]:
        """Class decorator form of :meth:`register`."""

        def decorate(model: type) -> type:
            self.register(model, **options)
            return model

        return decorate

    def get(self, model_or_record: object) -> IndexSchema | None:
        """Return the schema for a type or record, walking base classes."""
        model = model_or_record if isinstance(model_or_record, type) else type(model_or_record)
        with self._lock:
            for klass in model.__mro__:
                if klass in self._schemas:
                    return self._schemas[klass]
        return None

    def require(self, model_or_record: object) -> IndexSchema:
        """Return the schema for a type or record.

        Raises:
            SchemaNotFoundError: If the type was never registered
        """
        schema = self.get(model_or_record)
        if schema is None:
            model = (
                model_or_record if isinstance(model_or_record, type) else type(model_or_record)
            )
            raise SchemaNotFoundError(model.__name__, self.names())
        return schema
