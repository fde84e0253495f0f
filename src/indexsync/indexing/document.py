"""Projection of records into index documents."""

from __future__ import annotations

from typing import Any

from indexsync.core.types import Document, FieldDeclaration, FieldKind
from indexsync.indexing.resolver import resolve
from indexsync.indexing.transforms import apply_filters, to_browse_value, to_sort_value
from indexsync.schema.registry import IndexSchema

AGGREGATE_FIELD = "all"


class DocumentBuilder:
    """Builds the index document of a record from its type's schema.

    For every declared field, each resolved value becomes one field entry.
    Declarations may add ``browse_<name>`` and ``sort_<name>`` variants, a
    ``<clause>_<name>`` flag telling whether anything resolved, and every
    field not excluded contributes to the aggregate ``all`` field.

    Building is pure: the same record state and schema always give an equal
    document.
    """

    def effective_fields(self, schema: IndexSchema) -> dict[str, FieldDeclaration]:
        """Return the declared fields with the identifier forced to keyword.

        An undeclared identifier is appended as a keyword field. Types with no
        declared fields yield an empty mapping.
        """
        fields = dict(schema.declared_fields())
        if not fields:
            return {}

        primary_column = schema.primary_column()
        declaration = fields.get(primary_column)
        if declaration is None:
            fields[primary_column] = FieldDeclaration(
                name=primary_column, kind=FieldKind.KEYWORD
            )
        elif declaration.kind is not FieldKind.KEYWORD:
            fields[primary_column] = declaration.model_copy(update={"kind": FieldKind.KEYWORD})
        return fields

    def build(
        self,
        record: Any,
        schema: IndexSchema,
        document: Document | None = None,
    ) -> Document | None:
        """Build (or refill) the document of a record.

        Args:
            record: Record instance
            schema: Index schema of the record's type
            document: Existing document to fill instead of a new one; its
                current fields are cleared first

        Returns:
            The document, or None if the type declares no fields
        """
        fields = self.effective_fields(schema)
        if not fields:
            return None

        if document is None:
            document = Document()
        else:
            document.clear_fields()
        document.identifier_field = schema.primary_column()

        aggregate: list[Any] = []
        for name, declaration in fields.items():
            values = [
                apply_filters(value, declaration.filters)
                for value in resolve(record, declaration.source)
            ]
            kind = declaration.effective_kind

            for value in values:
                document.add(name, value, kind)
                if not declaration.exclude_from_aggregate:
                    aggregate.append(value)

            if declaration.browse:
                for value in values:
                    document.add(f"browse_{name}", to_browse_value(name, value), FieldKind.SORTED)

            if declaration.sort:
                for value in values:
                    document.add(f"sort_{name}", to_sort_value(name, value), FieldKind.SORTED)

            if declaration.boolean:
                document.add(
                    f"{declaration.boolean}_{name}", 1 if values else 0, FieldKind.KEYWORD
                )

        document.add(
            AGGREGATE_FIELD,
            " ".join(str(value) for value in aggregate if value is not None and value != ""),
            FieldKind.UNSTORED,
        )
        return document
