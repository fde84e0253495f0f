"""Tests for index schemas and the schema registry."""

import pytest
from sqlalchemy import DateTime, Integer, Numeric, String, Text

from indexsync.core.types import FieldDeclaration, FieldKind, SyncPolicy
from indexsync.exceptions import ConfigurationError, PrimaryKeyError, SchemaNotFoundError
from indexsync.schema.registry import (
    IndexSchema,
    SchemaRegistry,
    field_type_for,
    storage_type_name,
)


class TestFieldTypes:
    """Tests for storage type to field kind mapping."""

    @pytest.mark.parametrize(
        ("storage_type", "expected"),
        [
            ("VARCHAR(50)", FieldKind.TEXT),
            ("varchar2", FieldKind.TEXT),
            ("INT", FieldKind.KEYWORD),
            ("number", FieldKind.KEYWORD),
            ("money", FieldKind.KEYWORD),
            ("datetime", FieldKind.TEXT),
            ("timestamp", FieldKind.TEXT),
        ],
    )
    def test_native_names(self, storage_type, expected):
        """Dialect type names map onto field kinds."""
        assert field_type_for(storage_type) == expected

    def test_sqlalchemy_types(self):
        """SQLAlchemy type instances and classes map by their visit name."""
        assert field_type_for(Integer()) == FieldKind.KEYWORD
        assert field_type_for(Numeric(10, 2)) == FieldKind.KEYWORD
        assert field_type_for(String(20)) == FieldKind.TEXT
        assert field_type_for(Text) == FieldKind.TEXT
        assert field_type_for(DateTime()) == FieldKind.TEXT

    def test_unknown_type(self):
        """Unmapped types give no kind."""
        assert field_type_for("geometry") is None
        assert field_type_for(None) is None

    def test_storage_type_name(self):
        """Type names are lowercased and stripped of arguments."""
        assert storage_type_name("NVARCHAR(255)") == "nvarchar"


class TestIndexSchema:
    """Tests for IndexSchema introspection and field registration."""

    def test_primary_column(self, models):
        """Single primary key column is the identifier."""
        schema = IndexSchema(models.Film)
        assert schema.primary_columns() == ["id"]
        assert schema.primary_column() == "id"

    def test_composite_primary_key_rejected(self, models):
        """Composite keys cannot identify documents."""
        schema = IndexSchema(models.Credit)
        with pytest.raises(PrimaryKeyError) as exc_info:
            schema.primary_column()
        assert isinstance(exc_info.value, ConfigurationError)
        assert exc_info.value.primary_columns == ["film_id", "person"]

    def test_unmapped_type_without_key(self):
        """Plain classes have no primary columns unless told."""

        class Note:
            pass

        with pytest.raises(PrimaryKeyError, match="has none"):
            IndexSchema(Note).primary_column()
        assert IndexSchema(Note, primary_key="slug").primary_column() == "slug"

    def test_index_name_defaults_to_table(self, models):
        """Index name defaults to the table name."""
        assert IndexSchema(models.Film).index_name() == "films"
        assert IndexSchema(models.Film, index="catalog").index_name() == "catalog"

    def test_update_timestamp_column(self, models):
        """onupdate defaults and mtime info mark the update timestamp."""
        assert IndexSchema(models.Film).update_timestamp_column() == "updated_at"
        assert IndexSchema(models.Poster).update_timestamp_column() == "modified"
        assert IndexSchema(models.Widget).update_timestamp_column() is None

    def test_kind_inferred_from_column(self, models):
        """Undeclared kinds come from the column's storage type."""
        schema = IndexSchema(models.Film)
        declaration = schema.register_field("year", None, schema.column_info("year"))
        assert declaration.kind == FieldKind.KEYWORD
        declaration = schema.register_field("name", {"browse": True}, schema.column_info("name"))
        assert declaration.kind == FieldKind.TEXT
        assert declaration.browse is True

    def test_explicit_kind_wins(self, models):
        """Declared kinds are not overridden by the column type."""
        schema = IndexSchema(models.Film)
        declaration = schema.register_field("year", "text", schema.column_info("year"))
        assert declaration.kind == FieldKind.TEXT

    def test_register_declaration_object(self, models):
        """Ready-made declarations are renamed to the registered name."""
        schema = IndexSchema(models.Film)
        declaration = schema.register_field("label", FieldDeclaration(name="x", source="name"))
        assert declaration.name == "label"
        assert schema.declared_fields()["label"].source.path == "name"

    def test_replacing_field_keeps_single_entry(self, models):
        """Registering a name twice replaces the earlier declaration."""
        schema = IndexSchema(models.Film)
        schema.register_field("name", {"kind": "text"})
        schema.register_field("name", {"kind": "keyword"})
        assert list(schema.declared_fields()) == ["name"]
        assert schema.declared_fields()["name"].kind == FieldKind.KEYWORD

    def test_declared_fields_read_only(self, models):
        """The declared fields mapping cannot be mutated."""
        schema = IndexSchema(models.Film)
        schema.register_field("name")
        with pytest.raises(TypeError):
            schema.declared_fields()["year"] = FieldDeclaration(name="year")

    def test_single_title_field(self, models):
        """Only one field may carry the title role."""
        schema = IndexSchema(models.Film)
        schema.register_field("name", {"role": "title"})
        assert schema.title_field() == "name"
        with pytest.raises(ConfigurationError, match="title"):
            schema.register_field("summary", {"role": "title"})

    def test_add_fields(self, models):
        """Fields can be added by name, mapping or keyword."""
        schema = IndexSchema(models.Film)
        schema.add_fields("name", {"year": "keyword"}, summary={"exclude_from_default": True})
        assert list(schema.declared_fields()) == ["name", "year", "summary"]
        assert schema.declared_fields()["summary"].exclude_from_aggregate is True


class TestSchemaRegistry:
    """Tests for SchemaRegistry."""

    def test_register_collects_column_declarations(self, models):
        """info={'index': ...} on columns declares fields."""
        registry = SchemaRegistry()
        schema = registry.register(models.Poster)
        fields = schema.declared_fields()
        assert list(fields) == ["title", "url", "width"]
        assert fields["title"].is_title
        assert fields["title"].kind == FieldKind.TEXT
        assert fields["url"].kind == FieldKind.KEYWORD
        assert fields["url"].boolean == "has"
        assert fields["width"].kind == FieldKind.KEYWORD

    def test_register_with_options(self, models):
        """Registration options reach the schema."""
        registry = SchemaRegistry()
        policy = SyncPolicy(auto_index=True)
        schema = registry.register(
            models.Film,
            {"name": {"sort": True}},
            index="catalog",
            endpoint="memory://other",
            policy=policy,
        )
        assert schema.index_name() == "catalog"
        assert schema.endpoint == "memory://other"
        assert schema.policy is policy
        assert schema.declared_fields()["name"].kind == FieldKind.TEXT

    def test_lookup_by_instance_and_subclass(self, models):
        """Schemas are found for instances and subclasses."""
        registry = SchemaRegistry()
        registry.register(models.Film, {"name": None})

        class Page:
            pass

        class LandingPage(Page):
            pass

        registry.register(Page, {"title": None}, primary_key="slug")

        assert registry.get(models.Film(id=1, name="x")) is registry.get(models.Film)
        assert registry.get(LandingPage) is registry.get(Page)
        assert registry.get(LandingPage()) is registry.get(Page)
        assert models.Film in registry
        assert len(registry) == 2
        assert registry.names() == ["Film", "Page"]

    def test_require_unregistered(self, models):
        """Requiring an unregistered type raises SchemaNotFoundError."""
        registry = SchemaRegistry()
        registry.register(models.Film)
        with pytest.raises(SchemaNotFoundError) as exc_info:
            registry.require(models.Widget)
        assert "Widget" in str(exc_info.value)
        assert "Film" in str(exc_info.value)

    def test_decorator(self):
        """indexed() registers the decorated class."""
        registry = SchemaRegistry()

        @registry.indexed(fields={"title": None}, primary_key="slug")
        class Page:
            pass

        assert registry.require(Page).primary_column() == "slug"
        assert list(registry.require(Page).declared_fields()) == ["title"]
