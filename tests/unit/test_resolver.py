"""Tests for resolving field sources against records."""

from datetime import date
from types import SimpleNamespace

import pytest

from indexsync.core.types import ComputedSource, PathSource
from indexsync.indexing.resolver import (
    MappingAttributes,
    ObjectAttributes,
    attributes_of,
    flatten,
    resolve,
    resolve_path,
)


class TestAttributeSources:
    """Tests for the attribute lookup capability."""

    def test_object_attribute(self):
        """Objects resolve attributes by name."""
        attributes = ObjectAttributes(SimpleNamespace(name="Escape"))
        assert attributes.resolve_attribute("name") == "Escape"

    def test_object_missing_attribute(self):
        """Missing attributes resolve to None."""
        assert ObjectAttributes(SimpleNamespace()).resolve_attribute("name") is None

    def test_zero_argument_method_called(self):
        """Methods without arguments are called."""
        released = date(1963, 7, 4)
        assert ObjectAttributes(released).resolve_attribute("isoformat") == "1963-07-04"

    def test_method_needing_arguments(self):
        """Methods that need arguments resolve to None."""
        assert ObjectAttributes("text").resolve_attribute("split") == ["text"]
        assert ObjectAttributes("text").resolve_attribute("replace") is None

    def test_method_errors_propagate(self):
        """Errors raised inside a zero-argument method are not hidden."""

        class Broken:
            def label(self):
                return "x" + 1

        with pytest.raises(TypeError):
            ObjectAttributes(Broken()).resolve_attribute("label")

    def test_method_with_defaults_called(self):
        """Methods whose parameters all have defaults are called."""

        class Film:
            def label(self, suffix="!"):
                return f"Escape{suffix}"

        assert ObjectAttributes(Film()).resolve_attribute("label") == "Escape!"

    def test_mapping_attribute(self):
        """Mappings resolve keys."""
        assert MappingAttributes({"name": "Escape"}).resolve_attribute("name") == "Escape"
        assert MappingAttributes({}).resolve_attribute("name") is None

    def test_attributes_of(self):
        """Primitives have no attributes; mappings and objects do."""
        assert attributes_of(None) is None
        assert attributes_of("text") is None
        assert attributes_of(7) is None
        assert isinstance(attributes_of({"a": 1}), MappingAttributes)
        assert isinstance(attributes_of(SimpleNamespace()), ObjectAttributes)


class TestFlatten:
    """Tests for flatten."""

    def test_scalars_kept_whole(self):
        """Strings and dates are single values."""
        assert flatten("abc") == ["abc"]
        assert flatten(date(2000, 1, 1)) == [date(2000, 1, 1)]

    def test_collections_spread(self):
        """Collections spread and drop None members."""
        assert flatten(["a", None, "b"]) == ["a", "b"]
        assert flatten(("a",)) == ["a"]

    def test_none(self):
        """None flattens to nothing."""
        assert flatten(None) == []


class TestResolvePath:
    """Tests for path resolution."""

    def test_simple_attribute(self, models):
        """Single segment resolves the record's attribute."""
        film = models.Film(id=7, name="The Great Escape")
        assert resolve_path(film, PathSource(path="name")) == ["The Great Escape"]

    def test_fan_out_over_relation(self, models):
        """A one-to-many relation yields one value per related record."""
        film = models.Film(id=7, name="The Great Escape")
        film.widgets = [
            models.Widget(id=1, name="tunnel"),
            models.Widget(id=2, name="motorcycle"),
            models.Widget(id=3, name="baseball"),
        ]
        values = resolve_path(film, PathSource(path="widgets.name"))
        assert values == ["tunnel", "motorcycle", "baseball"]

    def test_many_to_one(self, models):
        """A many-to-one relation resolves through the related record."""
        film = models.Film(id=7, name="The Great Escape")
        widget = models.Widget(id=1, name="tunnel", film=film)
        assert resolve_path(widget, PathSource(path="me.film.name")) == ["The Great Escape"]

    def test_missing_relation_yields_nothing(self, models):
        """An unset relation resolves to no values."""
        widget = models.Widget(id=1, name="tunnel")
        assert resolve_path(widget, PathSource(path="film.name")) == []

    def test_bad_path_yields_nothing(self, models):
        """Unknown attributes are tolerated."""
        film = models.Film(id=7, name="x")
        assert resolve_path(film, PathSource(path="director.name")) == []

    def test_through_mappings(self):
        """Plain mappings can be traversed."""
        record = SimpleNamespace(meta={"tags": ["war", "escape"]})
        assert resolve_path(record, PathSource(path="meta.tags")) == ["war", "escape"]

    def test_none_value_dropped(self, models):
        """A null column yields no value."""
        film = models.Film(id=7, name="x", year=None)
        assert resolve_path(film, PathSource(path="year")) == []


class TestResolve:
    """Tests for resolve dispatch."""

    def test_computed_source(self, models):
        """Computed sources return their function's values."""
        film = models.Film(id=7, name="x", year=1963)
        source = ComputedSource(func=lambda record: [record.year // 10 * 10, None])
        assert resolve(film, source) == [1960]

    def test_computed_scalar(self, models):
        """A computed scalar becomes a single value."""
        film = models.Film(id=7, name="x", year=1963)
        assert resolve(film, ComputedSource(func=lambda record: record.year)) == [1963]
