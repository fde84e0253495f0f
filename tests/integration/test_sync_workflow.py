"""Integration tests for the full record-to-index workflow."""

from indexsync import IndexedStore, SyncPolicy
from indexsync.core.types import FieldKind


class TestSyncWorkflow:
    """End-to-end tests over SQLite records and the in-memory index."""

    def test_great_escape_lifecycle(self, store: IndexedStore, service, models):
        """Insert, search, update and delete one record."""
        store.register(
            models.Film,
            {"name": {"kind": "text", "filters": ["trim"], "browse": True, "sort": True}},
            policy=SyncPolicy(auto_index=True),
        )

        # 1. Insert: fetched by id, not found, added exactly once
        film = models.Film(id=7, name="  The Great Escape  ")
        assert store.insert(film) == "added"
        index = service.get_index("films")
        assert index.calls == [("get", 7), ("add", 7)]

        document = index.get_document(7)
        assert document.get("name") == ["The Great Escape"]
        assert document.get("browse_name") == ["The Great Escape"]
        assert document.get("sort_name") == ["great escape"]
        assert document.kind_of("id") == FieldKind.KEYWORD
        assert document.identifier == 7
        assert "The Great Escape" in document.first("all")

        # 2. Search returns the stored record
        results = store.search_index(models.Film, {"name": "great escape"})
        assert results == [film]
        assert results[0].relevance > 0

        # 3. Update replaces the document
        index.calls.clear()
        assert store.update(film, {"name": "The Great Escape (1963)"}) == "updated"
        assert index.operations() == ["get", "update"]

        # 4. Delete: fetch then delete once
        index.calls.clear()
        assert store.delete(film) is True
        assert index.calls == [("get", 7), ("delete", 7)]
        assert store.search_index(models.Film, {"name": "escape"}) == []

    def test_delete_proceeds_when_index_unreachable(self, store: IndexedStore, service, models):
        """A failing index never blocks record deletion."""
        store.register(models.Film, {"name": None}, policy=SyncPolicy(auto_index=True))
        film = models.Film(id=7, name="The Great Escape")
        store.insert(film)

        index = service.get_index("films")
        index.fail_on.update({"get", "delete"})
        assert store.delete(film) is False
        assert store.find(models.Film, 7) is None

    def test_related_records(self, store: IndexedStore, service, models):
        """Relation fan-out, boolean clauses and dependent re-indexing."""
        film_schema = store.register(
            models.Film,
            {
                "name": {"sort": True},
                "widget": {"source": "widgets.name", "boolean": True},
            },
        )
        widget_schema = store.register(models.Widget, {"name": None})
        widget_schema.add_dependency(lambda widget: [widget.film])
        assert film_schema.dependents == ()

        bare = models.Film(id=1, name="Le Samouraï")
        store.insert(bare)
        stocked = models.Film(id=2, name="The Great Escape")
        stocked.widgets = [models.Widget(id=i, name=n) for i, n in enumerate(["a", "b", "c"], 1)]
        store.insert(stocked)

        films = service.get_index("films")
        assert films.get_document(1).get("has_widget") == [0]
        assert films.get_document(1).get("sort_name") == ["samourai"]
        assert films.get_document(2).get("has_widget") == [1]
        assert films.get_document(2).get("widget") == ["a", "b", "c"]

        widget = stocked.widgets[0]
        store.update(widget, {"name": "tunnel"})
        assert films.get_document(2).get("widget") == ["tunnel", "b", "c"]
        assert [f.id for f in store.search_index(models.Film, {"widget": "tunnel"})] == [2]
        assert [f.id for f in store.search_index(models.Film, {"has_widget": 1})] == [2]

    def test_inline_column_declarations(self, store: IndexedStore, service, models):
        """Fields declared on columns are indexed with inferred kinds."""
        store.register(models.Poster)
        store.insert(models.Poster(code="p-1", title="Escape", url=None, width=800))

        index = service.get_index("posters")
        assert index.descriptor.properties["document.title"] == "[title]"
        document = index.get_document("p-1")
        assert document.get("browse_title") == ["Escape"]
        assert document.get("has_url") == [0]
        assert document.get("width") == [800]
        assert document.kind_of("width") == FieldKind.KEYWORD
        assert document.kind_of("code") == FieldKind.KEYWORD
        wide = store.search_index(models.Poster, {"width": {"between": [500, 1000]}})
        assert [p.code for p in wide] == ["p-1"]

    def test_per_type_endpoint(self, store: IndexedStore, models):
        """Types can be indexed on their own endpoint."""
        store.register(models.Film, {"name": None}, endpoint="memory://archive")
        store.insert(models.Film(id=1, name="Escape"))

        archive = store.services.get("memory://archive")
        assert archive.get_index("films").get_document(1) is not None
        assert [f.id for f in store.search_index(models.Film, "escape")] == [1]

    def test_reindex_backfill(self, store: IndexedStore, service, models):
        """Records stored before registration can be backfilled."""
        for i in range(1, 6):
            store.insert(models.Film(id=i, name=f"Film {i}"))
        assert service.list_indexes() == []

        store.register(models.Film, {"name": None})
        assert store.reindex(models.Film) == {"Film": 5}
        assert store.count_index(models.Film) == 5
