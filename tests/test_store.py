"""
Tests for the ChromaDB-backed vector index.

These run against a real ChromaDB directory in a temporary folder.
"""

import pytest

# Skip all tests if chromadb not installed
chromadb = pytest.importorskip("chromadb")

from notelink.errors import IndexNotReady, StoreIOError
from notelink.store import ChromaStore
from notelink.types import VectorRecord


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "chroma"


@pytest.fixture
def store(store_path):
    s = ChromaStore(store_path)
    s.ensure_table("notes_vectors", 4)
    yield s
    s.close()


def _record(note_id, chunk_id, vector, text="text", title="Title"):
    return VectorRecord(vector=vector, note_id=note_id, chunk_id=chunk_id, text=text, title=title)


# -----------------------------------------------------------------------------
# Table lifecycle
# -----------------------------------------------------------------------------

class TestTable:

    def test_new_table_is_empty(self, store, store_path):
        """The placeholder row used to fix the width is gone."""
        assert store_path.is_dir()
        assert store.is_ready
        assert store.count() == 0
        assert store.list_note_ids() == set()

    def test_use_before_ensure_table(self, store_path):
        s = ChromaStore(store_path)
        assert not s.is_ready
        with pytest.raises(IndexNotReady):
            s.search([0.1, 0.2, 0.3, 0.4], 5)

    def test_reopen_keeps_rows(self, store, store_path):
        store.add([_record("a.md", 0, [1.0, 0.0, 0.0, 0.0])])
        store.close()
        reopened = ChromaStore(store_path)
        reopened.ensure_table("notes_vectors", 4)
        assert reopened.count() == 1

    def test_reopen_with_other_width_rejected(self, store, store_path):
        store.close()
        reopened = ChromaStore(store_path)
        with pytest.raises(StoreIOError):
            reopened.ensure_table("notes_vectors", 8)

    def test_wrong_vector_width_rejected(self, store):
        with pytest.raises(StoreIOError):
            store.add([_record("a.md", 0, [1.0, 0.0])])


# -----------------------------------------------------------------------------
# Writes and search
# -----------------------------------------------------------------------------

class TestSearch:

    def test_results_ordered_by_distance(self, store):
        store.add([
            _record("far.md", 0, [0.0, 0.0, 1.0, 0.0], text="far"),
            _record("near.md", 0, [0.9, 0.1, 0.0, 0.0], text="near"),
            _record("exact.md", 0, [1.0, 0.0, 0.0, 0.0], text="exact"),
        ])
        results = store.search([1.0, 0.0, 0.0, 0.0], 3)
        assert [r.note_id for r in results] == ["exact.md", "near.md", "far.md"]
        assert results[0].distance == pytest.approx(0.0, abs=1e-5)
        assert results[0].similarity == pytest.approx(1.0, abs=1e-5)
        assert results[0].text == "exact"
        assert results[0].title == "Title"

    def test_exclusion_filter(self, store):
        store.add([
            _record("self.md", 0, [1.0, 0.0, 0.0, 0.0]),
            _record("other.md", 0, [0.8, 0.2, 0.0, 0.0]),
        ])
        results = store.search([1.0, 0.0, 0.0, 0.0], 5, exclude_note_id="self.md")
        assert [r.note_id for r in results] == ["other.md"]

    def test_limit_larger_than_table(self, store):
        store.add([_record("a.md", 0, [1.0, 0.0, 0.0, 0.0])])
        assert len(store.search([1.0, 0.0, 0.0, 0.0], 50)) == 1

    def test_empty_table_search(self, store):
        assert store.search([1.0, 0.0, 0.0, 0.0], 5) == []

    def test_delete_where_removes_all_chunks(self, store):
        store.add([
            _record("a.md", 0, [1.0, 0.0, 0.0, 0.0]),
            _record("a.md", 1, [0.0, 1.0, 0.0, 0.0]),
            _record("b.md", 0, [0.0, 0.0, 1.0, 0.0]),
        ])
        store.delete_where("a.md")
        assert store.list_note_ids() == {"b.md"}
        assert store.count() == 1

    def test_delete_where_is_idempotent(self, store):
        store.delete_where("missing.md")
        store.delete_where("missing.md")
        assert store.count() == 0

    def test_chunk_metadata_round_trips(self, store):
        store.add([_record("dir/n.md", 3, [0.0, 1.0, 0.0, 0.0], text="chunk text", title="N")])
        (row,) = store.search([0.0, 1.0, 0.0, 0.0], 1)
        assert (row.note_id, row.chunk_id, row.text, row.title) == ("dir/n.md", 3, "chunk text", "N")

    def test_rewritten_chunk_id_keeps_newer_text(self, store):
        store.add([_record("a.md", 0, [1.0, 0.0, 0.0, 0.0], text="old")])
        store.add([_record("a.md", 0, [0.0, 1.0, 0.0, 0.0], text="new")])
        assert store.count() == 1
        (row,) = store.search([0.0, 1.0, 0.0, 0.0], 1)
        assert row.text == "new"
