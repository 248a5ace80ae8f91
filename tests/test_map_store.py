"""Tests for AnchorMapStore: CRUD, drift checks, persistence and concurrent saves."""

import json
import threading

import pytest

from doctype.exceptions import DuplicateIdError, MapLoadError, NotFoundError
from doctype.map_store import AnchorMapStore
from doctype.models import MAP_VERSION, MapEntry, SymbolReference


def _entry(entry_id="e1", symbol="login", hash_="h1", doc="docs/auth.md", **kwargs):
    return MapEntry(
        id=entry_id,
        code_ref=SymbolReference("src/auth.py", symbol),
        code_signature_hash=hash_,
        doc_file_path=doc,
        **kwargs,
    )


@pytest.fixture
def store(tmp_path):
    s = AnchorMapStore(tmp_path / "doctype-map.json")
    s.create()
    return s


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


class TestCrud:
    def test_add_and_get(self, store):
        store.add_entry(_entry())
        assert store.get_entry("e1").code_signature_hash == "h1"
        assert store.entry_count() == 1

    def test_get_unknown_is_none(self, store):
        assert store.get_entry("nope") is None

    def test_add_duplicate_raises(self, store):
        store.add_entry(_entry())
        with pytest.raises(DuplicateIdError):
            store.add_entry(_entry(hash_="other"))

    def test_update_merges_and_stamps(self, store):
        store.add_entry(_entry(last_updated=0))
        updated = store.update_entry("e1", code_signature_hash="h2", code_signature_text="def login()")

        assert updated.code_signature_hash == "h2"
        assert updated.code_signature_text == "def login()"
        assert updated.doc_file_path == "docs/auth.md"
        assert updated.last_updated > 0
        assert store.get_entry("e1") == updated

    def test_update_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            store.update_entry("ghost", code_signature_hash="x")

    def test_update_rejects_unknown_field(self, store):
        store.add_entry(_entry())
        with pytest.raises(ValueError):
            store.update_entry("e1", id="renamed")

    def test_remove(self, store):
        store.add_entry(_entry())
        assert store.remove_entry("e1") is True
        assert store.remove_entry("e1") is False
        assert store.entries() == []

    def test_queries(self, store):
        store.add_entry(_entry("a", symbol="login"))
        store.add_entry(_entry("b", symbol="logout", doc="docs/other.md"))
        store.add_entry(_entry("c", symbol="login", doc="docs/other.md"))

        assert [e.id for e in store.find_by_code_ref(SymbolReference("src/auth.py", "login"))] == ["a", "c"]
        assert [e.id for e in store.entries_for_doc("docs/other.md")] == ["b", "c"]

    def test_entries_is_a_snapshot(self, store):
        store.add_entry(_entry())
        snapshot = store.entries()
        store.remove_entry("e1")
        assert len(snapshot) == 1


# ---------------------------------------------------------------------------
# has_drift
# ---------------------------------------------------------------------------


class TestHasDrift:
    def test_same_hash(self, store):
        store.add_entry(_entry(hash_="h1"))
        assert store.has_drift("e1", "h1") is False

    def test_different_hash(self, store):
        store.add_entry(_entry(hash_="h1"))
        assert store.has_drift("e1", "h2") is True

    def test_unknown_id_is_not_drift(self, store):
        assert store.has_drift("nope", "anything") is False


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class TestPersistence:
    def test_save_and_reload(self, store):
        store.add_entry(_entry(code_signature_text="def login(user)", last_updated=42))
        store.save()

        reloaded = AnchorMapStore.open(store.map_path)
        assert reloaded.entries() == store.entries()
        assert reloaded.version == MAP_VERSION

    def test_saved_json_shape(self, store):
        store.add_entry(_entry(last_updated=7))
        store.save()

        raw = store.map_path.read_text(encoding="utf-8")
        assert raw.endswith("\n")
        data = json.loads(raw)
        assert data["version"] == MAP_VERSION
        assert data["entries"][0] == {
            "id": "e1",
            "codeRef": {"filePath": "src/auth.py", "symbolName": "login"},
            "codeSignatureHash": "h1",
            "docRef": {"filePath": "docs/auth.md"},
            "lastUpdated": 7,
        }

    def test_missing_file(self, tmp_path):
        with pytest.raises(MapLoadError):
            AnchorMapStore.open(tmp_path / "absent.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "map.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(MapLoadError):
            AnchorMapStore.open(path)

    def test_wrong_shape(self, tmp_path):
        path = tmp_path / "map.json"
        path.write_text('{"version": "1.0.0"}', encoding="utf-8")
        with pytest.raises(MapLoadError):
            AnchorMapStore.open(path)

    def test_bad_entry(self, tmp_path):
        path = tmp_path / "map.json"
        path.write_text('{"entries": [{"id": "x"}]}', encoding="utf-8")
        with pytest.raises(MapLoadError):
            AnchorMapStore.open(path)

    def test_duplicate_ids_in_file(self, store):
        store.add_entry(_entry())
        store.save()
        data = json.loads(store.map_path.read_text(encoding="utf-8"))
        data["entries"].append(data["entries"][0])
        store.map_path.write_text(json.dumps(data), encoding="utf-8")

        with pytest.raises(MapLoadError):
            AnchorMapStore.open(store.map_path)

    def test_no_temp_files_left(self, store):
        store.add_entry(_entry())
        store.save()
        store.save()
        assert [p.name for p in store.map_path.parent.iterdir()] == ["doctype-map.json"]


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrentSaves:
    def test_parallel_add_and_save_keeps_every_entry(self, store):
        barrier = threading.Barrier(16)

        def worker(n):
            barrier.wait()
            store.add_entry(_entry(f"e{n}", symbol=f"f{n}"))
            store.save()

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        reloaded = AnchorMapStore.open(store.map_path)
        assert {e.id for e in reloaded.entries()} == {f"e{n}" for n in range(16)}

    def test_parallel_updates_all_persist(self, store):
        for n in range(10):
            store.add_entry(_entry(f"e{n}", symbol=f"f{n}"))
        store.save()

        def worker(n):
            store.update_entry(f"e{n}", code_signature_hash=f"new{n}")
            store.save()

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        reloaded = AnchorMapStore.open(store.map_path)
        assert {e.id: e.code_signature_hash for e in reloaded.entries()} == {
            f"e{n}": f"new{n}" for n in range(10)
        }
