"""Tests for the per-session index cache."""

from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from knowbase.core.errors import CacheIncompatible
from knowbase.db.cache import IndexCache
from knowbase.models.entities import TextSegment
from knowbase.retrieval.vector_store import VectorStore


def _store() -> VectorStore:
    store = VectorStore()
    store.add([0.1, 0.2, 0.3], TextSegment("alpha", {"fileName": "a.txt"}))
    store.add([1 / 3, 2 / 3, 0.7071067811865476], TextSegment("beta", {"fileName": "b.md"}))
    return store


def test_save_and_load_restore_store_and_registry(tmp_path: Path) -> None:
    cache = IndexCache(tmp_path)
    store = _store()
    registry = {"a.txt": 1700000000000, "b.md": 1700000000123}
    cache.save("s1", store, registry)

    loaded = cache.load("s1", expected_dim=3)
    assert loaded is not None
    restored, restored_registry = loaded
    assert restored_registry == registry
    assert restored.dim == 3
    original = store.records()
    assert [r.vector for r in restored.records()] == [r.vector for r in original]
    assert [r.segment for r in restored.records()] == [r.segment for r in original]


def test_missing_cache_loads_as_none(tmp_path: Path) -> None:
    assert IndexCache(tmp_path).load("nothing") is None


def test_dimension_mismatch_is_incompatible(tmp_path: Path) -> None:
    cache = IndexCache(tmp_path)
    cache.save("s1", _store(), {"a.txt": 1})
    with pytest.raises(CacheIncompatible):
        cache.load("s1", expected_dim=4)


def test_corrupt_cache_is_incompatible(tmp_path: Path) -> None:
    cache = IndexCache(tmp_path)
    cache.path_for("s1").parent.mkdir(parents=True, exist_ok=True)
    cache.path_for("s1").write_text("{not json")
    with pytest.raises(CacheIncompatible):
        cache.load("s1")


def test_unknown_version_is_incompatible(tmp_path: Path) -> None:
    cache = IndexCache(tmp_path)
    cache.save("s1", _store(), {})
    payload = orjson.loads(cache.path_for("s1").read_bytes())
    payload["version"] = 99
    cache.path_for("s1").write_bytes(orjson.dumps(payload))
    with pytest.raises(CacheIncompatible):
        cache.load("s1")


def test_save_replaces_previous_snapshot(tmp_path: Path) -> None:
    cache = IndexCache(tmp_path)
    cache.save("s1", _store(), {"a.txt": 1, "b.md": 2})
    cache.save("s1", VectorStore(dim=3), {})
    loaded = cache.load("s1")
    assert loaded is not None
    store, registry = loaded
    assert store.size == 0
    assert registry == {}
    assert [p.name for p in tmp_path.iterdir()] == ["s1.json"]


def test_delete_removes_cache_file(tmp_path: Path) -> None:
    cache = IndexCache(tmp_path)
    cache.save("s1", _store(), {})
    assert cache.delete("s1") is True
    assert not cache.exists("s1")
    assert cache.delete("s1") is False


def test_session_id_must_be_a_single_path_component(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        IndexCache(tmp_path).path_for("../escape")
