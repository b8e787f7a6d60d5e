"""Tests for the knowledgebase watcher event handling."""

from __future__ import annotations

from pathlib import Path

from knowbase.ingest.embeddings import HashedEmbeddingModel
from knowbase.ingest.indexer import DocumentIndexer
from knowbase.ingest.resources import ResourceStore
from knowbase.ingest.watcher import KnowledgebaseEventHandler, KnowledgebaseWatcher
from knowbase.retrieval.vector_store import VectorStore


def _handler(tmp_path: Path) -> KnowledgebaseEventHandler:
    resources = ResourceStore(tmp_path / "kb", "s1")
    resources.ensure_storage()
    indexer = DocumentIndexer("s1", VectorStore(), {}, HashedEmbeddingModel(dim=64), resources.loaders)
    return KnowledgebaseEventHandler(resources, indexer)


def test_new_file_is_indexed_once(tmp_path: Path) -> None:
    handler = _handler(tmp_path)
    (handler.resources.storage_path / "a.txt").write_text("alpha")

    assert handler.reindex("a.txt") is True
    assert "a.txt" in handler.indexer.registry
    assert handler.reindex("a.txt") is False


def test_unsupported_and_hidden_files_are_ignored(tmp_path: Path) -> None:
    handler = _handler(tmp_path)
    (handler.resources.storage_path / "image.png").write_bytes(b"\x89PNG")
    (handler.resources.storage_path / ".a.txt.swp").write_text("x")

    assert handler.reindex("image.png") is False
    assert handler.reindex(".a.txt.swp") is False
    assert handler.indexer.registry == {}


def test_deleted_file_is_evicted(tmp_path: Path) -> None:
    handler = _handler(tmp_path)
    path = handler.resources.storage_path / "a.txt"
    path.write_text("alpha")
    handler.reindex("a.txt")
    path.unlink()

    assert handler.evict("a.txt") is True
    assert handler.indexer.registry == {}
    assert handler.indexer.store.size == 0
    assert handler.evict("a.txt") is False


def test_start_and_stop_are_idempotent(tmp_path: Path) -> None:
    handler = _handler(tmp_path)
    watcher = KnowledgebaseWatcher(handler.resources, handler.indexer)
    watcher.start()
    watcher.start()
    assert watcher.running
    watcher.stop()
    watcher.stop()
    assert not watcher.running
