"""Filesystem watcher that keeps a session's index in step with its directory."""

from __future__ import annotations

import threading
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from knowbase.core.errors import KnowbaseError
from knowbase.core.logging import get_logger
from knowbase.ingest.indexer import DocumentIndexer
from knowbase.ingest.resources import ResourceStore

logger = get_logger(__name__)


class KnowledgebaseEventHandler(FileSystemEventHandler):
    """Translate watchdog events into single-file index updates."""

    def __init__(self, resources: ResourceStore, indexer: DocumentIndexer) -> None:
        super().__init__()
        self.resources = resources
        self.indexer = indexer

    def on_created(self, event: FileSystemEvent) -> None:  # pragma: no cover - requires filesystem
        if not event.is_directory:
            self.reindex(Path(event.src_path).name)

    def on_modified(self, event: FileSystemEvent) -> None:  # pragma: no cover - requires filesystem
        if not event.is_directory:
            self.reindex(Path(event.src_path).name)

    def on_deleted(self, event: FileSystemEvent) -> None:  # pragma: no cover - requires filesystem
        if not event.is_directory:
            self.evict(Path(event.src_path).name)

    def on_moved(self, event: FileSystemEvent) -> None:  # pragma: no cover - requires filesystem
        if not event.is_directory:
            self.evict(Path(event.src_path).name)
            self.reindex(Path(event.dest_path).name)

    def reindex(self, file_name: str) -> bool:
        if not self._relevant(file_name):
            return False
        entry = self.resources.get(file_name)
        if entry is None:
            return False
        if self.indexer.registry.get(entry.name) == entry.last_modified:
            return False
        try:
            self.indexer.index_single_file(entry)
        except KnowbaseError as exc:
            # the observer thread must survive a bad file
            logger.error("Watcher could not index %s: %s", file_name, exc)
            return False
        return True

    def evict(self, file_name: str) -> bool:
        if file_name.startswith(".") or file_name not in self.indexer.registry:
            return False
        self.indexer.remove_file_from_index(file_name)
        return True

    def _relevant(self, file_name: str) -> bool:
        return not file_name.startswith(".") and self.resources.is_supported(file_name)


class KnowledgebaseWatcher:
    """Watch one session's knowledgebase directory with a watchdog observer."""

    def __init__(self, resources: ResourceStore, indexer: DocumentIndexer) -> None:
        self.handler = KnowledgebaseEventHandler(resources, indexer)
        self.path = resources.storage_path
        self._observer: BaseObserver | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        with self._lock:
            if self._observer is not None:
                return
            self.handler.resources.ensure_storage()
            observer = Observer()
            observer.schedule(self.handler, str(self.path), recursive=False)
            observer.start()
            self._observer = observer
            logger.info("Watching %s", self.path)

    def stop(self) -> None:
        with self._lock:
            if self._observer is None:
                return
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
            logger.info("Stopped watching %s", self.path)


__all__ = ["KnowledgebaseWatcher", "KnowledgebaseEventHandler"]
