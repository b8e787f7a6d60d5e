"""Incremental knowledgebase indexing."""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, MutableMapping, Protocol, Sequence

from knowbase.core.errors import IndexingFailed
from knowbase.core.logging import session_logger
from knowbase.core.metrics import INDEX_DURATION, INDEX_SIZE, INDEXED_FILES
from knowbase.db.cache import IndexCache
from knowbase.ingest.chunker import build_segments
from knowbase.ingest.embeddings import EmbeddingModel
from knowbase.models.entities import FILE_NAME_KEY, FileEntry, IndexReport, ProgressEvent, TextSegment
from knowbase.retrieval.vector_store import VectorStore

ProgressSink = Callable[[str, int, int], None]


class FileLister(Protocol):
    def list_files(self) -> list[FileEntry]: ...


class TextExtractor(Protocol):
    def read(self, path: Path) -> str: ...


class IndexerState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    PROCESSING = "processing"
    PERSISTING = "persisting"
    FAILED = "failed"


class ProgressChannel:
    """Queue-backed progress sink drained by whichever thread drives the UI or API."""

    def __init__(self) -> None:
        self._queue: queue.Queue[ProgressEvent] = queue.Queue()

    def __call__(self, message: str, current: int, total: int) -> None:
        self._queue.put(ProgressEvent(message=message, current=current, total=total))

    def get(self, timeout: float | None = None) -> ProgressEvent:
        return self._queue.get(timeout=timeout)

    def drain(self) -> list[ProgressEvent]:
        events: list[ProgressEvent] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events


@dataclass(slots=True)
class ScanResult:
    to_index: list[FileEntry] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    current: set[str] = field(default_factory=set)


class DocumentIndexer:
    """Keep a session's vector store in step with its knowledgebase files.

    The store and the ``registry`` (file name -> last-modified millis) are always
    updated together under ``store.lock`` so a snapshot never sees one without
    the other.
    """

    def __init__(
        self,
        session_id: str,
        store: VectorStore,
        registry: MutableMapping[str, int],
        embedding_model: EmbeddingModel,
        extractor: TextExtractor,
        cache: IndexCache | None = None,
        chunk_size: int = 500,
        chunk_overlap: int = 50,
    ) -> None:
        self.session_id = session_id
        self._log = session_logger(__name__, session_id)
        self.store = store
        self.registry = registry
        self.embedding_model = embedding_model
        self.extractor = extractor
        self.cache = cache
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.state = IndexerState.IDLE
        self.last_error: Exception | None = None
        self._run_lock = threading.Lock()

    def scan(self, entries: Sequence[FileEntry]) -> ScanResult:
        """Classify listed files as new/modified (to index) and registry entries as deleted."""
        result = ScanResult()
        with self.store.lock:
            known = dict(self.registry)
        for entry in entries:
            result.current.add(entry.name)
            if known.get(entry.name) != entry.last_modified:
                result.to_index.append(entry)
        result.deleted = [name for name in known if name not in result.current]
        return result

    def index_knowledgebase(
        self,
        files: FileLister,
        progress: ProgressSink | None = None,
        cancel_event: threading.Event | None = None,
    ) -> IndexReport:
        """Index new and modified files, evict deleted ones, persist when anything changed."""
        emit = progress or _noop_progress
        report = IndexReport()
        with self._run_lock, INDEX_DURATION.labels(session=self.session_id).time():
            self.last_error = None
            self.state = IndexerState.SCANNING
            scan = self.scan(files.list_files())
            total = len(scan.to_index)
            report.total = total
            self._log.debug("Scan: %s to index, %s deleted", total, len(scan.deleted))

            if total > 0:
                emit("Starting indexing...", 0, total)
            self.state = IndexerState.PROCESSING
            current = 0
            for entry in scan.to_index:
                if cancel_event is not None and cancel_event.is_set():
                    report.cancelled = True
                    break
                emit(f"Indexing {entry.name}...", current + 1, total)
                try:
                    is_update = self._index_entry(entry, report)
                except Exception as exc:
                    self._fail(entry.name, exc, report, current, total, emit)
                    raise IndexingFailed(entry.name, exc, report) from exc
                current += 1
                if is_update:
                    report.updated += 1
                else:
                    report.new += 1

            if not report.cancelled:
                for name in scan.deleted:
                    self._evict(name)
                    report.deleted += 1
                    INDEXED_FILES.labels(outcome="deleted").inc()

            self._log.info(
                "Indexing complete. New: %s, Updated: %s, Deleted: %s",
                report.new,
                report.updated,
                report.deleted,
            )
            if report.changed:
                emit("Saving cache...", current, total)
                self._persist(report)

            self._finish()
            if report.cancelled:
                emit("Indexing cancelled", current, total)
            elif total == 0:
                emit("All files already indexed", 0, 0)
            else:
                emit("Indexing complete", total, total)
        return report

    def index_single_file(self, entry: FileEntry) -> IndexReport:
        """Index or re-index exactly one file, then save the cache unconditionally."""
        report = IndexReport(total=1)
        with self._run_lock:
            self.last_error = None
            self.state = IndexerState.PROCESSING
            self._log.debug("Indexing single file: %s", entry.name)
            try:
                is_update = self._index_entry(entry, report)
            except Exception as exc:
                self._fail(entry.name, exc, report, 0, 1, _noop_progress)
                raise IndexingFailed(entry.name, exc, report) from exc
            if is_update:
                report.updated = 1
            else:
                report.new = 1
            self._persist(report)
            self._finish()
        return report

    def remove_file_from_index(self, file_name: str) -> IndexReport:
        """Evict one file's segments and registry entry, then save the cache unconditionally."""
        report = IndexReport()
        with self._run_lock:
            self._log.debug("Removing file from index: %s", file_name)
            if self._evict(file_name):
                report.deleted = 1
            self._persist(report)
            self._finish()
        return report

    # Internal helpers -------------------------------------------------

    def _index_entry(self, entry: FileEntry, report: IndexReport) -> bool:
        # embed everything before touching the store so a failure leaves the old state intact
        text = self.extractor.read(entry.path)
        segments = build_segments(entry.name, text, self.chunk_size, self.chunk_overlap)
        if not segments:
            self._log.warning("Document %s produced no segments", entry.name)
        items = [(self.embedding_model.embed(segment.text), segment) for segment in segments]
        is_update = self._commit(entry, items)
        report.segments += len(items)
        INDEXED_FILES.labels(outcome="updated" if is_update else "new").inc()
        self._log.debug(
            "Indexed %s file %s: %s segments", "modified" if is_update else "new", entry.name, len(items)
        )
        return is_update

    def _commit(self, entry: FileEntry, items: list[tuple[list[float], TextSegment]]) -> bool:
        with self.store.lock:
            is_update = entry.name in self.registry
            self.store.replace_by_metadata(FILE_NAME_KEY, entry.name, items)
            self.registry[entry.name] = entry.last_modified
        return is_update

    def _evict(self, file_name: str) -> bool:
        with self.store.lock:
            removed = self.store.remove_by_metadata(FILE_NAME_KEY, file_name)
            known = self.registry.pop(file_name, None) is not None
        self._log.debug("Evicted %s segments of %s", removed, file_name)
        return known or removed > 0

    def _persist(self, report: IndexReport) -> None:
        INDEX_SIZE.labels(session=self.session_id).set(self.store.size)
        if self.cache is None:
            return
        self.state = IndexerState.PERSISTING
        self.cache.save(self.session_id, self.store, self.registry)
        report.persisted = True

    def _fail(
        self,
        file_name: str,
        exc: Exception,
        report: IndexReport,
        current: int,
        total: int,
        emit: ProgressSink,
    ) -> None:
        self.state = IndexerState.FAILED
        self.last_error = exc
        INDEXED_FILES.labels(outcome="failed").inc()
        self._log.exception("Indexing failed at %s: %s", file_name, exc)
        emit(f"Indexing failed at {file_name}: {exc}", current, total)
        # files committed before the failure stay indexed
        if report.changed:
            try:
                self._persist(report)
            finally:
                self.state = IndexerState.IDLE
        else:
            self.state = IndexerState.IDLE

    def _finish(self) -> None:
        self.state = IndexerState.IDLE


def _noop_progress(message: str, current: int, total: int) -> None:
    return None


__all__ = [
    "DocumentIndexer",
    "FileLister",
    "TextExtractor",
    "IndexerState",
    "ProgressChannel",
    "ProgressSink",
    "ScanResult",
]
