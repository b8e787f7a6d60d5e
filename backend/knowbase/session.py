"""Per-session wiring of storage, indexing and retrieval."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from knowbase.core.config import Settings
from knowbase.core.errors import CacheIncompatible, QueryRejected, ResourceError, SessionNotFound
from knowbase.core.logging import get_logger
from knowbase.db.cache import IndexCache
from knowbase.db.history import ChatHistoryStore
from knowbase.ingest.embeddings import EmbeddingModel
from knowbase.ingest.indexer import DocumentIndexer, ProgressSink
from knowbase.ingest.resources import ResourceStore
from knowbase.ingest.watcher import KnowledgebaseWatcher
from knowbase.models.entities import ChatRecord, FileEntry, IndexReport, RetrievalResult, SessionRecord
from knowbase.retrieval.chat import ChatModel
from knowbase.retrieval.context import ConversationContext
from knowbase.retrieval.engine import RetrievalEngine
from knowbase.retrieval.rerank import Reranker
from knowbase.retrieval.vector_store import VectorStore

logger = get_logger(__name__)

ChatModelFactory = Callable[[str], ChatModel]


@dataclass(slots=True)
class ImportOutcome:
    entry: FileEntry
    report: IndexReport


class KnowledgeSession:
    """Everything one session needs, wired by explicit injection."""

    def __init__(
        self,
        record: SessionRecord,
        settings: Settings,
        resources: ResourceStore,
        store: VectorStore,
        indexer: DocumentIndexer,
        engine: RetrievalEngine,
        history: ChatHistoryStore,
    ) -> None:
        self.record = record
        self.settings = settings
        self.resources = resources
        self.store = store
        self.indexer = indexer
        self.engine = engine
        self.history = history
        self.watcher: KnowledgebaseWatcher | None = None

    @classmethod
    def open(
        cls,
        session_id: str,
        settings: Settings,
        embedding_model: EmbeddingModel,
        chat_model: ChatModel,
        history: ChatHistoryStore,
        cache: IndexCache | None = None,
    ) -> "KnowledgeSession":
        record = history.get_session(session_id)
        cache = cache or IndexCache(settings.resolved_cache_dir)
        resources = ResourceStore(settings.resolved_knowledgebase_dir, session_id)

        store, registry = _restore_index(cache, session_id, embedding_model.dim)
        context = ConversationContext.from_records(
            history.get_history(session_id),
            system_prompt=settings.system_prompt,
            window=settings.history_window,
            snippet_chars=settings.snippet_chars,
        )
        indexer = DocumentIndexer(
            session_id=session_id,
            store=store,
            registry=registry,
            embedding_model=embedding_model,
            extractor=resources.loaders,
            cache=cache,
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
        )
        engine = RetrievalEngine(
            store=store,
            context=context,
            embedding_model=embedding_model,
            chat_model=chat_model,
            reranker=Reranker(),
            max_results_before_rerank=settings.max_results_before_rerank,
            min_score=settings.min_score,
            max_results=settings.top_k_final,
            session_id=session_id,
        )
        logger.info(
            "Opened session %s with %s indexed files and %s segments",
            session_id,
            len(registry),
            store.size,
        )
        return cls(record, settings, resources, store, indexer, engine, history)

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def indexed_files(self) -> dict[str, int]:
        with self.store.lock:
            return dict(self.indexer.registry)

    def start_watching(self) -> None:
        if self.watcher is None:
            self.watcher = KnowledgebaseWatcher(self.resources, self.indexer)
        self.watcher.start()

    def stop_watching(self) -> None:
        if self.watcher is not None:
            self.watcher.stop()

    def set_chat_model(self, chat_model: ChatModel) -> None:
        """Swap the chat model, keeping the store and the conversation."""
        engine = self.engine
        self.engine = RetrievalEngine(
            store=engine.store,
            context=engine.context,
            embedding_model=engine.embedding_model,
            chat_model=chat_model,
            reranker=engine.reranker,
            max_results_before_rerank=engine.max_results_before_rerank,
            min_score=engine.min_score,
            max_results=engine.max_results,
            session_id=engine.session_id,
        )

    def index_knowledgebase(
        self,
        progress: ProgressSink | None = None,
        cancel_event: threading.Event | None = None,
    ) -> IndexReport:
        return self.indexer.index_knowledgebase(self.resources, progress=progress, cancel_event=cancel_event)

    def import_resource(self, source: Path) -> ImportOutcome:
        entry = self.resources.import_resource(source)
        report = self.indexer.index_single_file(entry)
        return ImportOutcome(entry=entry, report=report)

    def delete_resource(self, file_name: str) -> IndexReport:
        if not self.resources.delete_resource(file_name):
            raise ResourceError(f"Resource not found: {file_name}", kind="missing")
        return self.indexer.remove_file_from_index(file_name)

    def read_resource(self, file_name: str) -> str:
        """Extracted text of one knowledgebase file."""
        return self.resources.read_text(file_name)

    def ask(self, message: str) -> RetrievalResult:
        text = message.strip() if message else ""
        if not text:
            raise QueryRejected("Message must not be empty")
        if len(text) > self.settings.max_query_length:
            raise QueryRejected(
                f"Message is too long ({len(text)} characters, limit {self.settings.max_query_length})"
            )
        logger.info("Session %s query of %s characters", self.id, len(message))
        self.history.save_message(self.id, message, is_user=True)
        result = self.engine.query(message)
        sources = ", ".join(sorted(result.source_file_names)) or None
        self.history.save_message(self.id, result.answer_text, is_user=False, sources=sources)
        return result

    def transcript(self) -> list[ChatRecord]:
        return self.history.get_history(self.id)

    def clear_history(self) -> int:
        removed = self.history.clear_history(self.id)
        self.engine.clear_history()
        return removed


class SessionManager:
    """Creates, caches and deletes :class:`KnowledgeSession` objects."""

    def __init__(
        self,
        settings: Settings,
        history: ChatHistoryStore,
        embedding_model: EmbeddingModel,
        chat_model_factory: ChatModelFactory,
        cache: IndexCache | None = None,
    ) -> None:
        self.settings = settings
        self.history = history
        self.embedding_model = embedding_model
        self.chat_model_factory = chat_model_factory
        self.cache = cache or IndexCache(settings.resolved_cache_dir)
        self._sessions: dict[str, KnowledgeSession] = {}
        self._lock = threading.Lock()

    def list_sessions(self) -> list[SessionRecord]:
        return self.history.list_sessions()

    def create(self, name: str, model: str | None = None) -> SessionRecord:
        record = self.history.create_session(name, model or self.settings.chat_model)
        ResourceStore(self.settings.resolved_knowledgebase_dir, record.id).ensure_storage()
        return record

    def get(self, session_id: str) -> KnowledgeSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                record = self.history.get_session(session_id)
                session = KnowledgeSession.open(
                    session_id,
                    self.settings,
                    self.embedding_model,
                    self.chat_model_factory(record.model),
                    self.history,
                    cache=self.cache,
                )
                if self.settings.watch_knowledgebase:
                    session.start_watching()
                self._sessions[session_id] = session
            return session

    def update(self, session_id: str, name: str | None = None, model: str | None = None) -> SessionRecord:
        previous = self.history.get_session(session_id)
        record = self.history.update_session(session_id, name=name, model=model)
        with self._lock:
            session = self._sessions.get(session_id)
        if session is not None:
            session.record = record
            if record.model != previous.model:
                logger.info("Session %s chat model changed to %s", session_id, record.model)
                session.set_chat_model(self.chat_model_factory(record.model))
        return record

    def delete(self, session_id: str) -> None:
        if not self.history.delete_session(session_id):
            raise SessionNotFound(session_id)
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.stop_watching()
        self.cache.delete(session_id)
        ResourceStore(self.settings.resolved_knowledgebase_dir, session_id).clear()
        logger.info("Deleted session %s with its index cache and knowledgebase files", session_id)

    def close(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.stop_watching()


def _restore_index(
    cache: IndexCache, session_id: str, dim: int
) -> tuple[VectorStore, dict[str, int]]:
    try:
        loaded = cache.load(session_id, expected_dim=dim)
    except CacheIncompatible as exc:
        logger.warning("Discarding index cache for %s: %s", session_id, exc)
        loaded = None
    if loaded is None:
        return VectorStore(dim=dim), {}
    store, registry = loaded
    return store, dict(registry)


__all__ = ["KnowledgeSession", "SessionManager", "ImportOutcome", "ChatModelFactory"]
