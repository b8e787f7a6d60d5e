"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, HTTPException

from knowbase.core.config import Settings, get_settings
from knowbase.core.errors import SessionNotFound
from knowbase.db.history import ChatHistoryStore
from knowbase.db.sqlite import SQLiteDatabase
from knowbase.ingest.embeddings import EmbeddingModel, build_embedding_model
from knowbase.retrieval.chat import build_chat_model
from knowbase.session import ChatModelFactory, KnowledgeSession, SessionManager

_DB: SQLiteDatabase | None = None
_EMBEDDING_MODEL: EmbeddingModel | None = None
_CHAT_MODEL_FACTORY: ChatModelFactory | None = None
_SESSION_MANAGER: SessionManager | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        settings = get_app_settings()
        db = SQLiteDatabase(settings.resolved_db_path)
        db.ensure_schema()
        _DB = db
    return _DB


def get_embedding_model() -> EmbeddingModel:
    global _EMBEDDING_MODEL
    if _EMBEDDING_MODEL is None:
        _EMBEDDING_MODEL = build_embedding_model(get_app_settings())
    return _EMBEDDING_MODEL


def get_chat_model_factory() -> ChatModelFactory:
    if _CHAT_MODEL_FACTORY is not None:
        return _CHAT_MODEL_FACTORY
    settings = get_app_settings()
    return lambda model_name: build_chat_model(settings, model_name)


def get_session_manager() -> SessionManager:
    global _SESSION_MANAGER
    if _SESSION_MANAGER is None:
        _SESSION_MANAGER = SessionManager(
            settings=get_app_settings(),
            history=ChatHistoryStore(get_database()),
            embedding_model=get_embedding_model(),
            chat_model_factory=get_chat_model_factory(),
        )
    return _SESSION_MANAGER


def get_session(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager),
) -> KnowledgeSession:
    try:
        return manager.get(session_id)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def shutdown() -> None:
    global _DB, _SESSION_MANAGER
    if _SESSION_MANAGER is not None:
        _SESSION_MANAGER.close()
        _SESSION_MANAGER = None
    if _DB is not None:
        _DB.close()
        _DB = None


__all__ = [
    "get_app_settings",
    "get_database",
    "get_embedding_model",
    "get_chat_model_factory",
    "get_session_manager",
    "get_session",
    "shutdown",
]
