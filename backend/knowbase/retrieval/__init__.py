"""Retrieval orchestration components."""

from .vector_store import VectorStore
from .engine import RetrievalEngine
from .rerank import Reranker
from .context import ConversationContext

__all__ = [
    "VectorStore",
    "RetrievalEngine",
    "Reranker",
    "ConversationContext",
]
