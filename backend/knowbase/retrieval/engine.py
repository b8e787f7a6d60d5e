"""Retrieval-augmented query orchestration."""

from __future__ import annotations

import threading
import time
from typing import Sequence

from knowbase.core.logging import session_logger
from knowbase.ingest.embeddings import EmbeddingModel
from knowbase.models.entities import EmbeddingMatch, RetrievalResult, Role
from knowbase.retrieval.chat import ChatModel
from knowbase.retrieval.context import ConversationContext
from knowbase.retrieval.rerank import Reranker
from knowbase.retrieval.vector_store import VectorStore

MAX_RESULTS_BEFORE_RERANK = 15
MIN_SCORE = 0.5
MAX_RESULTS = 5


class RetrievalEngine:
    """Answers user messages from the session's knowledgebase.

    The pipeline is contextualise -> embed -> search (similarity floor) -> rerank
    -> truncate -> prompt -> chat. Reranking always sees the full post-floor
    candidate list before truncation.
    """

    def __init__(
        self,
        store: VectorStore,
        context: ConversationContext,
        embedding_model: EmbeddingModel,
        chat_model: ChatModel,
        reranker: Reranker | None = None,
        max_results_before_rerank: int = MAX_RESULTS_BEFORE_RERANK,
        min_score: float = MIN_SCORE,
        max_results: int = MAX_RESULTS,
        session_id: str | None = None,
    ) -> None:
        self.store = store
        self.context = context
        self.embedding_model = embedding_model
        self.chat_model = chat_model
        self.reranker = reranker or Reranker()
        self.max_results_before_rerank = max_results_before_rerank
        self.min_score = min_score
        self.max_results = max_results
        self.session_id = session_id
        self._lock = threading.Lock()
        self._log = session_logger(__name__, session_id)

    def retrieve(self, query_text: str) -> list[EmbeddingMatch]:
        """Embed ``query_text`` and return the reranked, truncated segment matches."""
        vector = self.embedding_model.embed(query_text)
        candidates = self.store.search(vector, max_results=self.max_results_before_rerank, min_score=self.min_score)
        self._log.debug("Retrieval found %s segments", len(candidates))
        ranked = self.reranker.rerank(query_text, candidates)
        return ranked[: self.max_results]

    def query(self, user_message: str) -> RetrievalResult:
        start_time = time.perf_counter()
        with self._lock:
            contextualized = self.context.contextualize(user_message)
            ranked = self.retrieve(contextualized)
            sources = source_file_names(ranked)
            self._log.debug("Query matched %s segments from documents: %s", len(ranked), sorted(sources))

            prompt = build_prompt(user_message, ranked)
            self.context.record_turn(Role.USER, user_message)
            turns = self.context.request_turns(prompt)
            self._log.debug("Sending message to chat model with %s messages in history", len(turns))
            answer = self.chat_model.chat(turns)
            self.context.record_turn(Role.ASSISTANT, answer)

        self._log.info(
            "Answered query in %.3fs with %s segments",
            time.perf_counter() - start_time,
            len(ranked),
            extra={"ctx_sources": sorted(sources)},
        )
        return RetrievalResult(answer_text=answer, source_file_names=sources)

    def clear_history(self) -> None:
        with self._lock:
            self.context.clear()


def source_file_names(matches: Sequence[EmbeddingMatch]) -> set[str]:
    names: set[str] = set()
    for match in matches:
        name = match.segment.file_name
        if name:
            names.add(name)
    return names


def build_prompt(user_message: str, matches: Sequence[EmbeddingMatch]) -> str:
    if not matches:
        return user_message
    context = "Relevant context:\n\n" + "".join(f"{match.text}\n\n" for match in matches)
    return f"{context}\nUser question: {user_message}"


__all__ = ["RetrievalEngine", "build_prompt", "source_file_names"]
