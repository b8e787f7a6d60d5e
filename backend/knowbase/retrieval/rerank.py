"""Reranking helpers."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence

from knowbase.models.entities import EmbeddingMatch
from knowbase.utils.text import tokenize

logger = logging.getLogger(__name__)

EMBEDDING_WEIGHT = 0.6
TERM_OVERLAP_WEIGHT = 0.3
POSITION_WEIGHT = 0.05
EXACT_PHRASE_BONUS = 0.05


@dataclass(slots=True)
class RerankResult:
    match: EmbeddingMatch
    score: float
    term_overlap: float
    position_score: float
    exact_phrase: bool


class Reranker:
    """Deterministic hybrid reranker over embedding search candidates.

    score = 0.6 * embedding score
          + 0.3 * share of query tokens present in the candidate
          + 0.05 * 1 / (1 + ln(first matching token index + 1))
          + 0.05 when the space-joined query tokens appear verbatim in the candidate
    """

    def rerank(self, query: str, candidates: Sequence[EmbeddingMatch]) -> list[EmbeddingMatch]:
        return [result.match for result in self.score(query, candidates)]

    def score(self, query: str, candidates: Sequence[EmbeddingMatch]) -> list[RerankResult]:
        """Score every candidate and return them stably sorted by descending score."""
        if not candidates:
            return []
        query_tokens = tokenize(query)
        results = [_score_candidate(query_tokens, candidate) for candidate in candidates]
        results.sort(key=lambda item: item.score, reverse=True)
        logger.debug("Re-ranked %s results", len(results))
        return results


def _score_candidate(query_tokens: Sequence[str], candidate: EmbeddingMatch) -> RerankResult:
    text = candidate.text.lower()
    text_tokens = tokenize(text)
    text_vocab = set(text_tokens)

    matched = sum(1 for token in query_tokens if token in text_vocab)
    term_overlap = matched / len(query_tokens) if query_tokens else 0.0

    first = _first_match_position(query_tokens, text_tokens)
    position_score = 1.0 / (1.0 + math.log(first + 1)) if first >= 0 else 0.0

    phrase = " ".join(query_tokens)
    exact_phrase = bool(phrase) and phrase in text

    score = (
        EMBEDDING_WEIGHT * candidate.score
        + TERM_OVERLAP_WEIGHT * term_overlap
        + POSITION_WEIGHT * position_score
        + (EXACT_PHRASE_BONUS if exact_phrase else 0.0)
    )
    return RerankResult(
        match=candidate,
        score=score,
        term_overlap=term_overlap,
        position_score=position_score,
        exact_phrase=exact_phrase,
    )


def _first_match_position(query_tokens: Sequence[str], text_tokens: Sequence[str]) -> int:
    wanted = set(query_tokens)
    for idx, token in enumerate(text_tokens):
        if token in wanted:
            return idx
    return -1


__all__ = ["Reranker", "RerankResult"]
