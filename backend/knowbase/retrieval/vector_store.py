"""In-memory vector store with cosine search and metadata-filtered removal."""

from __future__ import annotations

import math
import threading
from typing import Iterable, Sequence

from knowbase.core.errors import DimensionMismatch
from knowbase.models.entities import EmbeddingMatch, EmbeddingRecord, TextSegment


class VectorStore:
    """Exhaustive cosine-similarity store scoped to one session.

    The dimension is fixed by the first insert (or by ``dim`` when given) and every
    later vector must match it. All reads and writes go through ``lock``; callers that
    need to update other state together with the store (the indexed-file registry)
    hold the same re-entrant lock around both updates.
    """

    def __init__(self, dim: int | None = None) -> None:
        self._dim = dim
        self._records: list[EmbeddingRecord] = []
        self._norms: list[float] = []
        self.lock = threading.RLock()

    @property
    def dim(self) -> int | None:
        return self._dim

    @property
    def size(self) -> int:
        return len(self._records)

    def __len__(self) -> int:
        return self.size

    def add(self, vector: Sequence[float], segment: TextSegment) -> EmbeddingRecord:
        record = self._make_record(vector, segment)
        with self.lock:
            self._check_dim(len(record.vector))
            self._append(record)
        return record

    def add_all(self, items: Iterable[tuple[Sequence[float], TextSegment]]) -> list[EmbeddingRecord]:
        records = [self._make_record(vector, segment) for vector, segment in items]
        with self.lock:
            self._check_batch(records)
            for record in records:
                self._append(record)
        return records

    def search(self, query_vector: Sequence[float], max_results: int, min_score: float = 0.0) -> list[EmbeddingMatch]:
        """Return up to ``max_results`` matches scoring at least ``min_score``.

        Matches are ordered by descending cosine similarity; equal scores keep
        insertion order.
        """
        if max_results <= 0:
            return []
        with self.lock:
            if not self._records:
                return []
            if len(query_vector) != self._dim:
                raise DimensionMismatch(self._dim or 0, len(query_vector))
            query_norm = _norm(query_vector)
            scored: list[tuple[float, EmbeddingRecord]] = []
            for record, norm in zip(self._records, self._norms):
                score = _cosine(query_vector, query_norm, record.vector, norm)
                if score >= min_score:
                    scored.append((score, record))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [EmbeddingMatch(score=score, record=record) for score, record in scored[:max_results]]

    def remove_by_metadata(self, key: str, value: str) -> int:
        """Drop every record whose metadata ``key`` equals ``value``; return the count removed."""
        with self.lock:
            return self._filter_out(key, value)

    def replace_by_metadata(
        self,
        key: str,
        value: str,
        items: Iterable[tuple[Sequence[float], TextSegment]],
    ) -> int:
        """Atomically swap the records matching ``key == value`` for ``items``.

        Readers never observe the state between eviction and reinsertion. Returns the
        number of records evicted.
        """
        records = [self._make_record(vector, segment) for vector, segment in items]
        with self.lock:
            self._check_batch(records)
            removed = self._filter_out(key, value)
            for record in records:
                self._append(record)
        return removed

    def remove_all(self) -> None:
        with self.lock:
            self._records = []
            self._norms = []

    def records(self) -> list[EmbeddingRecord]:
        with self.lock:
            return list(self._records)

    @classmethod
    def from_records(cls, dim: int | None, records: Iterable[EmbeddingRecord]) -> "VectorStore":
        store = cls(dim=dim)
        for record in records:
            store.add(record.vector, record.segment)
        return store

    # ------------------------------------------------------------------

    @staticmethod
    def _make_record(vector: Sequence[float], segment: TextSegment) -> EmbeddingRecord:
        return EmbeddingRecord(vector=tuple(float(value) for value in vector), segment=segment)

    def _check_dim(self, length: int) -> None:
        if length == 0:
            raise DimensionMismatch(self._dim or 0, 0)
        if self._dim is None:
            self._dim = length
        elif length != self._dim:
            raise DimensionMismatch(self._dim, length)

    def _check_batch(self, records: Sequence[EmbeddingRecord]) -> None:
        # validate the whole batch before touching the store
        expected = self._dim
        for record in records:
            length = len(record.vector)
            if length == 0 or (expected is not None and length != expected):
                raise DimensionMismatch(expected or 0, length)
            expected = length
        if records and self._dim is None:
            self._dim = expected

    def _append(self, record: EmbeddingRecord) -> None:
        self._records.append(record)
        self._norms.append(_norm(record.vector))

    def _filter_out(self, key: str, value: str) -> int:
        kept_records: list[EmbeddingRecord] = []
        kept_norms: list[float] = []
        for record, norm in zip(self._records, self._norms):
            if record.segment.metadata.get(key) == value:
                continue
            kept_records.append(record)
            kept_norms.append(norm)
        removed = len(self._records) - len(kept_records)
        self._records = kept_records
        self._norms = kept_norms
        return removed


def _norm(vector: Sequence[float]) -> float:
    return math.sqrt(sum(value * value for value in vector))


def _cosine(a: Sequence[float], a_norm: float, b: Sequence[float], b_norm: float) -> float:
    if a_norm == 0 or b_norm == 0:
        return 0.0
    return sum(x * y for x, y in zip(a, b)) / (a_norm * b_norm)


__all__ = ["VectorStore"]
