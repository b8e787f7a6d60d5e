"""Durable per-session snapshot of the vector store and indexed-file registry."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import orjson

from knowbase.core.errors import CacheIncompatible
from knowbase.models.entities import EmbeddingRecord, TextSegment
from knowbase.retrieval.vector_store import VectorStore
from knowbase.utils.ids import is_safe_id

logger = logging.getLogger(__name__)

CACHE_FORMAT = "knowbase-index"
CACHE_VERSION = 1


class IndexCache:
    """One JSON blob per session, replaced wholesale on every save.

    Layout::

        {"format": "knowbase-index", "version": 1, "session_id": ...,
         "dimension": D | null,
         "records": [{"vector": [...], "text": ..., "metadata": {...}}, ...],
         "indexed_files": {"a.txt": 1700000000000, ...}}
    """

    def __init__(self, cache_dir: Path) -> None:
        self.cache_dir = cache_dir.expanduser()

    def path_for(self, session_id: str) -> Path:
        if not is_safe_id(session_id):
            raise ValueError(f"Invalid session identifier: {session_id!r}")
        return self.cache_dir / f"{session_id}.json"

    def exists(self, session_id: str) -> bool:
        return self.path_for(session_id).exists()

    def save(self, session_id: str, store: VectorStore, registry: Mapping[str, int]) -> Path:
        """Snapshot store and registry together and write them atomically."""
        with store.lock:
            records = store.records()
            files = dict(registry)
            dim = store.dim
        payload = {
            "format": CACHE_FORMAT,
            "version": CACHE_VERSION,
            "session_id": session_id,
            "dimension": dim,
            "records": [
                {
                    "vector": list(record.vector),
                    "text": record.segment.text,
                    "metadata": dict(record.segment.metadata),
                }
                for record in records
            ],
            "indexed_files": files,
        }
        target = self.path_for(session_id)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{session_id}.", suffix=".tmp", dir=self.cache_dir)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(orjson.dumps(payload))
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Saved index cache for %s (%s records, %s files)", session_id, len(records), len(files))
        return target

    def load(
        self,
        session_id: str,
        expected_dim: int | None = None,
    ) -> tuple[VectorStore, dict[str, int]] | None:
        """Restore a session's store and registry; ``None`` when nothing was cached yet."""
        path = self.path_for(session_id)
        if not path.exists():
            return None
        try:
            payload = orjson.loads(path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as exc:
            raise CacheIncompatible(session_id, f"unreadable cache file: {exc}") from exc
        store, registry = _decode(session_id, payload, expected_dim)
        logger.debug("Loaded index cache for %s (%s records, %s files)", session_id, store.size, len(registry))
        return store, registry

    def delete(self, session_id: str) -> bool:
        path = self.path_for(session_id)
        if not path.exists():
            return False
        path.unlink(missing_ok=True)
        logger.info("Deleted index cache for %s", session_id)
        return True


def _decode(
    session_id: str,
    payload: Any,
    expected_dim: int | None,
) -> tuple[VectorStore, dict[str, int]]:
    if not isinstance(payload, dict) or payload.get("format") != CACHE_FORMAT:
        raise CacheIncompatible(session_id, "not a knowbase index cache")
    if payload.get("version") != CACHE_VERSION:
        raise CacheIncompatible(session_id, f"unsupported cache version {payload.get('version')!r}")

    dim = payload.get("dimension")
    raw_records = payload.get("records") or []
    if dim is not None and (not isinstance(dim, int) or dim <= 0):
        raise CacheIncompatible(session_id, f"invalid dimension {dim!r}")
    if expected_dim is not None and dim is not None and dim != expected_dim:
        raise CacheIncompatible(
            session_id,
            f"cached embeddings have dimension {dim}, embedding model produces {expected_dim}",
        )

    records: list[EmbeddingRecord] = []
    for position, raw in enumerate(raw_records):
        try:
            vector = tuple(float(value) for value in raw["vector"])
            segment = TextSegment(text=str(raw["text"]), metadata=_str_mapping(raw.get("metadata") or {}))
        except (KeyError, TypeError, ValueError) as exc:
            raise CacheIncompatible(session_id, f"malformed record {position}: {exc}") from exc
        if len(vector) != dim:
            raise CacheIncompatible(
                session_id,
                f"record {position} has dimension {len(vector)}, cache declares {dim}",
            )
        records.append(EmbeddingRecord(vector=vector, segment=segment))

    raw_files = payload.get("indexed_files") or {}
    if not isinstance(raw_files, dict):
        raise CacheIncompatible(session_id, "indexed_files must be a mapping")
    registry: dict[str, int] = {}
    for name, modified in raw_files.items():
        if isinstance(modified, bool) or not isinstance(modified, int):
            raise CacheIncompatible(session_id, f"invalid timestamp for {name!r}")
        registry[str(name)] = modified

    store_dim = dim if dim is not None else expected_dim
    return VectorStore.from_records(store_dim, records), registry


def _str_mapping(raw: Any) -> MutableMapping[str, str]:
    if not isinstance(raw, dict):
        raise TypeError("metadata must be a mapping")
    return {str(key): str(value) for key, value in raw.items()}


__all__ = ["IndexCache", "CACHE_FORMAT", "CACHE_VERSION"]
