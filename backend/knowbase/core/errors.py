"""Error taxonomy shared by indexing, caching, and retrieval."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from knowbase.models.entities import IndexReport


class KnowbaseError(Exception):
    """Base class for every error raised by knowbase."""


class DimensionMismatch(KnowbaseError):
    """A vector's length disagrees with the store dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Vector dimension {actual} does not match store dimension {expected}")
        self.expected = expected
        self.actual = actual


class ExtractionFailure(KnowbaseError):
    """A knowledgebase file could not be read or parsed."""

    def __init__(self, file_name: str, message: str) -> None:
        super().__init__(f"Failed to extract text from {file_name}: {message}")
        self.file_name = file_name
        self.detail = message


class EmbeddingCallFailure(KnowbaseError):
    """The embedding model was unavailable or returned an error."""


class ChatCallFailure(KnowbaseError):
    """The chat model was unavailable or returned an error."""


class CacheIncompatible(KnowbaseError):
    """A persisted index cache cannot be loaded into the current session."""

    def __init__(self, session_id: str, reason: str) -> None:
        super().__init__(f"Index cache for session {session_id} is incompatible: {reason}")
        self.session_id = session_id
        self.reason = reason


class IndexingFailed(KnowbaseError):
    """An indexing run was aborted by an error while processing a file."""

    def __init__(self, file_name: str, cause: Exception, report: "IndexReport") -> None:
        super().__init__(f"Indexing aborted at {file_name}: {cause}")
        self.file_name = file_name
        self.cause = cause
        self.report = report


class ResourceError(KnowbaseError):
    """A knowledgebase resource operation was rejected.

    ``kind`` is one of ``"invalid"``, ``"duplicate"`` or ``"missing"``.
    """

    def __init__(self, message: str, kind: str = "invalid") -> None:
        super().__init__(message)
        self.kind = kind


class QueryRejected(KnowbaseError):
    """A user message failed validation before retrieval."""


class SessionNotFound(KnowbaseError):
    """No chat session exists with the requested identifier."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


__all__ = [
    "KnowbaseError",
    "DimensionMismatch",
    "ExtractionFailure",
    "EmbeddingCallFailure",
    "ChatCallFailure",
    "CacheIncompatible",
    "IndexingFailed",
    "ResourceError",
    "QueryRejected",
    "SessionNotFound",
]
