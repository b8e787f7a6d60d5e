"""Internal dataclasses shared by indexing, retrieval, and persistence."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

FILE_NAME_KEY = "fileName"


@dataclass(frozen=True, slots=True)
class TextSegment:
    """A chunk of a source document, the unit stored and retrieved."""

    text: str
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def file_name(self) -> str | None:
        return self.metadata.get(FILE_NAME_KEY)

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "metadata": dict(self.metadata)}


@dataclass(frozen=True, slots=True)
class EmbeddingRecord:
    vector: tuple[float, ...]
    segment: TextSegment


@dataclass(frozen=True, slots=True)
class EmbeddingMatch:
    """A search hit: the stored record plus its similarity to the query."""

    score: float
    record: EmbeddingRecord

    @property
    def segment(self) -> TextSegment:
        return self.record.segment

    @property
    def text(self) -> str:
        return self.record.segment.text


@dataclass(slots=True)
class FileEntry:
    name: str
    last_modified: int
    path: Path


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    message: str
    current: int
    total: int


@dataclass(slots=True)
class IndexReport:
    """Outcome counters for one indexing operation."""

    new: int = 0
    updated: int = 0
    deleted: int = 0
    segments: int = 0
    total: int = 0
    cancelled: bool = False
    persisted: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.new or self.updated or self.deleted)

    def to_dict(self) -> dict[str, Any]:
        return {
            "new": self.new,
            "updated": self.updated,
            "deleted": self.deleted,
            "segments": self.segments,
            "total": self.total,
            "cancelled": self.cancelled,
            "persisted": self.persisted,
        }


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True, slots=True)
class ConversationTurn:
    role: Role
    text: str

    @classmethod
    def system(cls, text: str) -> "ConversationTurn":
        return cls(Role.SYSTEM, text)

    @classmethod
    def user(cls, text: str) -> "ConversationTurn":
        return cls(Role.USER, text)

    @classmethod
    def assistant(cls, text: str) -> "ConversationTurn":
        return cls(Role.ASSISTANT, text)


@dataclass(slots=True)
class RetrievalResult:
    answer_text: str
    source_file_names: set[str]


@dataclass(slots=True)
class ChatRecord:
    """A persisted transcript message."""

    id: str
    session_id: str
    content: str
    is_user: bool
    timestamp: int
    sources: str | None = None

    @property
    def has_sources(self) -> bool:
        return bool(self.sources and self.sources.strip())


@dataclass(slots=True)
class SessionRecord:
    id: str
    name: str
    model: str
    created_at: datetime


__all__ = [
    "FILE_NAME_KEY",
    "TextSegment",
    "EmbeddingRecord",
    "EmbeddingMatch",
    "FileEntry",
    "ProgressEvent",
    "IndexReport",
    "Role",
    "ConversationTurn",
    "RetrievalResult",
    "ChatRecord",
    "SessionRecord",
]
