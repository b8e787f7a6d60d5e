"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class SessionCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    model: str | None = Field(default=None, description="Chat model; defaults to the configured one")


class SessionUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    model: str | None = None


class SessionResponse(BaseModel):
    id: str
    name: str
    model: str
    created_at: datetime


class DeleteResponse(BaseModel):
    status: str = "ok"
    deleted: int


class ResourceImportRequest(BaseModel):
    path: str = Field(description="Local filesystem path of the file to import")


class ResourceResponse(BaseModel):
    name: str
    last_modified: int
    indexed: bool
    characters: int | None = None
    size_label: str | None = None


class ResourceContentResponse(BaseModel):
    name: str
    content: str
    characters: int
    size_label: str


class IndexReportResponse(BaseModel):
    new: int
    updated: int
    deleted: int
    segments: int
    total: int
    cancelled: bool
    persisted: bool


class ProgressEventResponse(BaseModel):
    message: str
    current: int
    total: int


class IndexResponse(BaseModel):
    report: IndexReportResponse
    events: list[ProgressEventResponse]


class ResourceImportResponse(BaseModel):
    resource: ResourceResponse
    report: IndexReportResponse


class QueryRequest(BaseModel):
    message: str


class QueryResponse(BaseModel):
    answer: str
    sources: list[str]


class ChatMessageResponse(BaseModel):
    id: str
    content: str
    is_user: bool
    timestamp: int
    sources: list[str]


class HistoryResponse(BaseModel):
    session_id: str
    messages: list[ChatMessageResponse]


__all__ = [
    "SessionCreateRequest",
    "SessionUpdateRequest",
    "SessionResponse",
    "DeleteResponse",
    "ResourceImportRequest",
    "ResourceResponse",
    "ResourceContentResponse",
    "IndexReportResponse",
    "ProgressEventResponse",
    "IndexResponse",
    "ResourceImportResponse",
    "QueryRequest",
    "QueryResponse",
    "ChatMessageResponse",
    "HistoryResponse",
]
