"""Administrative routes: sessions and metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from knowbase.api.dependencies import get_session_manager
from knowbase.api.errors import http_error
from knowbase.core.errors import KnowbaseError
from knowbase.core.metrics import metrics_response
from knowbase.models.dto import (
    DeleteResponse,
    SessionCreateRequest,
    SessionResponse,
    SessionUpdateRequest,
)
from knowbase.models.entities import SessionRecord
from knowbase.session import SessionManager

router = APIRouter()


@router.get("/sessions", response_model=list[SessionResponse], summary="List chat sessions, newest first")
def list_sessions(manager: SessionManager = Depends(get_session_manager)) -> list[SessionResponse]:
    return [_to_response(record) for record in manager.list_sessions()]


@router.post("/sessions", response_model=SessionResponse, status_code=201, summary="Create a chat session")
def create_session(
    request: SessionCreateRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> SessionResponse:
    return _to_response(manager.create(request.name, request.model))


@router.patch("/sessions/{session_id}", response_model=SessionResponse, summary="Rename a session or change its model")
def update_session(
    session_id: str,
    request: SessionUpdateRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> SessionResponse:
    try:
        record = manager.update(session_id, name=request.name, model=request.model)
    except KnowbaseError as exc:
        raise http_error(exc) from exc
    return _to_response(record)


@router.delete(
    "/sessions/{session_id}",
    response_model=DeleteResponse,
    summary="Delete a session with its transcript, index cache and files",
)
def delete_session(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> DeleteResponse:
    try:
        manager.delete(session_id)
    except KnowbaseError as exc:
        raise http_error(exc) from exc
    return DeleteResponse(status="ok", deleted=1)


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


def _to_response(record: SessionRecord) -> SessionResponse:
    return SessionResponse(id=record.id, name=record.name, model=record.model, created_at=record.created_at)


__all__ = ["router"]
