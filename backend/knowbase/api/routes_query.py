"""Chat query and transcript routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from knowbase.api.dependencies import get_session
from knowbase.api.errors import http_error
from knowbase.core.errors import KnowbaseError
from knowbase.models.dto import ChatMessageResponse, DeleteResponse, HistoryResponse, QueryRequest, QueryResponse
from knowbase.session import KnowledgeSession

router = APIRouter()


@router.post("/{session_id}/query", response_model=QueryResponse, summary="Ask a question about the knowledgebase")
def run_query(request: QueryRequest, session: KnowledgeSession = Depends(get_session)) -> QueryResponse:
    try:
        result = session.ask(request.message)
    except KnowbaseError as exc:
        raise http_error(exc) from exc
    return QueryResponse(answer=result.answer_text, sources=sorted(result.source_file_names))


@router.get("/{session_id}/history", response_model=HistoryResponse, summary="Return the session transcript")
def get_history(session: KnowledgeSession = Depends(get_session)) -> HistoryResponse:
    messages = [
        ChatMessageResponse(
            id=record.id,
            content=record.content,
            is_user=record.is_user,
            timestamp=record.timestamp,
            sources=[name.strip() for name in record.sources.split(",")] if record.has_sources else [],
        )
        for record in session.transcript()
    ]
    return HistoryResponse(session_id=session.id, messages=messages)


@router.post("/{session_id}/clear", response_model=DeleteResponse, summary="Clear the session transcript")
def clear_history(session: KnowledgeSession = Depends(get_session)) -> DeleteResponse:
    removed = session.clear_history()
    return DeleteResponse(status="ok", deleted=removed)


__all__ = ["router"]
