"""Translate domain errors into HTTP errors."""

from __future__ import annotations

from fastapi import HTTPException

from knowbase.core.errors import (
    ChatCallFailure,
    EmbeddingCallFailure,
    ExtractionFailure,
    IndexingFailed,
    KnowbaseError,
    QueryRejected,
    ResourceError,
    SessionNotFound,
)

_RESOURCE_STATUS = {"missing": 404, "duplicate": 409, "invalid": 400}


def http_error(exc: KnowbaseError) -> HTTPException:
    if isinstance(exc, SessionNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ResourceError):
        return HTTPException(status_code=_RESOURCE_STATUS.get(exc.kind, 400), detail=str(exc))
    if isinstance(exc, ExtractionFailure):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, QueryRejected):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, (ChatCallFailure, EmbeddingCallFailure)):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, IndexingFailed):
        return HTTPException(
            status_code=500,
            detail={"message": str(exc), "file_name": exc.file_name, "report": exc.report.to_dict()},
        )
    return HTTPException(status_code=500, detail=str(exc))


__all__ = ["http_error"]
