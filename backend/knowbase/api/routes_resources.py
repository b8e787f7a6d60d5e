"""Knowledgebase resource and indexing routes."""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends

from knowbase.api.dependencies import get_session
from knowbase.api.errors import http_error
from knowbase.core.errors import KnowbaseError
from knowbase.ingest.indexer import ProgressChannel
from knowbase.ingest.resources import format_character_count
from knowbase.models.dto import (
    IndexReportResponse,
    IndexResponse,
    ProgressEventResponse,
    ResourceContentResponse,
    ResourceImportRequest,
    ResourceImportResponse,
    ResourceResponse,
)
from knowbase.models.entities import FileEntry, IndexReport
from knowbase.session import KnowledgeSession

router = APIRouter()


@router.get("/{session_id}/resources", response_model=list[ResourceResponse], summary="List knowledgebase files")
def list_resources(
    details: bool = False,
    session: KnowledgeSession = Depends(get_session),
) -> list[ResourceResponse]:
    indexed = session.indexed_files
    resources: list[ResourceResponse] = []
    for entry in session.resources.list_files():
        response = _to_response(entry, indexed)
        if details:
            try:
                count = session.resources.character_count(entry.name)
            except KnowbaseError:
                count = None
            if count is not None:
                response.characters = count
                response.size_label = format_character_count(count)
        resources.append(response)
    return resources


@router.post(
    "/{session_id}/resources",
    response_model=ResourceImportResponse,
    status_code=201,
    summary="Import a local file and index it",
)
def import_resource(
    request: ResourceImportRequest,
    session: KnowledgeSession = Depends(get_session),
) -> ResourceImportResponse:
    try:
        outcome = session.import_resource(Path(request.path))
    except KnowbaseError as exc:
        raise http_error(exc) from exc
    return ResourceImportResponse(
        resource=_to_response(outcome.entry, session.indexed_files),
        report=_to_report(outcome.report),
    )


@router.get(
    "/{session_id}/resources/{file_name}",
    response_model=ResourceContentResponse,
    summary="Show the extracted text of a file",
)
def read_resource(file_name: str, session: KnowledgeSession = Depends(get_session)) -> ResourceContentResponse:
    try:
        content = session.read_resource(file_name)
    except KnowbaseError as exc:
        raise http_error(exc) from exc
    return ResourceContentResponse(
        name=file_name,
        content=content,
        characters=len(content),
        size_label=format_character_count(len(content)),
    )


@router.delete(
    "/{session_id}/resources/{file_name}",
    response_model=IndexReportResponse,
    summary="Delete a file and evict it from the index",
)
def delete_resource(file_name: str, session: KnowledgeSession = Depends(get_session)) -> IndexReportResponse:
    try:
        report = session.delete_resource(file_name)
    except KnowbaseError as exc:
        raise http_error(exc) from exc
    return _to_report(report)


@router.post("/{session_id}/index", response_model=IndexResponse, summary="Bring the index in step with the files")
def index_knowledgebase(session: KnowledgeSession = Depends(get_session)) -> IndexResponse:
    channel = ProgressChannel()
    try:
        report = session.index_knowledgebase(progress=channel)
    except KnowbaseError as exc:
        raise http_error(exc) from exc
    events = [
        ProgressEventResponse(message=event.message, current=event.current, total=event.total)
        for event in channel.drain()
    ]
    return IndexResponse(report=_to_report(report), events=events)


def _to_response(entry: FileEntry, indexed: dict[str, int]) -> ResourceResponse:
    return ResourceResponse(
        name=entry.name,
        last_modified=entry.last_modified,
        indexed=indexed.get(entry.name) == entry.last_modified,
    )


def _to_report(report: IndexReport) -> IndexReportResponse:
    return IndexReportResponse(**report.to_dict())


__all__ = ["router"]
