"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "knb_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

REQUEST_LATENCY = Histogram(
    "knb_request_latency_seconds",
    "Latency of HTTP requests",
    labelnames=("endpoint", "method"),
    registry=REGISTRY,
)

INDEX_DURATION = Histogram(
    "knb_index_duration_seconds",
    "Knowledgebase indexing run duration",
    labelnames=("session",),
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "knb_index_segments",
    "Number of segments stored in a session's vector store",
    labelnames=("session",),
    registry=REGISTRY,
)

INDEXED_FILES = Counter(
    "knb_index_files_total",
    "Files processed by indexing runs",
    labelnames=("outcome",),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "INDEX_DURATION",
    "INDEX_SIZE",
    "INDEXED_FILES",
    "metrics_response",
]
