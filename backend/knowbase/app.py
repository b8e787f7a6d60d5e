"""FastAPI application setup for knowbase."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from knowbase.api.dependencies import (
    get_app_settings,
    get_database,
    get_embedding_model,
    get_session_manager,
    shutdown,
)
from knowbase.api.routes_admin import router as admin_router
from knowbase.api.routes_query import router as query_router
from knowbase.api.routes_resources import router as resources_router
from knowbase.core.logging import configure_logging
from knowbase.core.metrics import REQUEST_COUNT, REQUEST_LATENCY

configure_logging()


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Warm up core singletons on startup and release them on shutdown."""
    get_app_settings()
    get_database()
    get_embedding_model()
    get_session_manager()
    yield
    shutdown()


app = FastAPI(
    lifespan=lifespan,
    title="knowbase",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5174",
        "http://localhost:5174",
    ],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(admin_router, prefix="", tags=["admin"])
app.include_router(resources_router, prefix="/sessions", tags=["resources"])
app.include_router(query_router, prefix="/sessions", tags=["chat"])


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    REQUEST_LATENCY.labels(endpoint=endpoint, method=request.method).observe(time.perf_counter() - start)
    REQUEST_COUNT.labels(endpoint=endpoint, method=request.method, status=str(response.status_code)).inc()
    return response


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
