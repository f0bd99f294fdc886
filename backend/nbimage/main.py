"""
Notebook Image Curator — FastAPI Backend
=========================================
Curates notebook container images and the build intents
(CustomRuntimeEnvironment) that produce them.

  - Images: list / update / delete ImageStreams
  - CRE: create and track build intents, joined with their produced images
  - Logs: structured application logs

Uses the create_app() factory pattern for clean initialization.
All paths and settings are centralized in config.py.
"""
from __future__ import annotations
import json
import math
import time
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from . import logging_service as logger
from .config import APP_NAME, APP_VERSION, CORS_ORIGINS
from .schemas.image import ResponseStatus
from .services.errors import ExternalStoreError
from .services.record_store import RecordStore, get_store


# ─── Safe JSON Response (replaces NaN/Inf with None) ─────────────────────────

def _sanitize(obj: Any) -> Any:
    if isinstance(obj, float):
        return None if not math.isfinite(obj) else obj
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(v) for v in obj]
    return obj


class SafeJSONResponse(JSONResponse):
    """JSONResponse that converts NaN/Inf to None and stringifies unknown types."""
    def render(self, content: Any) -> bytes:
        return json.dumps(
            _sanitize(content),
            ensure_ascii=False,
            allow_nan=False,
            indent=None,
            separators=(",", ":"),
            default=str,
        ).encode("utf-8")


# ─── System Logging Middleware ────────────────────────────────────────────────

class SystemLogMiddleware(BaseHTTPMiddleware):
    """Logs every API request with method, path, status, duration and user."""

    async def dispatch(self, request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        duration_ms = round((time.time() - start) * 1000, 1)

        path = request.url.path
        if path in ("/docs", "/redoc", "/openapi.json", "/favicon.ico", "/api/health"):
            return response

        logger.log("system", "INFO", f"{request.method} {path}", {
            "status": response.status_code,
            "duration_ms": duration_ms,
            "user": request.headers.get("x-forwarded-user"),
            "client": request.client.host if request.client else "unknown",
        })
        return response


# ─── App Factory ─────────────────────────────────────────────────────────────

def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    application = FastAPI(
        title=APP_NAME,
        description="Curate notebook images and track the CustomRuntimeEnvironment "
                    "build intents that produce them.",
        version=APP_VERSION,
        default_response_class=SafeJSONResponse,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {"name": "Images", "description": "Notebook images (ImageStreams)"},
            {"name": "CRE", "description": "Build intents joined with produced images"},
            {"name": "Logs", "description": "System-wide structured logs"},
            {"name": "System", "description": "Health"},
        ],
    )

    # ── Middleware ────────────────────────────────────────────────────────────
    application.add_middleware(SystemLogMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routers ──────────────────────────────────────────────────────────────
    from .controllers.image_controller import router as image_router
    from .controllers.cre_controller import router as cre_router
    from .controllers.log_controller import router as log_router

    for router in (image_router, cre_router, log_router):
        application.include_router(router)

    # ── Store failures raised before a route body runs (e.g. building the store) ──
    @application.exception_handler(ExternalStoreError)
    async def store_error(request: Request, exc: ExternalStoreError):
        logger.log("store", "ERROR", "Record store unavailable", {
            "method": request.method,
            "path": request.url.path,
            "error": str(exc),
        })
        body = ResponseStatus(success=False, error=str(exc)).model_dump()
        if request.method in ("GET", "HEAD"):
            return SafeJSONResponse(body, status_code=503)
        return SafeJSONResponse(body)

    @application.get("/api/health", tags=["System"], summary="Liveness and store backend")
    async def health(store: RecordStore = Depends(get_store)):
        return {"status": "ok", "store": store.describe()}

    @application.get("/", include_in_schema=False)
    async def root():
        return {
            "app": APP_NAME,
            "version": APP_VERSION,
            "docs": "/docs",
            "redoc": "/redoc",
        }

    logger.log("system", "INFO", f"{APP_NAME} {APP_VERSION} initialised")
    return application


# ─── Module-level app instance (used by uvicorn) ────────────────────────────

app = create_app()
