"""FastAPI app for gatepass — the HTTP front of the solve pipeline."""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gatepass.api.routes import router
from gatepass.settings import get_settings

logger = logging.getLogger(__name__)

try:
    from importlib.metadata import version

    VERSION = version("gatepass")
except Exception:
    VERSION = "0.0.0"


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    settings = get_settings()

    application = FastAPI(
        title="gatepass",
        description="Turnstile detection with placeholder completion tokens.",
        version=VERSION,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.monotonic()
        response = await call_next(request)
        logger.info(
            "%s %s -> %s (%.0fms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.monotonic() - started) * 1000,
        )
        return response

    @application.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:13]
        logger.exception("Unhandled error on %s %s (request_id=%s)", request.method, request.url.path, request_id)
        body = {
            "success": False,
            "error": "Internal Server Error",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "requestId": request_id,
        }
        if not get_settings().is_production:
            body["details"] = str(exc)
        return JSONResponse(status_code=500, content=body)

    application.include_router(router)
    return application


app = create_app()
