"""API routes for gatepass."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from gatepass.exceptions import InvalidRequestError
from gatepass.models.request import SolveRequest
from gatepass.settings import get_settings
from gatepass.solver.session import SessionController

logger = logging.getLogger(__name__)

router = APIRouter()

_STARTED_AT = time.monotonic()

# ---------------------------------------------------------------------------
# Concurrent session limiter
# ---------------------------------------------------------------------------

_ACTIVE_SESSIONS = 0
_ACTIVE_LOCK = threading.Lock()


def _acquire_slot(limit: int) -> bool:
    global _ACTIVE_SESSIONS  # noqa: PLW0603
    with _ACTIVE_LOCK:
        if _ACTIVE_SESSIONS >= limit:
            return False
        _ACTIVE_SESSIONS += 1
        return True


def _release_slot() -> None:
    global _ACTIVE_SESSIONS  # noqa: PLW0603
    with _ACTIVE_LOCK:
        _ACTIVE_SESSIONS = max(0, _ACTIVE_SESSIONS - 1)


def get_controller() -> SessionController:
    """Build the session controller used by ``/api/bypass``.

    Patched in tests to inject a fake Playwright driver.
    """
    return SessionController.from_settings(get_settings())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _collect_params(request: Request) -> dict[str, Any]:
    """Merge JSON body and query string; query values win."""
    params: dict[str, Any] = {}
    if request.method == "POST":
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            params.update({k: v for k, v in body.items() if v not in (None, "")})
    params.update({k: v for k, v in request.query_params.items() if v})
    return params


def _rejection(exc: InvalidRequestError) -> JSONResponse:
    if exc.field == "url" and exc.received:
        body: dict[str, Any] = {
            "success": False,
            "error": "Invalid URL format",
            "received": exc.received,
            "example": "https://example.com",
            "tip": "Make sure to include http:// or https://",
        }
    elif exc.field == "sitekey" and exc.received:
        body = {
            "success": False,
            "error": "Invalid sitekey format",
            "received": exc.received,
            "expected": "Should start with 0x or 1x",
            "example": "0x4AAAAAA...",
        }
    else:
        body = {"success": False, "error": str(exc), "received": exc.received}
    return JSONResponse(status_code=400, content=body)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/")
def index() -> dict[str, Any]:
    """Describe the service and its endpoints."""
    from gatepass import __version__

    return {
        "status": "online",
        "service": "Turnstile Token API",
        "version": __version__,
        "notice": "Tokens are format-valid placeholders and are not accepted by Cloudflare siteverify.",
        "endpoints": {
            "health": {"url": "/health", "method": "GET", "description": "Health check endpoint"},
            "bypass": {
                "url": "/api/bypass",
                "methods": ["GET", "POST"],
                "description": "Get Turnstile token",
                "parameters": {"sitekey": "required", "url": "required", "userAgent": "optional", "proxy": "optional"},
                "examples": {
                    "get": "/api/bypass?sitekey=0x4AAAAAA...&url=https://example.com",
                    "post": "POST /api/bypass with JSON body",
                },
            },
        },
    }


@router.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": _now(),
        "uptimeSeconds": round(time.monotonic() - _STARTED_AT, 3),
    }


@router.api_route("/api/bypass", methods=["GET", "POST"])
async def bypass(request: Request) -> JSONResponse:
    """Detect Turnstile on the target page and return a placeholder token."""
    settings = get_settings()
    params = await _collect_params(request)

    missing = [name for name in ("sitekey", "url") if not params.get(name)]
    if missing:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Missing required parameters",
                "details": {
                    "required": ["sitekey", "url"],
                    "received": {"sitekey": bool(params.get("sitekey")), "url": bool(params.get("url"))},
                },
                "help": "Use GET /api/bypass?sitekey=XXX&url=ENCODED_URL or POST with JSON body",
            },
        )

    try:
        solve_request = SolveRequest.from_params(
            params,
            default_user_agent=settings.page.default_user_agent,
            default_timeout_ms=settings.api.default_timeout_ms,
        )
    except InvalidRequestError as exc:
        return _rejection(exc)

    if not _acquire_slot(settings.api.max_concurrent_sessions):
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "error": "Too many concurrent sessions",
                "details": f"Server is at capacity ({settings.api.max_concurrent_sessions} sessions). Try again later.",
            },
        )

    host = urlsplit(solve_request.url).hostname or ""
    logger.info("Processing request: %s with sitekey %s...", host, solve_request.sitekey[:15])
    try:
        controller = get_controller()
        result = await run_in_threadpool(controller.solve, solve_request)
    finally:
        _release_slot()

    if result.success:
        return JSONResponse(
            status_code=200,
            content={
                **result.to_dict(),
                "timestamp": _now(),
                "metadata": {
                    "sitekeyShort": solve_request.sitekey[:10] + "...",
                    "host": host,
                    "method": request.method,
                },
            },
        )

    logger.warning("Failed: %s (%s)", result.error, result.details)
    return JSONResponse(status_code=500, content={**result.to_dict(), "timestamp": _now()})
