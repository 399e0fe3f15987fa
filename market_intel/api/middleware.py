"""API middleware: CORS, request logging, and error handling.

Starlette runs middleware last-added-first.  ``create_app`` adds
ErrorHandlingMiddleware before RequestLoggingMiddleware, so the request log
sees the status code of the structured error body, and every log line
emitted while a request is being served (cache hits, provider attempts)
carries that request's ``request_id``.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from market_intel.api.schemas import ErrorResponse
from market_intel.utils.errors import ConfigurationError, MarketIntelError, QueryValidationError
from market_intel.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# First match wins; anything else derived from MarketIntelError is a 500.
_STATUS_BY_ERROR: tuple[tuple[type[MarketIntelError], int], ...] = (
    (QueryValidationError, 422),
    (ConfigurationError, 500),
)


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Allow cross-origin GETs and POSTs; every origin unless a list is given."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log its outcome and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            _logger.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                query=str(request.url.query) or None,
                status=response.status_code if response is not None else 500,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            structlog.contextvars.unbind_contextvars("request_id")


def _status_for(exc: MarketIntelError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Render ``MarketIntelError`` subclasses as :class:`ErrorResponse` JSON.

    A malformed query is the caller's fault (422).  Provider and storage
    failures never get this far; the orchestrator absorbs them.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except MarketIntelError as exc:
            status_code = _status_for(exc)
            log = _logger.warning if status_code < 500 else _logger.error
            log(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=request.url.path,
                status=status_code,
            )
            body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
            return JSONResponse(status_code=status_code, content=body.model_dump())
