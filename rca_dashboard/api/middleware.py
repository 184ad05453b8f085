"""API middleware: CORS, request logging and error handling.

Starlette middleware is a stack (last added, first executed).  In
``main.py`` the error handler is added before the request logger, so the
logger sees the final status code even when an error was converted into a
JSON body.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from rca_dashboard.api.schemas import ErrorResponse
from rca_dashboard.utils.errors import (
    NotFoundError,
    RcaDashboardError,
    TransportError,
    ValidationError,
)
from rca_dashboard.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def status_code_for(exc: RcaDashboardError) -> int:
    """Map an application error onto the HTTP status returned to the browser."""
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, TransportError):
        return 502
    return 500


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Allow the browser UI to call the API.  ``None`` or empty means any origin."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )


def _is_status_read(request: Request) -> bool:
    # The UI re-reads the job list on every render; keep those out of INFO.
    return request.method == "GET" and request.url.path.startswith("/api/v1/jobs")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one ``http_request`` event per request, tagged with a request id.

    The id comes from the ``X-Request-ID`` header when the caller sends one
    and is echoed back on the response.  It is bound into structlog's
    context vars, so every event logged while handling the request carries it.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        structlog.contextvars.bind_contextvars(request_id=request_id)
        started = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            log = _logger.debug if _is_status_read(request) and status_code < 400 else _logger.info
            log(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            structlog.contextvars.unbind_contextvars("request_id")


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn an uncaught ``RcaDashboardError`` into an ``ErrorResponse`` body.

    The status comes from :func:`status_code_for`; backend trouble (502)
    is logged as an error, request problems (4xx) as warnings.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except RcaDashboardError as exc:
            status_code = status_code_for(exc)
            log = _logger.error if status_code >= 500 else _logger.warning
            log(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                status=status_code,
                path=request.url.path,
            )
            body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
            return JSONResponse(status_code=status_code, content=body.model_dump())
