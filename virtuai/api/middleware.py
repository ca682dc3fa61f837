"""API middleware: CORS, request logging, and error handling.

Middleware is a stack (last added, first executed).  ``main.py`` adds
``ErrorHandlingMiddleware`` before ``RequestLoggingMiddleware`` so the
request log sees the final status code, including sanitized errors.
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from virtuai.api.schemas import ErrorResponse
from virtuai.models.results import ErrorPayload
from virtuai.services.messages import Audience, to_error_payload
from virtuai.utils.errors import ErrorKind, VirtuAIError
from virtuai.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.MISSING_CREDENTIAL: 400,
    ErrorKind.EMPTY_CONTENT: 400,
    ErrorKind.TOO_MANY_FRAGMENTS: 400,
    ErrorKind.INVALID_CREDENTIAL: 502,
    ErrorKind.RATE_LIMITED: 502,
    ErrorKind.PROVIDER_ERROR: 502,
    ErrorKind.INTERNAL: 500,
}


def status_for_kind(kind: ErrorKind) -> int:
    """Return the HTTP status code used for an error kind."""
    return _STATUS_BY_KIND.get(kind, 500)


def error_response(payload: ErrorPayload) -> JSONResponse:
    """Render a structured core error as a JSON response."""
    body = ErrorResponse(error=payload.kind.value, detail=payload.message)
    return JSONResponse(status_code=status_for_kind(payload.kind), content=body.model_dump())


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware so the embeddable widget can call the API.

    Parameters
    ----------
    app:
        The FastAPI application instance.
    allowed_origins:
        Explicit list of allowed origins.  Defaults to ``["*"]``.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Convert escaped exceptions into sanitized JSON errors.

    Classified ``VirtuAIError`` subclasses keep their kind and status code
    with tenant wording; anything else becomes a generic 500.  Details
    and stack traces are logged server-side only.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except VirtuAIError as exc:
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                kind=exc.kind.value,
                provider=exc.provider_name,
                path=str(request.url.path),
            )
            return error_response(to_error_payload(exc, Audience.TENANT))
        except Exception as exc:  # noqa: BLE001
            _logger.exception(
                "unhandled_error",
                error_type=type(exc).__name__,
                path=str(request.url.path),
            )
            return error_response(to_error_payload(exc, Audience.TENANT))
