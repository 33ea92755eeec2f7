"""Error Handlers — global exception handlers for the TrustGate API.

Invariants:
    - TrustGateError -> structured JSON with error code, message, severity
    - AuthError -> generic 401; the AuthFailure reason goes to logs only
    - RateLimitedError -> 429 with Retry-After (seconds, rounded up)
    - RequestValidationError -> field-level error details
    - Exception (catch-all) -> never leaks internal details

Design Decisions:
    - Three-layer handler: domain (TrustGateError), validation (Pydantic), catch-all (Exception)
    - Extracted from main.py to keep the entry point small
"""

import logging
import math

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from trustgate.core.errors import (
    AuthError, ErrorSeverity, RateLimitedError, TrustGateError,
)

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_trustgate_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _register_trustgate_error_handler(app: FastAPI) -> None:
    """Register domain/infrastructure error handler."""

    @app.exception_handler(TrustGateError)
    async def trustgate_error_handler(request: Request, exc: TrustGateError):
        """Handle all TrustGate domain/infrastructure errors."""
        extra = {"error_code": exc.code, "path": request.url.path}
        if isinstance(exc, AuthError):
            extra["reason"] = exc.reason.value
        log = logger.error if exc.http_status >= 500 else logger.warning
        log(f"TrustGateError: {exc.message}", extra=extra)

        headers = None
        if isinstance(exc, RateLimitedError) and exc.context.retry_after_ms is not None:
            headers = {"Retry-After": str(math.ceil(exc.context.retry_after_ms / 1000))}
        elif isinstance(exc, AuthError):
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.http_status, content=exc.to_response(), headers=headers,
        )


def _register_validation_error_handler(app: FastAPI) -> None:
    """Register Pydantic validation error handler."""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError,
    ):
        """Handle Pydantic validation errors."""
        logger.warning(
            f"Validation error on {request.url.path}: {len(exc.errors())} field(s)",
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_build_validation_error_response(exc),
        )


def _register_generic_error_handler(app: FastAPI) -> None:
    """Register catch-all error handler."""

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all — never leaks internal details."""
        logger.error(
            f"Unhandled exception on {request.url.path}: {exc}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "category": "internal",
                    "severity": ErrorSeverity.CRITICAL.value,
                },
            },
        )


def _build_validation_error_response(exc: RequestValidationError) -> dict:
    """Build structured validation error response (no input values echoed)."""
    return {
        "error": {
            "code": "VALIDATION_ERROR",
            "message": "Invalid request data",
            "category": "validation",
            "severity": ErrorSeverity.ERROR.value,
            "details": [
                {
                    "field": ".".join(str(loc) for loc in e["loc"]),
                    "message": e["msg"],
                    "type": e["type"],
                }
                for e in exc.errors()
            ],
        },
    }
