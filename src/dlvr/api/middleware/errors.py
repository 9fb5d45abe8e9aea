"""Error handling middleware for consistent JSON error responses.

Every error leaves the API as:

    {"error": <code>, "message": <text>, "detail": {...}?, "request_id": <id>}

Domain errors map onto HTTP statuses:
- ValidationError family: 400
- NotFoundError: 404
- DispatchError: 502
- CryptoFailure and any other DLVRError: 500 (message not echoed)
"""

import logging
from collections.abc import Callable
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from dlvr.api.middleware.request_id import get_request_id
from dlvr.core.errors import (
    CryptoFailure,
    DispatchError,
    DLVRError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Error raised at the HTTP edge with an explicit status and code."""

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int = 400,
        detail: dict[str, Any] | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            error: Machine-readable error code (e.g., "invalid_identifier").
            message: Human-readable error description.
            status_code: HTTP status code to return.
            detail: Optional additional details.
        """
        self.error = error
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class InvalidIdentifierError(APIError):
    """Path identifier does not carry the expected record prefix (400)."""

    def __init__(self, identifier: str, expected_prefix: str) -> None:
        super().__init__(
            error="invalid_identifier",
            message=f"Invalid identifier: {identifier}",
            status_code=400,
            detail={"expected_prefix": f"{expected_prefix}-"},
        )


def build_error_response(
    error: str,
    message: str,
    status_code: int,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build a standardized error response."""
    body: dict[str, Any] = {
        "error": error,
        "message": message,
    }

    request_id = get_request_id()
    if request_id:
        body["request_id"] = request_id

    if detail:
        body["detail"] = detail

    return JSONResponse(status_code=status_code, content=body)


def domain_error_response(exc: DLVRError) -> JSONResponse:
    """Map a domain error onto its HTTP response."""
    if isinstance(exc, InvalidTransitionError):
        return build_error_response(
            error="invalid_transition",
            message=exc.message,
            status_code=400,
            detail={"from_status": exc.from_status, "to_status": exc.to_status},
        )
    if isinstance(exc, ValidationError):
        return build_error_response(
            error="validation_error",
            message=exc.message,
            status_code=400,
            detail={"field": exc.field} if exc.field else None,
        )
    if isinstance(exc, NotFoundError):
        return build_error_response(
            error="not_found",
            message=exc.message,
            status_code=404,
        )
    if isinstance(exc, DispatchError):
        logger.error("Channel dispatch failed: %s", exc.message)
        return build_error_response(
            error="dispatch_failed",
            message=f"Dispatch via {exc.channel} failed",
            status_code=502,
        )
    if isinstance(exc, CryptoFailure):
        logger.error("Cryptographic failure: %s", exc.message)
        return build_error_response(
            error="crypto_failure",
            message="Receipt signing is unavailable",
            status_code=500,
        )
    logger.error("Unhandled domain error: %s", exc.message)
    return build_error_response(
        error="internal_error",
        message="An internal error occurred",
        status_code=500,
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Middleware that catches exceptions and returns consistent JSON errors.

    Handles:
    - APIError: errors raised by routers
    - DLVRError: domain errors from the services
    - HTTPException: FastAPI's built-in HTTP errors
    - Generic exceptions: unexpected errors (logged, returns 500)
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        try:
            return await call_next(request)
        except APIError as exc:
            return build_error_response(
                error=exc.error,
                message=exc.message,
                status_code=exc.status_code,
                detail=exc.detail,
            )
        except DLVRError as exc:
            return domain_error_response(exc)
        except HTTPException as exc:
            return build_error_response(
                error="http_error",
                message=str(exc.detail),
                status_code=exc.status_code,
            )
        except Exception:
            logger.exception(
                "Unexpected error processing request: %s %s",
                request.method,
                request.url.path,
            )
            return build_error_response(
                error="internal_error",
                message="An internal error occurred",
                status_code=500,
            )
