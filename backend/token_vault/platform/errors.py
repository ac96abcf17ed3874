"""
Consistent error handling for the token vault.

All API errors MUST use these standard error classes and shapes.
Stack traces and token values are NEVER returned to clients.

Standard HTTP status codes:
- 400: Bad Request (validation errors)
- 401: Unauthorized (missing/invalid caller token, token failed validation)
- 404: Not Found
- 424: Failed Dependency (no usable token could be produced)
- 500: Internal Server Error (persistence, encryption)
- 502: Bad Gateway (upstream rejected or returned garbage)
- 503: Service Unavailable (upstream unreachable)
"""

import logging
import uuid
from typing import Any, Optional
from fastapi import Request, HTTPException, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


class AppError(Exception):
    """
    Base application error with consistent error shape.

    All custom errors should inherit from this class.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert to API error response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(AppError):
    """Validation error (400)."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class AuthenticationError(AppError):
    """Authentication failure (401)."""

    def __init__(self, message: str = "Authentication required", details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="AUTHENTICATION_ERROR",
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
        )


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
        )


class ServiceUnavailableError(AppError):
    """Service unavailable (503)."""

    def __init__(self, message: str = "Service temporarily unavailable", code: str = "SERVICE_UNAVAILABLE"):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracing."""
    return str(uuid.uuid4())


def get_correlation_id(request: Request) -> str:
    """
    Get correlation ID from request or generate new one.

    Checks X-Correlation-ID header first, then request state.
    """
    correlation_id = request.headers.get(CORRELATION_HEADER)
    if correlation_id:
        return correlation_id

    if hasattr(request.state, "correlation_id"):
        return request.state.correlation_id

    return generate_correlation_id()


def _request_context(request: Request, correlation_id: str) -> dict:
    return {
        "correlation_id": correlation_id,
        "path": request.url.path,
        "method": request.method,
    }


def _error_response(
    status_code: int,
    content: dict,
    correlation_id: str,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers={CORRELATION_HEADER: correlation_id},
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Converts every failure into the standard error shape.

    IMPORTANT: Stack traces and exception text from unexpected errors are
    NEVER returned to clients; they only reach the server log.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = get_correlation_id(request)
        request.state.correlation_id = correlation_id
        context = _request_context(request, correlation_id)

        try:
            response = await call_next(request)
        except AppError as e:
            logger.warning(
                "Application error",
                extra={**context, "error_code": e.code, "status_code": e.status_code}
            )
            return _error_response(e.status_code, e.to_dict(), correlation_id)
        except HTTPException as e:
            logger.warning("HTTP exception", extra={**context, "status_code": e.status_code})
            content = {"error": {"code": "HTTP_ERROR", "message": str(e.detail), "details": {}}}
            return _error_response(e.status_code, content, correlation_id)
        except Exception as e:
            logger.exception("Unhandled exception", extra={**context, "error_type": type(e).__name__})
            content = {
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "details": {"correlation_id": correlation_id},
                }
            }
            return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, content, correlation_id)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """
    Exception handler for AppError.

    Registered on the app so errors raised in dependencies and route
    bodies are rendered before they reach the middleware.
    """
    correlation_id = getattr(request.state, "correlation_id", None) or get_correlation_id(request)
    logger.warning(
        "Application error",
        extra={
            **_request_context(request, correlation_id),
            "error_code": exc.code,
            "status_code": exc.status_code,
        }
    )
    return _error_response(exc.status_code, exc.to_dict(), correlation_id)
