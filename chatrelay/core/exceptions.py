"""Custom exception classes and exception handlers."""

from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from chatrelay.core.logging import get_logger

logger = get_logger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ThrottleExceeded(AppException):
    """Admission denied by the sliding-window throttle."""

    def __init__(self, key: str, limit: int, window: int, reset_in: int):
        self.key = key
        self.limit = limit
        self.window = window
        self.reset_in = reset_in
        super().__init__(
            f'Rate limit exceeded for "{key}": {limit} requests per {window} seconds. '
            f"Resets in {reset_in} seconds.",
            status.HTTP_429_TOO_MANY_REQUESTS,
            {"key": key, "limit": limit, "window": window, "retry_after": reset_in},
        )


class StreamingUnsupported(AppException):
    """The active backend cannot deliver incremental output."""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(
            f"Streaming is not supported ({provider}): {reason}",
            status.HTTP_400_BAD_REQUEST,
            {"provider": provider},
        )


class LLMProviderError(AppException):
    """LLM provider error."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(
            f"LLM provider error ({provider}): {message}",
            status.HTTP_502_BAD_GATEWAY,
            {"provider": provider},
        )


class ApiError(LLMProviderError):
    """Provider answered, but not with a usable completion."""

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(provider, message)
        self.upstream_status = status_code
        self.response_body = response_body
        self.details["upstream_status"] = status_code

    @property
    def is_rate_limit_error(self) -> bool:
        return self.upstream_status == 429

    @property
    def is_authentication_error(self) -> bool:
        return self.upstream_status in (401, 403)

    @property
    def is_server_error(self) -> bool:
        return self.upstream_status is not None and 500 <= self.upstream_status < 600


class NetworkError(LLMProviderError):
    """Provider could not be reached."""


class StorageError(AppException):
    """Cache or memory storage operation error (non-fatal, logged only)."""

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


class InvalidConfigError(AppException):
    """Invalid configuration, e.g. an unknown backend name."""

    def __init__(self, message: str):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle application exceptions."""
    logger.warning(
        "Application exception",
        status_code=exc.status_code,
        message=exc.message,
        details=exc.details,
        path=str(request.url),
    )

    headers: dict[str, str] = {}
    if isinstance(exc, ThrottleExceeded):
        headers["Retry-After"] = str(exc.reset_in)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.message,
                "details": exc.details,
            }
        },
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions."""
    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=str(request.url),
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.detail,
            }
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions."""
    logger.exception(
        "Unhandled exception",
        exc_info=exc,
        path=str(request.url),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "message": "An internal error occurred. Please try again later.",
            }
        },
    )
