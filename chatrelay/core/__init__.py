"""Core module exports."""

from chatrelay.core.config import Settings, get_settings
from chatrelay.core.exceptions import (
    ApiError,
    AppException,
    InvalidConfigError,
    LLMProviderError,
    NetworkError,
    StorageError,
    StreamingUnsupported,
    ThrottleExceeded,
)
from chatrelay.core.logging import get_logger, setup_logging

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Logging
    "get_logger",
    "setup_logging",
    # Exceptions
    "ApiError",
    "AppException",
    "InvalidConfigError",
    "LLMProviderError",
    "NetworkError",
    "StorageError",
    "StreamingUnsupported",
    "ThrottleExceeded",
]
