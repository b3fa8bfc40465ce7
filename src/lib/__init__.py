"""
Lib package for AMP Tracker.

Contains shared utilities:
- exceptions.py: Exception hierarchy
- errors.py: Centralized error response builder with i18n
- logging.py: structlog configuration
- security.py: Input sanitization and security headers
- ids.py: Identifier allocation and validation
- dates.py: Day-key and wake-time parsing
"""

from src.lib.errors import (
    AUTH_REQUIRED,
    CONFIGURATION_ERROR,
    FORBIDDEN,
    INTERNAL_ERROR,
    NOT_FOUND,
    STORE_ERROR,
    VALIDATION_ERROR,
    build_error_response,
    get_error_message,
)
from src.lib.exceptions import (
    AmpTrackerException,
    ConfigurationError,
    NotFoundError,
    SecurityError,
    StoreError,
    ValidationError,
)

__all__ = [
    "AUTH_REQUIRED",
    "CONFIGURATION_ERROR",
    "FORBIDDEN",
    "INTERNAL_ERROR",
    "NOT_FOUND",
    "STORE_ERROR",
    "VALIDATION_ERROR",
    "build_error_response",
    "get_error_message",
    "AmpTrackerException",
    "ConfigurationError",
    "NotFoundError",
    "SecurityError",
    "StoreError",
    "ValidationError",
]
