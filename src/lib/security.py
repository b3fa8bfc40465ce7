"""
Input normalization, log-safe user ids and response security headers.

Usage:
    from src.lib.security import InputSanitizer, create_security_middleware

    item_id = InputSanitizer.require_identifier(raw_id, "item_id")
    note = InputSanitizer.clean_text(raw_note, max_length=200)

    create_security_middleware(app)
"""

import hashlib
import re
from typing import Any

import structlog

from src.config.limits import MAX_ID_LENGTH
from src.lib.exceptions import ValidationError

logger = structlog.get_logger()


def hash_uid(user_id: int) -> str:
    """Return a 12-char SHA-256 prefix for log-safe user identification."""
    return hashlib.sha256(str(user_id).encode()).hexdigest()[:12]


# ============================================
# Input Sanitizer
# ============================================

class InputSanitizer:
    """
    Normalization for identifiers and free text before they are stored.

    Text is rendered as plain text by clients, so markup is kept verbatim;
    only control characters are removed.
    """

    # Control characters except tab and newline
    CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")

    # Identifiers never contain whitespace or path separators
    IDENTIFIER_FORBIDDEN = re.compile(r"[\s/\\]")

    @classmethod
    def strip_control_chars(cls, input_text: str) -> str:
        """Remove control characters (keeps tab and newline)."""
        return cls.CONTROL_CHARS.sub("", input_text)

    @classmethod
    def clean_text(cls, input_text: str | None, max_length: int) -> str:
        """
        Trim whitespace, drop control characters and cap the length.

        Args:
            input_text: Raw user text (None is treated as empty)
            max_length: Maximum number of characters kept

        Returns:
            Cleaned text, possibly empty
        """
        if not input_text:
            return ""
        result = cls.strip_control_chars(input_text).strip()
        if len(result) > max_length:
            logger.info("input_truncated", original_length=len(result), max_length=max_length)
            result = result[:max_length].rstrip()
        return result

    @classmethod
    def require_identifier(
        cls,
        value: str | None,
        field_name: str,
        max_length: int = MAX_ID_LENGTH,
    ) -> str:
        """
        Validate an identifier (item id, checklist id, block id).

        Raises:
            ValidationError: If the identifier is empty, too long or malformed
        """
        if value is None or not value.strip():
            raise ValidationError(f"{field_name} must not be empty")
        if len(value) > max_length:
            raise ValidationError(f"{field_name} must be at most {max_length} characters")
        if cls.IDENTIFIER_FORBIDDEN.search(value) or cls.CONTROL_CHARS.search(value):
            raise ValidationError(f"{field_name} contains invalid characters")
        return value


# ============================================
# Response Headers
# ============================================

class SecurityHeaders:
    """
    Headers added to every response. The API only serves JSON, so the
    default CSP forbids all content and framing.
    """

    DEFAULT_CSP = "default-src 'none'; frame-ancestors 'none'"

    STATIC_HEADERS: dict[str, str] = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
        "Referrer-Policy": "no-referrer",
        "Cache-Control": "no-store",
    }

    @classmethod
    def get_headers(cls, csp: str | None = None) -> dict[str, str]:
        return {**cls.STATIC_HEADERS, "Content-Security-Policy": csp or cls.DEFAULT_CSP}


def create_security_middleware(app: Any, csp: str | None = None) -> None:
    """Register an HTTP middleware on ``app`` that sets ``SecurityHeaders``."""
    headers = SecurityHeaders.get_headers(csp)

    @app.middleware("http")
    async def add_security_headers(request: Any, call_next: Any) -> Any:
        response = await call_next(request)
        response.headers.update(headers)
        return response

    logger.debug("security_headers_enabled", custom_csp=csp is not None)


__all__ = [
    "hash_uid",
    "InputSanitizer",
    "SecurityHeaders",
    "create_security_middleware",
]
