"""
Error codes and localized messages for API error envelopes.

Every domain exception maps to one code and one HTTP status
(``classify_exception``). A code's default message is looked up in the
registry below in the caller's language, with English as the fallback.
"""

from __future__ import annotations

from typing import Any

from src.lib.exceptions import (
    AmpTrackerException,
    ConfigurationError,
    NotFoundError,
    SecurityError,
    StoreError,
    ValidationError,
)

# =============================================================================
# Error Code Constants
# =============================================================================

AUTH_REQUIRED = "AUTH_REQUIRED"
FORBIDDEN = "FORBIDDEN"
NOT_FOUND = "NOT_FOUND"
VALIDATION_ERROR = "VALIDATION_ERROR"
STORE_ERROR = "STORE_ERROR"
CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"

# =============================================================================
# Messages per code and language
# =============================================================================

_ERROR_MESSAGES: dict[str, dict[str, str]] = {
    AUTH_REQUIRED: {
        "en": "Authentication is required.",
        "de": "Authentifizierung erforderlich.",
    },
    FORBIDDEN: {
        "en": "You do not have permission to perform this action.",
        "de": "Sie haben keine Berechtigung fuer diese Aktion.",
    },
    NOT_FOUND: {
        "en": "The requested resource was not found.",
        "de": "Die angeforderte Ressource wurde nicht gefunden.",
    },
    VALIDATION_ERROR: {
        "en": "Invalid input. Please check your request.",
        "de": "Ungueltige Eingabe. Bitte ueberpruefen Sie Ihre Anfrage.",
    },
    STORE_ERROR: {
        "en": "Failed to update day record.",
        "de": "Der Tageseintrag konnte nicht aktualisiert werden.",
    },
    CONFIGURATION_ERROR: {
        "en": "The service is not configured correctly.",
        "de": "Der Dienst ist nicht korrekt konfiguriert.",
    },
    INTERNAL_ERROR: {
        "en": "An internal error occurred. Please try again.",
        "de": "Ein interner Fehler ist aufgetreten. Bitte erneut versuchen.",
    },
}

_DEFAULT_LANG = "en"
SUPPORTED_LANGUAGES: frozenset[str] = frozenset({"en", "de"})

# Exception type -> (error code, HTTP status)
_EXCEPTION_CODES: tuple[tuple[type[AmpTrackerException], str, int], ...] = (
    (ValidationError, VALIDATION_ERROR, 422),
    (NotFoundError, NOT_FOUND, 404),
    (SecurityError, FORBIDDEN, 403),
    (StoreError, STORE_ERROR, 503),
    (ConfigurationError, CONFIGURATION_ERROR, 500),
)


# =============================================================================
# Error Response Builder
# =============================================================================


def get_error_message(code: str, lang: str = "en") -> str:
    """Default message for ``code`` in ``lang``, falling back to English."""
    messages = _ERROR_MESSAGES.get(code, {})
    return messages.get(lang, messages.get(_DEFAULT_LANG, "An error occurred."))


def resolve_language(accept_language: str | None) -> str:
    """
    Pick the message language from an ``Accept-Language`` header.

    Tags are tried in descending q order (ties keep header order); region
    subtags are ignored (``de-AT`` -> ``de``). Unsupported or malformed
    headers yield the default language.
    """
    if not accept_language:
        return _DEFAULT_LANG

    candidates: list[tuple[float, int, str]] = []
    for position, part in enumerate(accept_language.split(",")):
        tag, _, params = part.strip().partition(";")
        quality = 1.0
        if params.strip().startswith("q="):
            try:
                quality = float(params.strip()[2:])
            except ValueError:
                continue
        primary = tag.strip().split("-")[0].lower()
        if primary and quality > 0:
            candidates.append((-quality, position, primary))

    for _, _, primary in sorted(candidates):
        if primary in SUPPORTED_LANGUAGES:
            return primary
    return _DEFAULT_LANG


def build_error_response(
    code: str,
    message: str | None = None,
    details: dict[str, Any] | None = None,
    lang: str = "en",
) -> dict[str, Any]:
    """
    Error body for the response envelope.

    ``message`` overrides the registry text; ``details`` is only included
    when given.
    """
    resolved_message = message if message is not None else get_error_message(code, lang)
    error: dict[str, Any] = {
        "code": code,
        "message": resolved_message,
    }
    if details is not None:
        error["details"] = details
    return error


def classify_exception(exc: Exception) -> tuple[str, int]:
    """
    Map an exception to its error code and HTTP status.

    Unknown exceptions map to INTERNAL_ERROR / 500.
    """
    for exc_type, code, status in _EXCEPTION_CODES:
        if isinstance(exc, exc_type):
            return code, status
    return INTERNAL_ERROR, 500


__all__ = [
    # Error code constants
    "AUTH_REQUIRED",
    "FORBIDDEN",
    "NOT_FOUND",
    "VALIDATION_ERROR",
    "STORE_ERROR",
    "CONFIGURATION_ERROR",
    "INTERNAL_ERROR",
    "SUPPORTED_LANGUAGES",
    # Functions
    "get_error_message",
    "resolve_language",
    "build_error_response",
    "classify_exception",
]
