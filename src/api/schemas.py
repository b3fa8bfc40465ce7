"""
Pydantic Schemas for AMP Tracker REST API.

Defines request schemas for all API endpoints and the response envelope
shared by every versioned endpoint:

    {"success": bool, "data": Any, "error": {...} | None, "meta": {"timestamp": str}}
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from src.config.limits import (
    MAX_BLOCK_LABEL_LENGTH,
    MAX_CHECKLIST_NOTES_LENGTH,
    MAX_ITEM_TEXT_LENGTH,
    MAX_TODO_LENGTH,
)
from src.lib.dates import is_valid_wake_time
from src.lib.errors import build_error_response

# =============================================================================
# Response Envelope
# =============================================================================


def _meta() -> dict[str, Any]:
    return {"timestamp": datetime.now(UTC).isoformat()}


def success_response(data: Any) -> dict[str, Any]:
    """Wrap ``data`` in a successful response envelope."""
    return {"success": True, "data": data, "error": None, "meta": _meta()}


def error_response(
    code: str,
    message: str | None = None,
    details: dict[str, Any] | None = None,
    lang: str = "en",
) -> dict[str, Any]:
    """
    Wrap an error code in a failed response envelope.

    Without ``message`` the registry text for ``code`` in ``lang`` is used.
    """
    return {
        "success": False,
        "data": None,
        "error": build_error_response(code, message, details, lang),
        "meta": _meta(),
    }


# =============================================================================
# Day Record Requests
# =============================================================================


class CompleteItemRequest(BaseModel):
    """Request schema for completing a checklist item."""

    text: str = Field(default="", max_length=MAX_ITEM_TEXT_LENGTH)


class BlockNoteRequest(BaseModel):
    """Request schema for adding a time-block note (trimmed and capped server-side)."""

    note: str = Field(..., max_length=2000)


class ChecklistNotesRequest(BaseModel):
    """Request schema for overwriting checklist notes."""

    notes: str = Field(..., max_length=MAX_CHECKLIST_NOTES_LENGTH * 2)


class CreateTodoRequest(BaseModel):
    """Request schema for creating a to-do item."""

    text: str = Field(..., min_length=1, max_length=MAX_TODO_LENGTH * 2)


class WakeTimeRequest(BaseModel):
    """Request schema for recording a day's wake time."""

    wake_time: str = Field(..., max_length=5)

    @field_validator("wake_time")
    @classmethod
    def _check_wake_time(cls, value: str) -> str:
        if not is_valid_wake_time(value):
            raise ValueError("wake_time must be HH:MM (24-hour)")
        return value


class BlockOverrideRequest(BaseModel):
    """Request schema for customizing a time block (validated server-side)."""

    label: str | None = Field(default=None, max_length=MAX_BLOCK_LABEL_LENGTH * 2)
    time: str | None = Field(default=None, max_length=5)
    hidden: bool = False


# =============================================================================
# Time-Block Engine Requests
# =============================================================================


class AssignTimeBlockRequest(BaseModel):
    """Request schema for the pure time-block assignment endpoint."""

    completion_instant: datetime
    timezone: str = Field(..., min_length=1, max_length=64)
    wake_time: str | None = Field(default=None, max_length=5)
    wake_date: str | None = Field(default=None, max_length=10)


__all__ = [
    "success_response",
    "error_response",
    "CompleteItemRequest",
    "BlockNoteRequest",
    "ChecklistNotesRequest",
    "CreateTodoRequest",
    "WakeTimeRequest",
    "BlockOverrideRequest",
    "AssignTimeBlockRequest",
]
