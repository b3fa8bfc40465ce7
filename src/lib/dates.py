"""
Calendar date and wake-time parsing for AMP Tracker.

Day records are addressed by a local calendar date in ``YYYY-MM-DD`` form.
Wake times are 24-hour ``HH:MM`` strings (leading zero on the hour optional).
"""

from __future__ import annotations

import re
from datetime import date

from src.lib.exceptions import ValidationError

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_WAKE_TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")


def parse_day(value: str) -> date:
    """
    Parse a ``YYYY-MM-DD`` day key.

    Raises:
        ValidationError: If the format is wrong or the date does not exist
    """
    if not isinstance(value, str) or not _DATE_PATTERN.match(value):
        raise ValidationError(f"Invalid date format: {value!r} (expected YYYY-MM-DD)")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid calendar date: {value!r}") from exc


def is_valid_wake_time(value: str | None) -> bool:
    if not value:
        return False
    return bool(_WAKE_TIME_PATTERN.match(value))


def parse_wake_time(value: str) -> tuple[int, int]:
    """
    Parse an ``HH:MM`` wake time into ``(hour, minute)``.

    Raises:
        ValidationError: If the value is not a valid 24-hour time
    """
    match = _WAKE_TIME_PATTERN.match(value or "")
    if match is None:
        raise ValidationError(f"Invalid wake time: {value!r} (expected HH:MM)")
    return int(match.group(1)), int(match.group(2))


def normalize_wake_time(value: str) -> str:
    """Canonical zero-padded ``HH:MM`` form of a wake time."""
    hour, minute = parse_wake_time(value)
    return f"{hour:02d}:{minute:02d}"


def normalize_block_time(value: str) -> str:
    """
    Canonical zero-padded ``HH:MM`` form of a time-block display time.

    Raises:
        ValidationError: If the value is not a valid 24-hour time
    """
    match = _WAKE_TIME_PATTERN.match(value or "")
    if match is None:
        raise ValidationError(f"Invalid block time: {value!r} (expected HH:MM)")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


__all__ = [
    "parse_day",
    "is_valid_wake_time",
    "parse_wake_time",
    "normalize_wake_time",
    "normalize_block_time",
]
