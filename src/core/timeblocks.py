"""
Time-Block Assignment Engine for AMP Tracker.

The day is divided into 18 fixed slots. Slot ``i`` starts at local hour
``i + 4``; the first slot also absorbs the hours before 4 a.m. and the last
slot covers 21:00-23:59.

    index:  0     1     2   ...  16     17
    start: 4:00  5:00  6:00 ... 20:00  21:00

A completion instant is converted to the user's IANA timezone and mapped to
a slot:

1. Wake rule: when the day's wake time is known (same local date) and the
   completion falls between the wake time and 4:59 a.m., it belongs to
   slot 0 (early-morning collapse).
2. General rule: hour < 4 -> 0, 4 <= hour <= 20 -> hour - 4, hour >= 21 -> 17.

The engine is pure: it never reads the clock, and the audit fields of the
returned record do not influence the slot.

Usage:
    from src.core.timeblocks import WakeSettings, assign_time_block

    record = assign_time_block(
        datetime(2025, 8, 19, 11, 30, tzinfo=UTC),
        "America/New_York",
        WakeSettings(wake_time="05:00", date="2025-08-19"),
    )
    record.block_index  # 3
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.lib.dates import parse_wake_time
from src.lib.exceptions import ConfigurationError
from src.lib.ids import time_block_id

# =============================================================================
# Slot layout
# =============================================================================

SLOT_COUNT = 18
FIRST_SLOT_HOUR = 4
LAST_SLOT_HOUR = FIRST_SLOT_HOUR + SLOT_COUNT - 1  # 21
EARLY_MORNING_CUTOFF_HOUR = 5


@dataclass(frozen=True)
class TimeBlockSlot:
    """One of the 18 daily slots. Generated on demand, never persisted."""

    index: int
    start_hour: int
    label: str

    @property
    def block_id(self) -> str:
        """Stable template id for the slot (``tb-04h-001`` ... ``tb-21h-001``)."""
        return time_block_id(self.start_hour)

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "start_hour": self.start_hour,
            "label": self.label,
            "block_id": self.block_id,
        }


@dataclass(frozen=True)
class WakeSettings:
    """Wake time recorded for one local calendar day (``YYYY-MM-DD``)."""

    date: str
    wake_time: str | None = None


@dataclass(frozen=True)
class CompletionRecord:
    """
    Result of assigning a completion instant to a slot.

    Attributes:
        timestamp: The completion instant (timezone-aware, UTC)
        block_index: Slot index 0..17
        timezone_offset_minutes: Offset of the user's zone at that instant,
            in minutes east of UTC (New York in August: -240)
        local_time_used: Local wall-clock time as ``HH:MM:SS``
        local_date: Local calendar date as ``YYYY-MM-DD``
    """

    timestamp: datetime
    block_index: int
    timezone_offset_minutes: int
    local_time_used: str
    local_date: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "block_index": self.block_index,
            "timezone_offset_minutes": self.timezone_offset_minutes,
            "local_time_used": self.local_time_used,
            "local_date": self.local_date,
        }


def slot_label(hour: int) -> str:
    """Display label for a slot start hour, e.g. ``4:00 a.m.`` or ``12:00 p.m.``."""
    display_hour = hour % 12 or 12
    suffix = "p.m." if hour >= 12 else "a.m."
    return f"{display_hour}:00 {suffix}"


def generate_time_blocks() -> list[TimeBlockSlot]:
    """The 18 canonical slots, ordered by index."""
    return [
        TimeBlockSlot(index=hour - FIRST_SLOT_HOUR, start_hour=hour, label=slot_label(hour))
        for hour in range(FIRST_SLOT_HOUR, LAST_SLOT_HOUR + 1)
    ]


def block_display_name(block_index: int) -> str:
    if 0 <= block_index < SLOT_COUNT:
        return slot_label(block_index + FIRST_SLOT_HOUR)
    return "Unknown Block"


# =============================================================================
# Timezone handling
# =============================================================================


def resolve_zone(user_timezone: str | None) -> ZoneInfo:
    """
    Resolve an IANA timezone id.

    Raises:
        ConfigurationError: If the id is missing or unknown
    """
    if not user_timezone:
        raise ConfigurationError("User timezone is not configured")
    try:
        return ZoneInfo(user_timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Unknown timezone: {user_timezone!r}") from exc


def as_utc(instant: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


# =============================================================================
# Assignment
# =============================================================================


def general_rule_block(local_hour: int) -> int:
    """Slot index for a local hour without any wake-time adjustment."""
    if local_hour < FIRST_SLOT_HOUR:
        return 0
    if local_hour > LAST_SLOT_HOUR - 1:
        return SLOT_COUNT - 1
    return local_hour - FIRST_SLOT_HOUR


def assign_time_block(
    completion_instant: datetime,
    user_timezone: str | None,
    wake_settings: WakeSettings | None = None,
) -> CompletionRecord:
    """
    Map a completion instant to one of the 18 daily slots.

    Args:
        completion_instant: When the completion happened (naive = UTC)
        user_timezone: IANA timezone id of the user
        wake_settings: Wake time for a local day; ignored unless its date
            equals the completion's local date

    Returns:
        CompletionRecord with the slot index and audit fields

    Raises:
        ConfigurationError: If the timezone is missing or unknown
        ValidationError: If the applicable wake time is malformed
    """
    zone = resolve_zone(user_timezone)
    instant = as_utc(completion_instant)
    local = instant.astimezone(zone)
    local_date = local.date().isoformat()

    block_index = general_rule_block(local.hour)
    if (
        wake_settings is not None
        and wake_settings.wake_time
        and wake_settings.date == local_date
    ):
        wake_hour, wake_minute = parse_wake_time(wake_settings.wake_time)
        completion_minutes = local.hour * 60 + local.minute
        if (
            completion_minutes >= wake_hour * 60 + wake_minute
            and local.hour < EARLY_MORNING_CUTOFF_HOUR
        ):
            block_index = 0

    offset = local.utcoffset()
    offset_minutes = int(offset.total_seconds() // 60) if offset is not None else 0

    return CompletionRecord(
        timestamp=instant,
        block_index=block_index,
        timezone_offset_minutes=offset_minutes,
        local_time_used=local.strftime("%H:%M:%S"),
        local_date=local_date,
    )


def backfill_completion_block(
    completed_at: datetime,
    user_timezone: str | None,
    wake_settings: WakeSettings | None = None,
) -> int:
    """Slot index for a completion stored before slots were recorded."""
    return assign_time_block(completed_at, user_timezone, wake_settings).block_index


T = TypeVar("T")


def sort_completed_items(items: Iterable[T]) -> list[T]:
    """
    Order completions by slot, then by completion time within a slot.

    Items expose ``block_index`` and ``completed_at`` either as attributes or
    as mapping keys; missing values sort first.
    """

    def _field(item: Any, name: str) -> Any:
        if isinstance(item, dict):
            return item.get(name)
        return getattr(item, name, None)

    def _key(item: Any) -> tuple[int, float]:
        block = _field(item, "block_index")
        completed_at = _field(item, "completed_at")
        ts = as_utc(completed_at).timestamp() if isinstance(completed_at, datetime) else 0.0
        return (block if block is not None else 0, ts)

    return sorted(items, key=_key)


__all__ = [
    "SLOT_COUNT",
    "FIRST_SLOT_HOUR",
    "TimeBlockSlot",
    "WakeSettings",
    "CompletionRecord",
    "slot_label",
    "generate_time_blocks",
    "block_display_name",
    "resolve_zone",
    "as_utc",
    "general_rule_block",
    "assign_time_block",
    "backfill_completion_block",
    "sort_completed_items",
]
