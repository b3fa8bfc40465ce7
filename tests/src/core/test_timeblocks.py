"""
Tests for the time-block assignment engine.

Covers:
- Slot layout (18 slots, labels, block ids)
- General rule at every hour and minute, including the boundaries
- Wake rule (early-morning collapse) and its date scoping
- Timezone handling (offsets, DST transitions, naive instants, bad zones)
- Ordering of completed items
"""

from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest

from src.core.timeblocks import (
    SLOT_COUNT,
    CompletionRecord,
    WakeSettings,
    as_utc,
    assign_time_block,
    backfill_completion_block,
    block_display_name,
    general_rule_block,
    generate_time_blocks,
    resolve_zone,
    slot_label,
    sort_completed_items,
)
from src.lib.exceptions import ConfigurationError, ValidationError

NY = "America/New_York"


def _local(hour: int, minute: int = 0, day: int = 17, tz: str = NY) -> datetime:
    """A completion instant at local wall-clock time on 2025-09-<day>."""
    return datetime(2025, 9, day, hour, minute, tzinfo=ZoneInfo(tz))


# =============================================================================
# Slot layout
# =============================================================================


class TestSlotLayout:
    """Tests for the 18 canonical slots."""

    def test_public_names_are_defined(self):
        import src.core.timeblocks as timeblocks

        assert all(hasattr(timeblocks, name) for name in timeblocks.__all__)
        assert not {"DEFAULT_WAKE_TIME", "DEFAULT_BLOCK_DURATION_MINUTES"} & set(timeblocks.__all__)

    def test_eighteen_slots(self):
        """Slots run from 4 a.m. to 9 p.m., one per hour."""
        slots = generate_time_blocks()
        assert len(slots) == SLOT_COUNT == 18
        assert [s.index for s in slots] == list(range(18))
        assert slots[0].start_hour == 4
        assert slots[-1].start_hour == 21

    def test_block_ids(self):
        slots = generate_time_blocks()
        assert slots[0].block_id == "tb-04h-001"
        assert slots[-1].block_id == "tb-21h-001"

    def test_labels(self):
        assert slot_label(4) == "4:00 a.m."
        assert slot_label(12) == "12:00 p.m."
        assert slot_label(21) == "9:00 p.m."

    def test_display_name(self):
        assert block_display_name(0) == "4:00 a.m."
        assert block_display_name(17) == "9:00 p.m."

    def test_display_name_out_of_range(self):
        assert block_display_name(-1) == "Unknown Block"
        assert block_display_name(18) == "Unknown Block"

    def test_to_dict(self):
        data = generate_time_blocks()[3].to_dict()
        assert data == {"index": 3, "start_hour": 7, "label": "7:00 a.m.", "block_id": "tb-07h-001"}


# =============================================================================
# General rule
# =============================================================================


class TestGeneralRule:
    """Tests for the hour -> slot mapping without wake settings."""

    @pytest.mark.parametrize(
        "hour,expected",
        [(0, 0), (3, 0), (4, 0), (5, 1), (12, 8), (20, 16), (21, 17), (23, 17)],
    )
    def test_boundaries(self, hour, expected):
        """Boundary hours map to the documented slots."""
        assert general_rule_block(hour) == expected
        assert assign_time_block(_local(hour, 30), NY).block_index == expected

    def test_total_and_deterministic(self):
        """Every minute of the day maps to exactly one slot, identically on repeat calls."""
        for hour in range(24):
            for minute in range(60):
                instant = _local(hour, minute)
                first = assign_time_block(instant, NY)
                second = assign_time_block(instant, NY)
                assert 0 <= first.block_index <= 17
                assert first == second

    def test_audit_fields(self):
        """Offsets are minutes east of UTC; local time is HH:MM:SS."""
        record = assign_time_block(_local(8, 15), NY)
        assert isinstance(record, CompletionRecord)
        assert record.block_index == 4
        assert record.timezone_offset_minutes == -240
        assert record.local_time_used == "08:15:00"
        assert record.local_date == "2025-09-17"
        assert record.timestamp == datetime(2025, 9, 17, 12, 15, tzinfo=UTC)

    def test_positive_half_hour_offset(self):
        record = assign_time_block(datetime(2025, 9, 17, 3, 0, tzinfo=UTC), "Asia/Kolkata")
        assert record.timezone_offset_minutes == 330
        assert record.local_time_used == "08:30:00"
        assert record.block_index == 4

    def test_local_date_differs_from_utc_date(self):
        """02:30 UTC on the 18th is still the evening of the 17th in New York."""
        record = assign_time_block(datetime(2025, 9, 18, 2, 30, tzinfo=UTC), NY)
        assert record.local_date == "2025-09-17"
        assert record.block_index == 17

    def test_naive_instant_is_utc(self):
        naive = datetime(2025, 9, 17, 12, 15)
        assert assign_time_block(naive, NY) == assign_time_block(naive.replace(tzinfo=UTC), NY)

    def test_to_dict(self):
        data = assign_time_block(_local(8, 15), NY).to_dict()
        assert data["block_index"] == 4
        assert data["timezone_offset_minutes"] == -240
        assert data["timestamp"] == "2025-09-17T12:15:00+00:00"


# =============================================================================
# Wake rule
# =============================================================================


class TestWakeRule:
    """Tests for the early-morning collapse."""

    def test_collapse_before_five(self):
        wake = WakeSettings(date="2025-09-17", wake_time="03:30")
        assert assign_time_block(_local(4, 45), NY, wake).block_index == 0

    def test_no_collapse_from_five(self):
        """At 05:15 the general rule applies again."""
        wake = WakeSettings(date="2025-09-17", wake_time="03:30")
        assert assign_time_block(_local(5, 15), NY, wake).block_index == 1

    def test_rules_coincide(self):
        """Wake 04:00, completion 04:30: both rules give slot 0."""
        wake = WakeSettings(date="2025-09-17", wake_time="04:00")
        instant = _local(4, 30)
        assert assign_time_block(instant, NY, wake).block_index == 0
        assert assign_time_block(instant, NY).block_index == 0

    def test_late_wake_time_uses_general_rule(self):
        wake = WakeSettings(date="2025-09-17", wake_time="07:00")
        assert assign_time_block(_local(10, 0), NY, wake).block_index == 6

    def test_wake_settings_for_other_date_are_ignored(self):
        """A wake time recorded for another day never applies, even a malformed one."""
        wake = WakeSettings(date="2025-09-16", wake_time="99:99")
        record = assign_time_block(_local(4, 45), NY, wake)
        assert record.block_index == 0

    def test_malformed_wake_time_same_date(self):
        wake = WakeSettings(date="2025-09-17", wake_time="99:99")
        with pytest.raises(ValidationError):
            assign_time_block(_local(4, 45), NY, wake)

    def test_missing_wake_time(self):
        wake = WakeSettings(date="2025-09-17")
        assert assign_time_block(_local(9, 0), NY, wake).block_index == 5


# =============================================================================
# Timezones
# =============================================================================


class TestTimezones:
    """Tests for zone resolution and DST."""

    def test_missing_timezone(self):
        with pytest.raises(ConfigurationError):
            assign_time_block(_local(8), None)

    def test_unknown_timezone(self):
        with pytest.raises(ConfigurationError):
            resolve_zone("Mars/Olympus_Mons")

    def test_resolve_zone(self):
        assert resolve_zone(NY) == ZoneInfo(NY)

    def test_spring_forward(self):
        """07:30 UTC on 2025-03-09 is 03:30 EDT (02:xx does not exist that night)."""
        record = assign_time_block(datetime(2025, 3, 9, 7, 30, tzinfo=UTC), NY)
        assert record.local_time_used == "03:30:00"
        assert record.timezone_offset_minutes == -240
        assert record.block_index == 0

    def test_fall_back_repeated_hour(self):
        """The repeated 01:30 maps to the same slot with different offsets."""
        first = assign_time_block(datetime(2025, 11, 2, 5, 30, tzinfo=UTC), NY)
        second = assign_time_block(datetime(2025, 11, 2, 6, 30, tzinfo=UTC), NY)
        assert first.local_time_used == second.local_time_used == "01:30:00"
        assert first.block_index == second.block_index == 0
        assert first.timezone_offset_minutes == -240
        assert second.timezone_offset_minutes == -300

    def test_as_utc(self):
        aware = _local(8, 15)
        assert as_utc(aware) == datetime(2025, 9, 17, 12, 15, tzinfo=UTC)
        assert as_utc(datetime(2025, 1, 1)).tzinfo is UTC


# =============================================================================
# Backfill and ordering
# =============================================================================


class TestBackfillAndSorting:
    """Tests for backfilled slots and completion ordering."""

    def test_backfill_uses_stored_timestamp(self):
        assert backfill_completion_block(datetime(2025, 9, 17, 23, 0), NY) == 15

    def test_sort_by_block_then_time(self):
        items = [
            {"id": "c", "block_index": 5, "completed_at": datetime(2025, 9, 17, 13, 10, tzinfo=UTC)},
            {"id": "a", "block_index": 1, "completed_at": datetime(2025, 9, 17, 9, 30, tzinfo=UTC)},
            {"id": "b", "block_index": 5, "completed_at": datetime(2025, 9, 17, 13, 5, tzinfo=UTC)},
        ]
        assert [item["id"] for item in sort_completed_items(items)] == ["a", "b", "c"]

    def test_sort_missing_block_first(self):
        items = [
            {"id": "late", "block_index": 3, "completed_at": None},
            {"id": "none", "block_index": None, "completed_at": None},
        ]
        assert [item["id"] for item in sort_completed_items(items)] == ["none", "late"]
