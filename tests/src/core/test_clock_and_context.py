"""
Tests for the clock abstraction and UserContext.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from src.core.clock import Clock, FixedClock, SystemClock, epoch_ms
from src.core.user_context import Role, UserContext
from src.lib.exceptions import ConfigurationError


class TestClock:
    """Tests for SystemClock and FixedClock."""

    def test_system_clock_is_utc(self):
        now = SystemClock().now()
        assert now.tzinfo is UTC
        assert abs(now - datetime.now(UTC)) < timedelta(seconds=5)

    def test_clocks_satisfy_protocol(self):
        assert isinstance(SystemClock(), Clock)
        assert isinstance(FixedClock(datetime(2025, 1, 1, tzinfo=UTC)), Clock)

    def test_fixed_clock_normalizes_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        clock = FixedClock(datetime(2025, 9, 17, 14, 0, tzinfo=plus_two))
        assert clock.now() == datetime(2025, 9, 17, 12, 0, tzinfo=UTC)
        assert clock.now().tzinfo is UTC

    def test_fixed_clock_naive_is_utc(self):
        clock = FixedClock(datetime(2025, 9, 17, 12, 0))
        assert clock.now() == datetime(2025, 9, 17, 12, 0, tzinfo=UTC)

    def test_advance_and_set(self):
        clock = FixedClock(datetime(2025, 9, 17, 12, 0, tzinfo=UTC))
        assert clock.advance(minutes=5) == datetime(2025, 9, 17, 12, 5, tzinfo=UTC)
        clock.set(datetime(2025, 1, 1))
        assert clock.now() == datetime(2025, 1, 1, tzinfo=UTC)

    def test_epoch_ms(self):
        clock = FixedClock(datetime(2025, 9, 17, 12, 15, tzinfo=UTC))
        assert epoch_ms(clock) == 1758111300000


class TestUserContext:
    """Tests for UserContext."""

    def test_defaults(self):
        ctx = UserContext(user_id=1)
        assert ctx.role == Role.PUBLIC
        assert ctx.timezone is None
        assert ctx.is_delegated is False

    def test_require_timezone(self):
        assert UserContext(user_id=1, timezone="Europe/Berlin").require_timezone() == "Europe/Berlin"

    def test_require_timezone_missing(self):
        with pytest.raises(ConfigurationError, match="No timezone"):
            UserContext(user_id=1).require_timezone()

    def test_delegation(self):
        assert UserContext(user_id=1, acting_user_id=2).is_delegated is True
        assert UserContext(user_id=1, acting_user_id=1).is_delegated is False

    def test_role_values(self):
        assert Role("admin") is Role.ADMIN
        assert str(Role.PUBLIC) == "public"
