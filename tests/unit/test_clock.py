"""Tests for the injectable clocks."""

from datetime import date, datetime, timedelta, timezone

import pytest

from settlement_kernel.domain.clock import DeterministicClock, SystemClock


class TestDeterministicClock:

    def test_time_stands_still(self):
        clock = DeterministicClock(datetime(2025, 1, 31, 12, tzinfo=timezone.utc))
        assert clock.now() == clock.now()

    def test_advance(self):
        clock = DeterministicClock(datetime(2025, 1, 31, 12, tzinfo=timezone.utc))
        moved = clock.advance(hours=13)
        assert moved == datetime(2025, 2, 1, 1, tzinfo=timezone.utc)
        assert clock.today() == date(2025, 2, 1)

    def test_today_is_utc(self):
        brasilia = timezone(timedelta(hours=-3))
        clock = DeterministicClock(datetime(2025, 1, 31, 23, 30, tzinfo=brasilia))
        assert clock.today() == date(2025, 2, 1)

    def test_naive_start_rejected(self):
        with pytest.raises(ValueError):
            DeterministicClock(datetime(2025, 1, 31, 12))


def test_system_clock_is_aware():
    assert SystemClock().now().tzinfo is not None
