from datetime import datetime, timedelta, timezone

import pytest

from geosched.infrastructure.clock import ManualClock, SystemClock, ensure_utc


class TestEnsureUtc:
    def test_naive_is_assumed_utc(self):
        assert ensure_utc(datetime(2025, 1, 6, 9)) == datetime(2025, 1, 6, 9, tzinfo=timezone.utc)

    def test_aware_is_converted(self):
        plus_two = timezone(timedelta(hours=2))
        result = ensure_utc(datetime(2025, 1, 6, 11, tzinfo=plus_two))
        assert result == datetime(2025, 1, 6, 9, tzinfo=timezone.utc)
        assert result.tzinfo == timezone.utc


class TestSystemClock:
    def test_is_aware_utc(self):
        assert SystemClock().now().tzinfo == timezone.utc


class TestManualClock:
    def test_advance(self):
        clock = ManualClock(datetime(2025, 1, 6, 9, tzinfo=timezone.utc))
        clock.advance(minutes=30)
        clock.advance(timedelta(hours=1))
        assert clock.now() == datetime(2025, 1, 6, 10, 30, tzinfo=timezone.utc)

    def test_cannot_go_backwards(self):
        clock = ManualClock(datetime(2025, 1, 6, 9, tzinfo=timezone.utc))
        with pytest.raises(ValueError):
            clock.advance(minutes=-1)

    def test_set(self):
        clock = ManualClock()
        clock.set(datetime(2030, 1, 1))
        assert clock.now() == datetime(2030, 1, 1, tzinfo=timezone.utc)
