"""Clock behaviour."""

from datetime import datetime, timedelta, timezone

import pytest

from trade_kernel.domain.clock import Clock, DeterministicClock, SystemClock


class TestDeterministicClock:
    def test_frozen_until_advanced(self):
        clock = DeterministicClock()
        first = clock.now_utc()
        assert clock.now_utc() == first == DeterministicClock.DEFAULT_START

        assert clock.advance(90) == first + timedelta(seconds=90)
        assert clock.now_utc() == first + timedelta(seconds=90)

    def test_naive_start_read_as_utc(self):
        clock = DeterministicClock(datetime(2024, 3, 5, 8, 30))
        assert clock.now_utc() == datetime(2024, 3, 5, 8, 30, tzinfo=timezone.utc)

    def test_offset_start_normalized(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        clock = DeterministicClock(datetime(2024, 3, 5, 14, 0, tzinfo=ist))
        assert clock.now_utc().tzinfo == timezone.utc
        assert clock.now_utc().hour == 8

    def test_epoch_millis_follows_time(self):
        clock = DeterministicClock()
        before = clock.epoch_millis()
        clock.advance(2)
        assert clock.epoch_millis() - before == 2000


def test_system_clock_is_utc():
    assert SystemClock().now_utc().tzinfo == timezone.utc


def test_clock_is_abstract():
    with pytest.raises(TypeError):
        Clock()
