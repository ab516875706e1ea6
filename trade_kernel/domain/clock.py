"""
Clock -- where services get "now" from.

Line dates default to the clock, and reference ids embed its epoch
millis, so two batches run against a ``DeterministicClock`` mint
predictable ids.  Only ``SystemClock`` reads the real time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Injected into every service that stamps dates or mints ids."""

    @abstractmethod
    def now_utc(self) -> datetime:
        """Timezone-aware current time in UTC."""

    def epoch_millis(self) -> int:
        return int(self.now_utc().timestamp() * 1000)


class SystemClock(Clock):
    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen time for tests.  Stays put until ``advance()`` moves it.

    A naive ``start`` is taken to be UTC.
    """

    DEFAULT_START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __init__(self, start: datetime | None = None):
        start = start or self.DEFAULT_START
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._current = start.astimezone(timezone.utc)

    def now_utc(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
