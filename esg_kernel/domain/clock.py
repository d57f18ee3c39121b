"""
Clock -- injectable time source.

Responsibility:
    Services that stamp ``import_date``, ``created_at`` or attribution
    timestamps receive a Clock through their constructor instead of calling
    ``datetime.now()`` themselves, so imports can be replayed and tested
    with fixed times.

Architecture position:
    Kernel > Domain -- zero I/O apart from SystemClock.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Iterator


class Clock(ABC):
    """Abstract clock. ``now()`` always returns a timezone-aware datetime."""

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def now_ms(self) -> int:
        """Milliseconds since the Unix epoch (used for batch identifiers)."""
        return int(self.now().timestamp() * 1000)


class SystemClock(Clock):
    """Production clock returning the system time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value on repeated calls until ``advance()``
    or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        self._advance_seconds += seconds

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()


class SequentialClock(Clock):
    """
    Clock that returns times from a predefined list, then repeats the last one.

    Raises:
        ValueError: If initialized with an empty list.
    """

    def __init__(self, times: list[datetime]):
        if not times:
            raise ValueError("SequentialClock requires at least one time")
        self._times: Iterator[datetime] = iter(times)
        self._last_time: datetime | None = None

    def now(self) -> datetime:
        try:
            self._last_time = next(self._times)
        except StopIteration:
            if self._last_time is None:
                raise RuntimeError("SequentialClock exhausted with no times")
        return self._last_time
