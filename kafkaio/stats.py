"""Thread-safe statistics primitives whose values reset when snapshotted."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import timedelta

_ONE_MICROSECOND = timedelta(microseconds=1)
_NANOSECONDS_PER_MICROSECOND = 1000


def _to_nanoseconds(value: timedelta) -> int:
    return (value // _ONE_MICROSECOND) * _NANOSECONDS_PER_MICROSECOND


def _from_nanoseconds(value: int) -> timedelta:
    return timedelta(microseconds=value / _NANOSECONDS_PER_MICROSECOND)


@dataclass(frozen=True)
class SummaryStats:
    """Average, minimum and maximum of the observed values."""

    avg: int = 0
    min: int = 0
    max: int = 0


@dataclass(frozen=True)
class DurationStats:
    """Average, minimum and maximum of the observed durations."""

    avg: timedelta = field(default_factory=timedelta)
    min: timedelta = field(default_factory=timedelta)
    max: timedelta = field(default_factory=timedelta)


class _Cell:
    """An integer guarded by a lock."""

    __slots__ = ("_lock", "_value")

    def __init__(self, initial: int = 0) -> None:
        self._lock = threading.Lock()
        self._value = initial


class Counter(_Cell):
    """An incrementing counter that is reset by every snapshot."""

    def observe(self, value: int) -> None:
        with self._lock:
            self._value += value

    def snapshot(self) -> int:
        with self._lock:
            value = self._value
            self._value -= value
            return value


class Gauge(_Cell):
    """A value that may be set to anything and survives snapshots."""

    def observe(self, value: int) -> None:
        with self._lock:
            self._value = value

    def snapshot(self) -> int:
        with self._lock:
            return self._value


class Minimum(_Cell):
    """Tracks the smallest value observed between snapshots.

    A negative stored value means that nothing has been observed yet.
    """

    def __init__(self, initial: int = -1) -> None:
        super().__init__(initial)

    def observe(self, value: int) -> None:
        with self._lock:
            if self._value < 0 or value < self._value:
                self._value = value

    def snapshot(self) -> int:
        with self._lock:
            value = self._value
            self._value = -1
        return max(value, 0)


class Maximum(_Cell):
    """Tracks the largest value observed between snapshots.

    A negative stored value means that nothing has been observed yet.
    """

    def __init__(self, initial: int = -1) -> None:
        super().__init__(initial)

    def observe(self, value: int) -> None:
        with self._lock:
            if self._value < 0 or value > self._value:
                self._value = value

    def snapshot(self) -> int:
        with self._lock:
            value = self._value
            self._value = -1
        return max(value, 0)


class Summary:
    """Minimum, maximum, sum and count of observed values."""

    def __init__(self, initial: int = -1) -> None:
        self._min = Minimum(initial)
        self._max = Maximum(initial)
        self._sum = Counter()
        self._count = Counter()

    def observe(self, value: int) -> None:
        self._min.observe(value)
        self._max.observe(value)
        self._sum.observe(value)
        self._count.observe(1)

    def observe_duration(self, value: timedelta) -> None:
        self.observe(_to_nanoseconds(value))

    def snapshot(self) -> SummaryStats:
        minimum = self._min.snapshot()
        maximum = self._max.snapshot()
        total = self._sum.snapshot()
        count = self._count.snapshot()
        avg = int(total / count) if count else 0
        return SummaryStats(avg=avg, min=minimum, max=maximum)

    def snapshot_duration(self) -> DurationStats:
        stats = self.snapshot()
        return DurationStats(
            avg=_from_nanoseconds(stats.avg),
            min=_from_nanoseconds(stats.min),
            max=_from_nanoseconds(stats.max),
        )