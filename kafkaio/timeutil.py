"""Conversions between datetimes, durations and protocol milliseconds."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

MAX_TIMEOUT = timedelta(milliseconds=2**31 - 1)
MIN_TIMEOUT = timedelta(milliseconds=-(2**31))
DEFAULT_RTT = timedelta(seconds=1)

_ONE_MICROSECOND = timedelta(microseconds=1)
_MICROSECONDS_PER_MILLISECOND = 1000


def _truncating_div(value: int, divisor: int) -> int:
    quotient = abs(value) // divisor
    return quotient if value >= 0 else -quotient


def timestamp(moment: datetime | None) -> int:
    """Milliseconds since the Unix epoch; ``None`` maps to 0.

    Naive datetimes are taken to be in UTC.
    """
    if moment is None:
        return 0
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    micros = (moment - EPOCH) // _ONE_MICROSECOND
    return _truncating_div(micros, _MICROSECONDS_PER_MILLISECOND)


def timestamp_to_time(ms: int) -> datetime:
    """The UTC datetime ``ms`` milliseconds after the Unix epoch."""
    return EPOCH + timedelta(milliseconds=ms)


def duration(ms: int) -> timedelta:
    return timedelta(milliseconds=ms)


def milliseconds(delta: timedelta) -> int:
    """Whole milliseconds in ``delta``, clamped to the int32 range."""
    if delta > MAX_TIMEOUT:
        delta = MAX_TIMEOUT
    elif delta < MIN_TIMEOUT:
        delta = MIN_TIMEOUT
    return _truncating_div(delta // _ONE_MICROSECOND, _MICROSECONDS_PER_MILLISECOND)


def deadline_to_timeout(deadline: datetime | None, now: datetime) -> timedelta:
    if deadline is None:
        return MAX_TIMEOUT
    return deadline - now


def adjust_deadline_for_rtt(
    deadline: datetime | None, now: datetime, rtt: timedelta
) -> datetime | None:
    """Move the deadline earlier to leave room for a network round trip."""
    if deadline is not None:
        timeout = deadline - now
        if timeout < rtt:
            rtt = timeout / 4
        deadline = deadline - rtt
    return deadline