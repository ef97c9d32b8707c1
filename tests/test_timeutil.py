from datetime import datetime, timedelta, timezone

import pytest

from kafkaio.timeutil import (
    EPOCH,
    MAX_TIMEOUT,
    adjust_deadline_for_rtt,
    deadline_to_timeout,
    duration,
    milliseconds,
    timestamp,
    timestamp_to_time,
)

NOW = datetime(2021, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_timestamp_of_none_is_zero():
    assert timestamp(None) == 0


def test_timestamp_of_epoch_is_zero():
    assert timestamp(EPOCH) == 0


@pytest.mark.parametrize("ms", [0, 1, 999, 1000, 1622548800123, -1, -1500])
def test_timestamp_round_trip(ms):
    assert timestamp(timestamp_to_time(ms)) == ms


def test_timestamp_ignores_timezone_of_same_instant():
    shifted = NOW.astimezone(timezone(timedelta(hours=5)))
    assert timestamp(shifted) == timestamp(NOW)


def test_naive_datetime_is_utc():
    assert timestamp(NOW.replace(tzinfo=None)) == timestamp(NOW)


def test_timestamp_to_time_is_utc():
    moment = timestamp_to_time(timestamp(NOW))
    assert moment == NOW
    assert moment.tzinfo == timezone.utc


@pytest.mark.parametrize("ms", [0, 1, 100, -250, 2147483647, -2147483648])
def test_milliseconds_duration_round_trip(ms):
    assert milliseconds(duration(ms)) == ms


def test_milliseconds_clamps_to_int32():
    assert milliseconds(timedelta(days=1000)) == 2147483647
    assert milliseconds(timedelta(days=-1000)) == -2147483648


def test_milliseconds_truncates_toward_zero():
    assert milliseconds(timedelta(microseconds=1500)) == 1
    assert milliseconds(timedelta(microseconds=-1500)) == -1


def test_deadline_to_timeout_without_deadline():
    assert deadline_to_timeout(None, NOW) == MAX_TIMEOUT


def test_deadline_to_timeout_with_deadline():
    assert deadline_to_timeout(NOW + timedelta(seconds=5), NOW) == timedelta(seconds=5)


def test_adjust_deadline_without_deadline():
    assert adjust_deadline_for_rtt(None, NOW, timedelta(seconds=1)) is None


def test_adjust_deadline_subtracts_rtt():
    deadline = NOW + timedelta(seconds=10)
    rtt = timedelta(seconds=1)
    assert adjust_deadline_for_rtt(deadline, NOW, rtt) == deadline - rtt


def test_adjust_deadline_short_timeout_uses_quarter():
    deadline = NOW + timedelta(seconds=4)
    result = adjust_deadline_for_rtt(deadline, NOW, timedelta(seconds=8))
    assert result == deadline - timedelta(seconds=1)
    assert NOW < result < deadline