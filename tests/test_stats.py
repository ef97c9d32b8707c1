import threading
from datetime import timedelta

from kafkaio.stats import (
    Counter,
    DurationStats,
    Gauge,
    Maximum,
    Minimum,
    Summary,
    SummaryStats,
)


def test_counter_accumulates_and_resets():
    counter = Counter()
    values = [3, 9, 12]
    for value in values:
        counter.observe(value)
    assert counter.snapshot() == sum(values)
    assert counter.snapshot() == 0


def test_counter_is_thread_safe():
    counter = Counter()
    threads_count, per_thread = 8, 500

    def work():
        for _ in range(per_thread):
            counter.observe(1)

    threads = [threading.Thread(target=work) for _ in range(threads_count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert counter.snapshot() == threads_count * per_thread


def test_gauge_keeps_last_value_after_snapshot():
    gauge = Gauge()
    gauge.observe(42)
    gauge.observe(17)
    assert gauge.snapshot() == 17
    assert gauge.snapshot() == 17


def test_minimum_tracks_smallest_and_resets():
    minimum = Minimum()
    for value in [8, 3, 5]:
        minimum.observe(value)
    assert minimum.snapshot() == 3
    assert minimum.snapshot() == 0
    minimum.observe(11)
    assert minimum.snapshot() == 11


def test_maximum_tracks_largest_and_resets():
    maximum = Maximum()
    for value in [3, 7, 5]:
        maximum.observe(value)
    assert maximum.snapshot() == 7
    assert maximum.snapshot() == 0
    maximum.observe(2)
    assert maximum.snapshot() == 2


def test_minimum_starting_at_zero_stays_zero_until_snapshot():
    minimum = Minimum(0)
    minimum.observe(6)
    assert minimum.snapshot() == 0
    minimum.observe(6)
    assert minimum.snapshot() == 6


def test_summary_snapshot():
    summary = Summary()
    for value in [5, 5, 5]:
        summary.observe(value)
    assert summary.snapshot() == SummaryStats(avg=5, min=5, max=5)
    assert summary.snapshot() == SummaryStats(avg=0, min=0, max=0)


def test_summary_min_max_bounds_average():
    summary = Summary()
    values = [10, 1, 100, 37]
    for value in values:
        summary.observe(value)
    stats = summary.snapshot()
    assert stats.min == min(values)
    assert stats.max == max(values)
    assert stats.min <= stats.avg <= stats.max


def test_summary_duration_snapshot():
    summary = Summary()
    summary.observe_duration(timedelta(milliseconds=2))
    summary.observe_duration(timedelta(milliseconds=2))
    assert summary.snapshot_duration() == DurationStats(
        avg=timedelta(milliseconds=2),
        min=timedelta(milliseconds=2),
        max=timedelta(milliseconds=2),
    )


def test_summary_duration_empty_is_zero():
    summary = Summary()
    assert summary.snapshot_duration() == DurationStats()