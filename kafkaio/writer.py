"""Producer that spreads messages over the partitions of one topic."""

from __future__ import annotations

import bisect
import dataclasses
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Protocol, Sequence

from .partition import (
    PartitionSettings,
    PartitionWriter,
    WriterCounters,
    WriterError,
    WriterMessage,
    shuffled_strings,
)
from .records import CompressionCodec, Message, msg_size
from .stats import DurationStats, SummaryStats

_CLOSE = object()


class _Partition(Protocol):
    id: int


class _MetadataConnection(Protocol):
    def set_read_deadline(self, deadline: datetime) -> None: ...

    def read_partitions(self, topic: str) -> Iterable[_Partition]: ...

    def close(self) -> None: ...


class _Balancer(Protocol):
    def balance(self, message: Message, partitions: Sequence[int]) -> int: ...


class _PartitionSink(Protocol):
    def submit(self, item: WriterMessage) -> None: ...

    def close(self) -> None: ...


class _RoundRobin:
    """Hands out partitions in turn."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._offset = 0

    def balance(self, message: Message, partitions: Sequence[int]) -> int:
        with self._lock:
            offset = self._offset
            self._offset += 1
        return partitions[offset % len(partitions)]


def _default_partition_writer(
    partition: int, config: WriterConfig, counters: WriterCounters
) -> PartitionWriter:
    settings = PartitionSettings(
        brokers=list(config.brokers),
        topic=config.topic,
        partition=partition,
        dialer=config.dialer,
        required_acks=config.required_acks,
        batch_size=config.batch_size,
        max_message_bytes=config.batch_bytes,
        batch_timeout=config.batch_timeout,
        write_timeout=config.write_timeout,
        queue_capacity=config.queue_capacity,
        codec=config.compression_codec,
        logger=config.logger,
        error_logger=config.error_logger,
    )
    return PartitionWriter(settings, counters)


@dataclass
class WriterConfig:
    """Settings of a :class:`Writer`; zero values select the defaults.

    ``dialer`` must provide ``dial(broker)`` for reading topic metadata and
    ``dial_leader(broker, topic, partition)`` for producing.
    """

    brokers: list[str] = field(default_factory=list)
    topic: str = ""
    dialer: object | None = None
    balancer: _Balancer | None = None
    max_attempts: int = 0
    queue_capacity: int = 0
    batch_size: int = 0
    batch_bytes: int = 0
    batch_timeout: timedelta = field(default_factory=timedelta)
    read_timeout: timedelta = field(default_factory=timedelta)
    write_timeout: timedelta = field(default_factory=timedelta)
    rebalance_interval: timedelta = field(default_factory=timedelta)
    required_acks: int = 0
    asynchronous: bool = False
    compression_codec: CompressionCodec | None = None
    logger: logging.Logger | None = None
    error_logger: logging.Logger | None = None
    new_partition_writer: (
        Callable[[int, "WriterConfig", WriterCounters], _PartitionSink] | None
    ) = None

    def validate(self) -> None:
        """Raise ``ValueError`` when a required field is missing."""
        if not self.brokers:
            raise ValueError("cannot create a kafka writer with an empty list of brokers")
        if not self.topic:
            raise ValueError("cannot create a kafka writer with an empty topic")


@dataclass(frozen=True)
class WriterStats:
    """Snapshot of a writer's behaviour since the previous snapshot."""

    dials: int
    writes: int
    messages: int
    bytes: int
    rebalances: int
    errors: int
    dial_time: DurationStats
    write_time: DurationStats
    wait_time: DurationStats
    retries: SummaryStats
    batch_size: SummaryStats
    batch_bytes: SummaryStats
    max_attempts: int
    max_batch_size: int
    batch_timeout: timedelta
    read_timeout: timedelta
    write_timeout: timedelta
    rebalance_interval: timedelta
    required_acks: int
    asynchronous: bool
    queue_length: int
    queue_capacity: int
    client_id: str
    topic: str


class MessageTooLargeError(Exception):
    """A message exceeds the configured batch byte limit.

    ``remaining`` holds the messages after it that were not queued.
    """

    def __init__(self, message: Message, remaining: Sequence[Message]) -> None:
        super().__init__("message is larger than the maximum batch size in bytes")
        self.message = message
        self.remaining = list(remaining)


def diff_partitions(new: Sequence[int], old: Sequence[int]) -> list[int]:
    """Partitions of ``new`` that are missing from the sorted ``old``."""
    diff = []
    for partition in new:
        index = bisect.bisect_left(old, partition)
        if index == len(old) or old[index] != partition:
            diff.append(partition)
    return diff


def _backoff(attempt: int, minimum: float, maximum: float) -> float:
    return min(attempt * attempt * minimum, maximum)


def _seconds(value: float | timedelta | None) -> float | None:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return value


def _with_defaults(config: WriterConfig) -> WriterConfig:
    return dataclasses.replace(
        config,
        balancer=config.balancer or _RoundRobin(),
        new_partition_writer=config.new_partition_writer or _default_partition_writer,
        max_attempts=config.max_attempts or 10,
        queue_capacity=config.queue_capacity or 100,
        batch_size=config.batch_size or 100,
        batch_bytes=config.batch_bytes or 1048576,
        batch_timeout=config.batch_timeout or timedelta(seconds=1),
        read_timeout=config.read_timeout or timedelta(seconds=10),
        write_timeout=config.write_timeout or timedelta(seconds=10),
        rebalance_interval=config.rebalance_interval or timedelta(seconds=15),
    )


class Writer:
    """Produces messages to one topic, balancing them across its partitions.

    Safe to use from several threads at once.
    """

    def __init__(self, config: WriterConfig) -> None:
        config.validate()
        if config.dialer is None:
            raise ValueError("cannot create a kafka writer without a dialer")
        self.config = _with_defaults(config)
        self._counters = WriterCounters()
        self._queue: queue.Queue = queue.Queue(maxsize=self.config.queue_capacity)
        self._lock = threading.Lock()
        self._closed = False
        self._done = threading.Event()
        self._closers: list[threading.Thread] = []
        self._closers_lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, name="kafka-writer", daemon=True)
        self._thread.start()

    def __enter__(self) -> Writer:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def write_messages(
        self, *args: Message, timeout: float | timedelta | None = None
    ) -> None:
        """Write messages, retrying failed ones up to ``max_attempts`` times.

        Unless the writer is asynchronous this blocks until every message
        has been written or the attempts are used up. ``timeout`` (seconds)
        bounds the whole call and raises ``TimeoutError`` when exceeded.
        """
        messages = list(args)
        if not messages:
            return

        limit = _seconds(timeout)
        deadline = None if limit is None else time.monotonic() + limit

        def remaining() -> float | None:
            return None if deadline is None else max(0.0, deadline - time.monotonic())

        config = self.config
        results: queue.Queue | None = None if config.asynchronous else queue.Queue()
        start = time.monotonic()
        error: BaseException | None = None

        for attempt in range(config.max_attempts):
            with self._lock:
                if self._closed:
                    raise BrokenPipeError("write on closed writer")
                for index, message in enumerate(messages):
                    if msg_size(message.key, message.value) > config.batch_bytes:
                        raise MessageTooLargeError(message, messages[index + 1:])
                    try:
                        self._queue.put(WriterMessage(message, results), timeout=remaining())
                    except queue.Full:
                        raise TimeoutError("timed out queueing messages") from None

            if results is None:
                break

            retry: list[Message] = []
            for _ in messages:
                try:
                    outcome = results.get(timeout=remaining())
                except queue.Empty:
                    raise TimeoutError("timed out waiting for messages to be written") from None
                if outcome is None:
                    continue
                if isinstance(outcome, WriterError):
                    self._counters.retries.observe(1)
                    retry.append(outcome.message)
                    error = outcome.cause
                else:
                    error = outcome

            messages = retry
            if not messages:
                break

            delay = _backoff(attempt + 1, 0.1, 1.0)
            left = remaining()
            wait = delay if left is None else min(delay, left)
            if self._done.wait(wait):
                error = BrokenPipeError("write on closed writer")
            elif left is not None and wait < delay:
                error = TimeoutError("timed out waiting to retry messages")
            elif attempt < config.max_attempts - 1:
                # Only clear the error while retries remain, to avoid hiding it.
                error = None
            if error is not None:
                break

        self._counters.write_time.observe_duration(
            timedelta(seconds=time.monotonic() - start)
        )
        if error is not None:
            raise error

    def stats(self) -> WriterStats:
        """Statistics since the last call, or since the writer was created."""
        counters = self._counters
        config = self.config
        return WriterStats(
            dials=counters.dials.snapshot(),
            writes=counters.writes.snapshot(),
            messages=counters.messages.snapshot(),
            bytes=counters.bytes.snapshot(),
            rebalances=counters.rebalances.snapshot(),
            errors=counters.errors.snapshot(),
            dial_time=counters.dial_time.snapshot_duration(),
            write_time=counters.write_time.snapshot_duration(),
            wait_time=counters.wait_time.snapshot_duration(),
            retries=counters.retries.snapshot(),
            batch_size=counters.batch_size.snapshot(),
            batch_bytes=counters.batch_size_bytes.snapshot(),
            max_attempts=config.max_attempts,
            max_batch_size=config.batch_size,
            batch_timeout=config.batch_timeout,
            read_timeout=config.read_timeout,
            write_timeout=config.write_timeout,
            rebalance_interval=config.rebalance_interval,
            required_acks=config.required_acks,
            asynchronous=config.asynchronous,
            queue_length=self._queue.qsize(),
            queue_capacity=self._queue.maxsize,
            client_id=getattr(config.dialer, "client_id", ""),
            topic=config.topic,
        )

    def close(self) -> None:
        """Flush buffered messages and stop; pending writes get ``BrokenPipeError``."""
        with self._lock:
            if not self._closed:
                self._closed = True
                self._done.set()
                self._queue.put(_CLOSE)
        self._thread.join()
        with self._closers_lock:
            closers = list(self._closers)
        for closer in closers:
            closer.join()

    def _close_partition(self, sink: _PartitionSink) -> None:
        closer = threading.Thread(target=sink.close, daemon=True)
        with self._closers_lock:
            self._closers.append(closer)
        closer.start()

    def _run(self) -> None:
        config = self.config
        interval = config.rebalance_interval.total_seconds()
        next_tick = time.monotonic() + interval
        rebalance = True
        writers: dict[int, _PartitionSink] = {}
        partitions: list[int] = []
        error: BaseException | None = None

        while True:
            if rebalance:
                self._counters.rebalances.observe(1)
                rebalance = False
                try:
                    new_partitions = self._partitions()
                except Exception as exc:
                    error = exc
                else:
                    error = None
                    for partition in diff_partitions(partitions, new_partitions):
                        self._close_partition(writers.pop(partition))
                    for partition in diff_partitions(new_partitions, partitions):
                        writers[partition] = config.new_partition_writer(
                            partition, config, self._counters
                        )
                    partitions = new_partitions

            wait = min(max(0.0, next_tick - time.monotonic()), threading.TIMEOUT_MAX)
            try:
                item = self._queue.get(timeout=wait)
            except queue.Empty:
                rebalance = True
                now = time.monotonic()
                next_tick += interval
                if next_tick <= now:
                    next_tick = now + interval
                continue

            if item is _CLOSE:
                for sink in writers.values():
                    self._close_partition(sink)
                return

            if partitions:
                selected = config.balancer.balance(item.message, partitions)
                writers[selected].submit(item)
            else:
                # The topic has no partitions, most likely because it does not exist.
                if error is None:
                    error = RuntimeError(
                        f"failed to find any partitions for topic {config.topic}"
                    )
                if item.result is not None:
                    item.result.put(WriterError(item.message, error))

    def _partitions(self) -> list[int]:
        config = self.config
        error: BaseException | None = None
        for broker in shuffled_strings(config.brokers):
            try:
                conn: _MetadataConnection = config.dialer.dial(broker)
            except Exception as exc:
                error = exc
                continue
            try:
                conn.set_read_deadline(datetime.now(timezone.utc) + config.read_timeout)
                found = conn.read_partitions(config.topic)
                return sorted(partition.id for partition in found)
            except Exception as exc:
                error = exc
            finally:
                conn.close()
        if error is not None:
            raise error
        return []