"""Per-partition producer that batches messages and writes them to the leader."""

from __future__ import annotations

import logging
import queue
import random
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Protocol, Sequence

from .records import CompressionCodec, Message, msg_size
from .stats import Counter, Summary


class _Connection(Protocol):
    def set_required_acks(self, acks: int) -> None: ...

    def set_write_deadline(self, deadline: datetime) -> None: ...

    def write_compressed_messages(
        self, codec: CompressionCodec | None, messages: Sequence[Message]
    ) -> object: ...

    def close(self) -> None: ...


class _Dialer(Protocol):
    def dial_leader(self, broker: str, topic: str, partition: int) -> _Connection: ...


@dataclass
class WriterMessage:
    """A message queued for writing, with an optional queue for its outcome.

    The outcome is ``None`` on success or a :class:`WriterError`.
    """

    message: Message
    result: queue.Queue | None = None


class WriterError(Exception):
    """Failure to deliver one message; ``cause`` holds the underlying error."""

    def __init__(self, message: Message, cause: BaseException) -> None:
        super().__init__(str(cause))
        self.message = message
        self.cause = cause
        self.__cause__ = cause


@dataclass
class WriterCounters:
    """Statistics shared by a writer and its partition writers."""

    dials: Counter = field(default_factory=Counter)
    writes: Counter = field(default_factory=Counter)
    messages: Counter = field(default_factory=Counter)
    bytes: Counter = field(default_factory=Counter)
    rebalances: Counter = field(default_factory=Counter)
    errors: Counter = field(default_factory=Counter)
    dial_time: Summary = field(default_factory=Summary)
    write_time: Summary = field(default_factory=Summary)
    wait_time: Summary = field(default_factory=Summary)
    retries: Summary = field(default_factory=Summary)
    batch_size: Summary = field(default_factory=lambda: Summary(0))
    batch_size_bytes: Summary = field(default_factory=lambda: Summary(0))


@dataclass
class PartitionSettings:
    """Configuration of a single partition writer."""

    brokers: list[str]
    topic: str
    partition: int
    dialer: _Dialer
    required_acks: int = 0
    batch_size: int = 100
    max_message_bytes: int = 1048576
    batch_timeout: timedelta = timedelta(seconds=1)
    write_timeout: timedelta = timedelta(seconds=10)
    queue_capacity: int = 100
    codec: CompressionCodec | None = None
    logger: logging.Logger | None = None
    error_logger: logging.Logger | None = None


_CLOSE = object()

_shuffler = random.Random()
_shuffler_lock = threading.Lock()


def shuffled_strings(items: Iterable[str]) -> list[str]:
    """A shuffled copy of ``items``."""
    result = list(items)
    with _shuffler_lock:
        _shuffler.shuffle(result)
    return result


def _message_size(item: WriterMessage) -> int:
    return msg_size(item.message.key, item.message.value)


def _elapsed(start: float) -> timedelta:
    return timedelta(seconds=time.monotonic() - start)


class PartitionWriter:
    """Batches messages for one partition on a background thread.

    A batch is written when it holds ``batch_size`` messages, when it
    reaches ``max_message_bytes``, when ``batch_timeout`` has passed since
    its first message, or when the writer is closed.
    """

    def __init__(
        self, settings: PartitionSettings, counters: WriterCounters | None = None
    ) -> None:
        self.settings = settings
        self.counters = counters if counters is not None else WriterCounters()
        self._queue: queue.Queue = queue.Queue(maxsize=max(settings.queue_capacity, 1))
        self._lock = threading.Lock()
        self._closed = False
        self._thread = threading.Thread(
            target=self._run,
            name=f"kafka-partition-{settings.partition}",
            daemon=True,
        )
        self._thread.start()

    def submit(self, item: WriterMessage) -> None:
        """Queue a message, blocking while the queue is full."""
        with self._lock:
            if self._closed:
                raise RuntimeError("partition writer is closed")
            self._queue.put(item)

    def close(self) -> None:
        """Flush what is buffered and stop the background thread."""
        with self._lock:
            if not self._closed:
                self._closed = True
                self._queue.put(_CLOSE)
        self._thread.join()

    def _run(self) -> None:
        settings = self.settings
        timeout_seconds = settings.batch_timeout.total_seconds()
        conn: _Connection | None = None
        batch: list[WriterMessage] = []
        batch_bytes = 0
        pending: WriterMessage | None = None
        deadline: float | None = None
        done = False

        try:
            while not done:
                must_flush = False
                if pending is not None:
                    batch.append(pending)
                    batch_bytes += _message_size(pending)
                    pending = None
                    if deadline is None:
                        deadline = time.monotonic() + timeout_seconds

                wait = None
                if deadline is not None:
                    wait = min(max(0.0, deadline - time.monotonic()), threading.TIMEOUT_MAX)

                try:
                    item = self._queue.get(timeout=wait)
                except queue.Empty:
                    must_flush = True
                    deadline = None
                else:
                    if item is _CLOSE:
                        done = must_flush = True
                    else:
                        size = _message_size(item)
                        if size + batch_bytes > settings.max_message_bytes:
                            # Keep the message for the next batch.
                            must_flush = True
                            pending = item
                        else:
                            batch.append(item)
                            batch_bytes += size
                            must_flush = (
                                len(batch) >= settings.batch_size
                                or batch_bytes >= settings.max_message_bytes
                            )
                    if deadline is None:
                        deadline = time.monotonic() + timeout_seconds

                if must_flush:
                    self.counters.batch_size_bytes.observe(batch_bytes)
                    deadline = None
                    if not batch:
                        continue
                    conn = self._write(conn, batch)
                    batch = []
                    batch_bytes = 0
        finally:
            if conn is not None:
                self._close_quietly(conn)

    def _log_error(self, fmt: str, *args: object) -> None:
        logger = self.settings.error_logger or self.settings.logger
        if logger is not None:
            logger.error(fmt, *args)

    def _dial(self) -> _Connection:
        settings = self.settings
        error: BaseException | None = None
        for broker in shuffled_strings(settings.brokers):
            start = time.monotonic()
            try:
                conn = settings.dialer.dial_leader(broker, settings.topic, settings.partition)
            except Exception as exc:
                error = exc
                continue
            self.counters.dials.observe(1)
            self.counters.dial_time.observe_duration(_elapsed(start))
            conn.set_required_acks(settings.required_acks)
            return conn
        if error is not None:
            raise error
        raise ConnectionError("no brokers to dial")

    @staticmethod
    def _fail(batch: Sequence[WriterMessage], exc: BaseException) -> None:
        for item in batch:
            if item.result is not None:
                item.result.put(WriterError(item.message, exc))

    @staticmethod
    def _close_quietly(conn: _Connection) -> None:
        try:
            conn.close()
        except Exception:
            pass

    def _write(
        self, conn: _Connection | None, batch: Sequence[WriterMessage]
    ) -> _Connection | None:
        settings = self.settings
        counters = self.counters
        counters.writes.observe(1)

        if conn is None:
            try:
                conn = self._dial()
            except Exception as exc:
                counters.errors.observe(1)
                self._log_error(
                    "error dialing kafka brokers for topic %s (partition %d): %s",
                    settings.topic, settings.partition, exc,
                )
                self._fail(batch, exc)
                return None

        start = time.monotonic()
        failed = False
        try:
            conn.set_write_deadline(datetime.now(timezone.utc) + settings.write_timeout)
            conn.write_compressed_messages(settings.codec, [item.message for item in batch])
        except Exception as exc:
            failed = True
            counters.errors.observe(1)
            self._log_error(
                "error writing messages to %s (partition %d): %s",
                settings.topic, settings.partition, exc,
            )
            self._fail(batch, exc)
        else:
            for item in batch:
                counters.messages.observe(1)
                counters.bytes.observe(
                    len(item.message.key or b"") + len(item.message.value or b"")
                )
            for item in batch:
                if item.result is not None:
                    item.result.put(None)

        counters.wait_time.observe_duration(_elapsed(start))
        counters.batch_size.observe(len(batch))

        if failed:
            self._close_quietly(conn)
            return None
        return conn