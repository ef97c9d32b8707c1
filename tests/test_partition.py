import logging
import queue
import threading
from datetime import timedelta

import pytest

from kafkaio.partition import (
    PartitionSettings,
    PartitionWriter,
    WriterCounters,
    WriterError,
    WriterMessage,
    shuffled_strings,
)
from kafkaio.records import Message

FOREVER = timedelta(seconds=2**31 - 1)


class FakeConnection:
    def __init__(self, fail):
        self.fail = fail
        self.batches = []
        self.required_acks = None
        self.deadline = None
        self.closed = False

    def set_required_acks(self, acks):
        self.required_acks = acks

    def set_write_deadline(self, deadline):
        self.deadline = deadline

    def write_compressed_messages(self, codec, messages):
        if self.fail:
            raise OSError("broken pipe")
        self.batches.append(list(messages))

    def close(self):
        self.closed = True


class FakeDialer:
    def __init__(self, error=None, failing_connections=0):
        self.error = error
        self.failing_connections = failing_connections
        self.dialed = []
        self.connections = []
        self._lock = threading.Lock()

    def dial_leader(self, broker, topic, partition):
        with self._lock:
            self.dialed.append((broker, topic, partition))
            if self.error is not None:
                raise self.error
            conn = FakeConnection(fail=len(self.connections) < self.failing_connections)
            self.connections.append(conn)
            return conn


def make_writer(dialer, **overrides):
    settings = PartitionSettings(
        brokers=overrides.pop("brokers", ["broker1"]),
        topic="topic",
        partition=0,
        dialer=dialer,
        **overrides,
    )
    return PartitionWriter(settings, WriterCounters())


def send(writer, value):
    result = queue.Queue()
    message = Message(value=value)
    writer.submit(WriterMessage(message, result))
    return message, result


def test_batch_size_triggers_single_write():
    dialer = FakeDialer()
    writer = make_writer(dialer, batch_size=2, batch_timeout=FOREVER)
    try:
        m1, r1 = send(writer, b"Hi")
        m2, r2 = send(writer, b"By")
        assert r1.get(timeout=5) is None
        assert r2.get(timeout=5) is None
        assert dialer.connections[0].batches == [[m1, m2]]
        assert writer.counters.writes.snapshot() == 1
        assert writer.counters.messages.snapshot() == 2
    finally:
        writer.close()


def test_batch_bytes_limit_reached_exactly_writes_once():
    dialer = FakeDialer()
    writer = make_writer(dialer, max_message_bytes=48, batch_timeout=FOREVER)
    try:
        m1, r1 = send(writer, b"Hi")  # 24 bytes
        m2, r2 = send(writer, b"By")  # 24 bytes
        assert r1.get(timeout=5) is None
        assert r2.get(timeout=5) is None
        assert dialer.connections[0].batches == [[m1, m2]]
        assert writer.counters.writes.snapshot() == 1
    finally:
        writer.close()


def test_small_batch_bytes_splits_into_two_writes():
    dialer = FakeDialer()
    writer = make_writer(
        dialer, max_message_bytes=25, batch_timeout=timedelta(milliseconds=50)
    )
    try:
        m1, r1 = send(writer, b"Hi")
        m2, r2 = send(writer, b"By")
        assert r1.get(timeout=5) is None
        assert r2.get(timeout=5) is None
        assert dialer.connections[0].batches == [[m1], [m2]]
        assert writer.counters.writes.snapshot() == 2
    finally:
        writer.close()


def test_batch_timeout_flushes_partial_batch():
    dialer = FakeDialer()
    writer = make_writer(dialer, batch_timeout=timedelta(milliseconds=20))
    try:
        message, result = send(writer, b"Hello World!")
        assert result.get(timeout=5) is None
        assert dialer.connections[0].batches == [[message]]
        assert writer.counters.bytes.snapshot() == len(b"Hello World!")
    finally:
        writer.close()


def test_close_flushes_buffered_messages():
    dialer = FakeDialer()
    writer = make_writer(dialer, batch_timeout=FOREVER)
    messages = [Message(value=bytes([i + 1])) for i in range(3)]
    for message in messages:
        writer.submit(WriterMessage(message))
    writer.close()
    assert dialer.connections[0].batches == [messages]
    assert dialer.connections[0].closed


def test_required_acks_set_on_dialed_connection():
    dialer = FakeDialer()
    writer = make_writer(dialer, batch_size=1, required_acks=-1)
    try:
        _, result = send(writer, b"x")
        assert result.get(timeout=5) is None
        assert dialer.connections[0].required_acks == -1
        assert dialer.dialed == [("broker1", "topic", 0)]
    finally:
        writer.close()


def test_dial_failure_reports_writer_error_for_every_message():
    brokers = ["broker1", "broker2", "broker3"]
    cause = ConnectionRefusedError("refused")
    dialer = FakeDialer(error=cause)
    writer = make_writer(dialer, brokers=brokers, batch_size=2, batch_timeout=FOREVER)
    try:
        m1, r1 = send(writer, b"a")
        m2, r2 = send(writer, b"b")
        e1 = r1.get(timeout=5)
        e2 = r2.get(timeout=5)
        assert isinstance(e1, WriterError) and e1.message is m1 and e1.cause is cause
        assert isinstance(e2, WriterError) and e2.message is m2
        assert str(e1) == str(cause)
        assert sorted(b for b, _, _ in dialer.dialed) == brokers
        assert writer.counters.errors.snapshot() == 1
    finally:
        writer.close()


def test_write_failure_closes_connection_and_redials():
    dialer = FakeDialer(failing_connections=1)
    writer = make_writer(dialer, batch_size=1)
    try:
        m1, r1 = send(writer, b"first")
        error = r1.get(timeout=5)
        assert isinstance(error, WriterError)
        assert isinstance(error.cause, OSError)
        assert dialer.connections[0].closed
        m2, r2 = send(writer, b"second")
        assert r2.get(timeout=5) is None
        assert len(dialer.dialed) == 2
        assert dialer.connections[1].batches == [[m2]]
    finally:
        writer.close()


def test_errors_are_logged_to_error_logger(caplog):
    caplog.set_level(logging.ERROR)
    dialer = FakeDialer(error=ConnectionRefusedError("refused"))
    writer = make_writer(
        dialer, batch_size=1, error_logger=logging.getLogger("kafkaio.tests.errors")
    )
    try:
        _, result = send(writer, b"x")
        assert isinstance(result.get(timeout=5), WriterError)
    finally:
        writer.close()
    assert any(
        "error dialing kafka brokers for topic topic" in record.getMessage()
        for record in caplog.records
    )


def test_submit_after_close_raises():
    writer = make_writer(FakeDialer())
    writer.close()
    with pytest.raises(RuntimeError):
        writer.submit(WriterMessage(Message(value=b"late")))


def test_shuffled_strings_is_a_permutation_copy():
    items = ["a", "b", "c", "d", "e"]
    shuffled = shuffled_strings(items)
    assert sorted(shuffled) == items
    assert items == ["a", "b", "c", "d", "e"]
    shuffled.append("z")
    assert "z" not in items


def test_writer_error_keeps_message_and_cause():
    cause = TimeoutError("timed out")
    message = Message(value=b"v")
    error = WriterError(message, cause)
    assert error.message is message
    assert error.cause is cause
    assert error.__cause__ is cause
    assert str(error) == "timed out"