"""Encoders for the fetch, list-offsets and produce requests of the protocol."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import IntEnum
from typing import Sequence

from .records import (
    COMPRESSION_NONE,
    CompressionCodec,
    Message,
    compress,
    encode_message,
    encode_record,
    encode_record_batch,
    record_batch_header_size,
    record_batch_size,
)
from .timeutil import milliseconds
from .wire import (
    encode_int8,
    encode_int16,
    encode_int32,
    encode_int64,
    encode_nullable_string,
    encode_string,
)


class ApiKey(IntEnum):
    """Numeric identifiers of the request types."""

    PRODUCE = 0
    FETCH = 1
    LIST_OFFSETS = 2


@dataclass
class RequestHeader:
    """The header that precedes every request.

    ``length`` is the number of bytes that follow the length field itself.
    """

    api_key: int
    api_version: int
    correlation_id: int
    client_id: str
    length: int = 0

    def size(self) -> int:
        return 4 + 2 + 2 + 4 + 2 + len(self.client_id.encode("utf-8"))

    def encode(self) -> bytes:
        return b"".join(
            (
                encode_int32(self.length),
                encode_int16(self.api_key),
                encode_int16(self.api_version),
                encode_int32(self.correlation_id),
                encode_string(self.client_id),
            )
        )


def _frame(
    api_key: ApiKey, version: int, correlation_id: int, client_id: str, body: bytes
) -> bytes:
    header = RequestHeader(api_key, version, correlation_id, client_id)
    header.length = header.size() - 4 + len(body)
    return header.encode() + body


def _single_partition(topic: str, partition: int) -> bytes:
    return b"".join(
        (
            encode_int32(1),  # topic array length
            encode_string(topic),
            encode_int32(1),  # partition array length
            encode_int32(partition),
        )
    )


def fetch_request_v2(
    correlation_id: int,
    client_id: str,
    topic: str,
    partition: int,
    offset: int,
    min_bytes: int,
    max_bytes: int,
    max_wait: timedelta,
) -> bytes:
    """A version 2 fetch request for a single topic partition."""
    body = b"".join(
        (
            encode_int32(-1),  # replica id
            encode_int32(milliseconds(max_wait)),
            encode_int32(min_bytes),
            _single_partition(topic, partition),
            encode_int64(offset),
            encode_int32(max_bytes),
        )
    )
    return _frame(ApiKey.FETCH, 2, correlation_id, client_id, body)


def fetch_request_v5(
    correlation_id: int,
    client_id: str,
    topic: str,
    partition: int,
    offset: int,
    min_bytes: int,
    max_bytes: int,
    max_wait: timedelta,
    isolation_level: int,
) -> bytes:
    """A version 5 fetch request for a single topic partition."""
    body = b"".join(
        (
            encode_int32(-1),  # replica id
            encode_int32(milliseconds(max_wait)),
            encode_int32(min_bytes),
            encode_int32(max_bytes),
            encode_int8(isolation_level),
            _single_partition(topic, partition),
            encode_int64(offset),
            encode_int64(0),  # log start offset, only sent by followers
            encode_int32(max_bytes),
        )
    )
    return _frame(ApiKey.FETCH, 5, correlation_id, client_id, body)


def fetch_request_v10(
    correlation_id: int,
    client_id: str,
    topic: str,
    partition: int,
    offset: int,
    min_bytes: int,
    max_bytes: int,
    max_wait: timedelta,
    isolation_level: int,
) -> bytes:
    """A version 10 fetch request for a single topic partition, without sessions."""
    body = b"".join(
        (
            encode_int32(-1),  # replica id
            encode_int32(milliseconds(max_wait)),
            encode_int32(min_bytes),
            encode_int32(max_bytes),
            encode_int8(isolation_level),
            encode_int32(0),  # session id
            encode_int32(-1),  # session epoch
            encode_int32(1),  # topic array length
            encode_string(topic),
            encode_int32(1),  # partition array length
            encode_int32(partition),
            encode_int32(-1),  # current leader epoch
            encode_int64(offset),
            encode_int64(0),  # log start offset, only sent by followers
            encode_int32(max_bytes),
            encode_int32(0),  # forgotten topics
        )
    )
    return _frame(ApiKey.FETCH, 10, correlation_id, client_id, body)


def list_offset_request_v1(
    correlation_id: int, client_id: str, topic: str, partition: int, time: int
) -> bytes:
    """A version 1 list-offsets request for a single topic partition."""
    body = b"".join(
        (
            encode_int32(-1),  # replica id
            _single_partition(topic, partition),
            encode_int64(time),
        )
    )
    return _frame(ApiKey.LIST_OFFSETS, 1, correlation_id, client_id, body)


def produce_request_v2(
    codec: CompressionCodec | None,
    correlation_id: int,
    client_id: str,
    topic: str,
    partition: int,
    timeout: timedelta,
    required_acks: int,
    *args: Message,
) -> bytes:
    """A version 2 produce request carrying a legacy message set."""
    messages: list[Message] = list(args)
    attributes = COMPRESSION_NONE
    if codec is not None:
        messages = compress(codec, messages)
        attributes = codec.code()
    message_set = b"".join(
        encode_message(m.offset, attributes, m.time, m.key, m.value) for m in messages
    )
    body = b"".join(
        (
            encode_int16(required_acks),
            encode_int32(milliseconds(timeout)),
            _single_partition(topic, partition),
            encode_int32(len(message_set)),
            message_set,
        )
    )
    return _frame(ApiKey.PRODUCE, 2, correlation_id, client_id, body)


def _record_batch(codec: CompressionCodec | None, messages: Sequence[Message]) -> bytes:
    if not messages:
        raise ValueError("a produce request needs at least one message")
    base_time = messages[0].time
    records = b"".join(
        encode_record(0, base_time, index, message)
        for index, message in enumerate(messages)
    )
    if codec is not None:
        payload = codec.encode(records)
        attributes = codec.code()
        size = record_batch_header_size() + len(payload)
    else:
        payload = records
        attributes = COMPRESSION_NONE
        size = record_batch_size(messages)
    return encode_record_batch(attributes, size, payload, messages)


def _produce_with_records(
    version: int,
    codec: CompressionCodec | None,
    correlation_id: int,
    client_id: str,
    topic: str,
    partition: int,
    timeout: timedelta,
    required_acks: int,
    transactional_id: str | None,
    messages: Sequence[Message],
) -> bytes:
    batch = _record_batch(codec, messages)
    body = b"".join(
        (
            encode_nullable_string(transactional_id),
            encode_int16(required_acks),
            encode_int32(milliseconds(timeout)),
            _single_partition(topic, partition),
            encode_int32(len(batch)),
            batch,
        )
    )
    return _frame(ApiKey.PRODUCE, version, correlation_id, client_id, body)


def produce_request_v3(
    codec: CompressionCodec | None,
    correlation_id: int,
    client_id: str,
    topic: str,
    partition: int,
    timeout: timedelta,
    required_acks: int,
    transactional_id: str | None,
    *args: Message,
) -> bytes:
    """A version 3 produce request carrying a v2 record batch."""
    return _produce_with_records(
        3, codec, correlation_id, client_id, topic, partition,
        timeout, required_acks, transactional_id, args,
    )


def produce_request_v7(
    codec: CompressionCodec | None,
    correlation_id: int,
    client_id: str,
    topic: str,
    partition: int,
    timeout: timedelta,
    required_acks: int,
    transactional_id: str | None,
    *args: Message,
) -> bytes:
    """A version 7 produce request carrying a v2 record batch."""
    return _produce_with_records(
        7, codec, correlation_id, client_id, topic, partition,
        timeout, required_acks, transactional_id, args,
    )