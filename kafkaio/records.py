"""Messages, legacy message sets and v2 record batches."""

from __future__ import annotations

import zlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Protocol, Sequence, runtime_checkable

from .timeutil import milliseconds, timestamp
from .wire import (
    encode_bytes,
    encode_int8,
    encode_int16,
    encode_int32,
    encode_int64,
    encode_varint,
    varint_len,
)

COMPRESSION_NONE = 0
MAGIC_BYTE = 1
RECORD_BATCH_MAGIC = 2

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_CASTAGNOLI = 0x82F63B78


@dataclass
class Header:
    """A key/value pair attached to a message."""

    key: str
    value: bytes | None = None


@dataclass
class Message:
    """A message to be produced to a topic partition."""

    key: bytes | None = None
    value: bytes | None = None
    offset: int = 0
    time: datetime | None = None
    headers: list[Header] = field(default_factory=list)


@runtime_checkable
class CompressionCodec(Protocol):
    """A compression scheme that Kafka identifies by a numeric code."""

    def code(self) -> int: ...

    def encode(self, data: bytes) -> bytes: ...

    def decode(self, data: bytes) -> bytes: ...


def _make_crc32c_table() -> tuple[int, ...]:
    table = []
    for n in range(256):
        crc = n
        for _ in range(8):
            crc = (crc >> 1) ^ _CASTAGNOLI if crc & 1 else crc >> 1
        table.append(crc)
    return tuple(table)


_CRC32C_TABLE = _make_crc32c_table()


def crc32c(data: bytes) -> int:
    """CRC-32 with the Castagnoli polynomial, as used by record batches."""
    crc = 0xFFFFFFFF
    for byte in data:
        crc = _CRC32C_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF


def _sizeof_bytes(data: bytes | None) -> int:
    return 4 + (len(data) if data is not None else 0)


def _normalize(moment: datetime | None) -> datetime:
    if moment is None:
        return _ZERO_TIME
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _time_delta(moment: datetime | None, base: datetime | None) -> timedelta:
    return _normalize(moment) - _normalize(base)


def message_crc32(
    magic: int, attributes: int, timestamp: int, key: bytes | None, value: bytes | None
) -> int:
    """IEEE CRC-32 over the checksummed part of a legacy message."""
    body = encode_int8(magic) + encode_int8(attributes)
    if magic != 0:
        body += encode_int64(timestamp)
    body += encode_bytes(key) + encode_bytes(value)
    return zlib.crc32(body) & 0xFFFFFFFF


def msg_size(key: bytes | None, value: bytes | None) -> int:
    """Size of a legacy message without its offset and size prefix."""
    return 4 + 1 + 1 + 8 + _sizeof_bytes(key) + _sizeof_bytes(value)


def encode_message(
    offset: int,
    attributes: int,
    moment: datetime | None,
    key: bytes | None,
    value: bytes | None,
) -> bytes:
    """Encode one entry of a legacy (magic 1) message set."""
    ts = timestamp(moment)
    checksum = message_crc32(MAGIC_BYTE, attributes, ts, key, value)
    return b"".join(
        (
            encode_int64(offset),
            encode_int32(msg_size(key, value)),
            encode_int32(checksum),
            encode_int8(MAGIC_BYTE),
            encode_int8(attributes),
            encode_int64(ts),
            encode_bytes(key),
            encode_bytes(value),
        )
    )


def message_set_size(messages: Iterable[Message]) -> int:
    return sum(8 + 4 + msg_size(m.key, m.value) for m in messages)


def record_size(message: Message, timestamp_delta: timedelta, offset_delta: int) -> int:
    """Size of a v2 record without its leading length varint."""
    key = message.key or b""
    value = message.value or b""
    size = (
        1
        + varint_len(milliseconds(timestamp_delta))
        + varint_len(offset_delta)
        + varint_len(len(key))
        + len(key)
        + varint_len(len(value))
        + len(value)
        + varint_len(len(message.headers))
    )
    for header in message.headers:
        hkey = header.key.encode("utf-8")
        hvalue = header.value or b""
        size += varint_len(len(hkey)) + len(hkey) + varint_len(len(hvalue)) + len(hvalue)
    return size


def record_batch_header_size() -> int:
    return (
        8  # base offset
        + 4  # batch length
        + 4  # partition leader epoch
        + 1  # magic
        + 4  # crc
        + 2  # attributes
        + 4  # last offset delta
        + 8  # first timestamp
        + 8  # max timestamp
        + 8  # producer id
        + 2  # producer epoch
        + 4  # base sequence
        + 4  # record count
    )


def _require_messages(messages: Sequence[Message]) -> None:
    if not messages:
        raise ValueError("a record batch needs at least one message")


def record_batch_size(messages: Sequence[Message]) -> int:
    """Total size of an uncompressed record batch holding ``messages``."""
    _require_messages(messages)
    base_time = messages[0].time
    size = record_batch_header_size()
    for index, message in enumerate(messages):
        sz = record_size(message, _time_delta(message.time, base_time), index)
        size += sz + varint_len(sz)
    return size


def encode_record(
    attributes: int, base_time: datetime | None, offset: int, message: Message
) -> bytes:
    """Encode a message as a v2 record relative to ``base_time`` and offset 0."""
    delta = _time_delta(message.time, base_time)
    key = message.key or b""
    value = message.value or b""
    parts = [
        encode_varint(record_size(message, delta, offset)),
        encode_int8(attributes),
        encode_varint(milliseconds(delta)),
        encode_varint(offset),
        encode_varint(len(key)),
        key,
        encode_varint(len(value)),
        value,
        encode_varint(len(message.headers)),
    ]
    for header in message.headers:
        hkey = header.key.encode("utf-8")
        hvalue = header.value or b""
        parts.extend((encode_varint(len(hkey)), hkey, encode_varint(len(hvalue)), hvalue))
    return b"".join(parts)


def encode_record_batch(
    attributes: int, size: int, records: bytes, messages: Sequence[Message]
) -> bytes:
    """Wrap encoded (possibly compressed) records in a v2 batch header."""
    _require_messages(messages)
    base_time = messages[0].time
    last_time = messages[-1].time
    body = b"".join(
        (
            encode_int16(attributes),
            encode_int32(len(messages) - 1),
            encode_int64(timestamp(base_time)),
            encode_int64(timestamp(last_time)),
            encode_int64(-1),  # producer id
            encode_int16(-1),  # producer epoch
            encode_int32(-1),  # base sequence
            encode_int32(len(messages)),
            bytes(records),
        )
    )
    return b"".join(
        (
            encode_int64(0),
            encode_int32(size - 12),
            encode_int32(-1),  # partition leader epoch
            encode_int8(RECORD_BATCH_MAGIC),
            encode_int32(crc32c(body)),
            body,
        )
    )


def compress(codec: CompressionCodec, messages: Iterable[Message]) -> list[Message]:
    """Pack messages into a legacy message set and compress it into one message."""
    payload = b"".join(
        encode_message(offset, COMPRESSION_NONE, m.time, m.key, m.value)
        for offset, m in enumerate(messages)
    )
    return [Message(value=codec.encode(payload))]