"""Big-endian primitives of the Kafka wire protocol."""

from __future__ import annotations

from typing import BinaryIO, Callable, Iterable

_UINT64_MASK = (1 << 64) - 1


class ShortReadError(EOFError):
    """Raised when a read needs more bytes than are available."""


def _fixed(value: int, size: int) -> bytes:
    return (int(value) & ((1 << (8 * size)) - 1)).to_bytes(size, "big")


def _to_int64(value: int) -> int:
    value &= _UINT64_MASK
    return value - (1 << 64) if value >= 1 << 63 else value


def encode_int8(value: int) -> bytes:
    return _fixed(value, 1)


def encode_int16(value: int) -> bytes:
    return _fixed(value, 2)


def encode_int32(value: int) -> bytes:
    return _fixed(value, 4)


def encode_int64(value: int) -> bytes:
    return _fixed(value, 8)


def encode_varint(value: int) -> bytes:
    """Zig-zag encoded variable-length signed 64-bit integer."""
    value = _to_int64(value)
    zigzag = ((value << 1) ^ (value >> 63)) & _UINT64_MASK
    out = bytearray()
    while zigzag & 0x7F != zigzag:
        out.append((zigzag & 0x7F) | 0x80)
        zigzag >>= 7
    out.append(zigzag)
    return bytes(out)


def varint_len(value: int) -> int:
    return len(encode_varint(value))


def encode_string(value: str) -> bytes:
    data = value.encode("utf-8")
    return encode_int16(len(data)) + data


def encode_nullable_string(value: str | None) -> bytes:
    if value is None:
        return encode_int16(-1)
    return encode_string(value)


def encode_bytes(value: bytes | None) -> bytes:
    if value is None:
        return encode_int32(-1)
    data = bytes(value)
    return encode_int32(len(data)) + data


def encode_bool(value: bool) -> bytes:
    return encode_int8(1 if value else 0)


def encode_array(items: Iterable, encode_item: Callable[[object], bytes]) -> bytes:
    parts = [encode_item(item) for item in items]
    return encode_int32(len(parts)) + b"".join(parts)


def encode_string_array(items: Iterable[str]) -> bytes:
    return encode_array(items, encode_string)


def encode_int32_array(items: Iterable[int]) -> bytes:
    return encode_array(items, encode_int32)


def encode(value: object) -> bytes:
    """Encode a bool, str, bytes-like value or object with an ``encode()`` method.

    Bare integers are rejected because their wire width is not known; use
    one of the fixed-width ``encode_int*`` functions for them.
    """
    if isinstance(value, bool):
        return encode_bool(value)
    if isinstance(value, str):
        return encode_string(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return encode_bytes(bytes(value))
    if isinstance(value, int):
        raise TypeError("unsupported type: int (width is ambiguous)")
    method = getattr(value, "encode", None)
    if callable(method):
        return bytes(method())
    raise TypeError(f"unsupported type: {type(value).__name__}")


class Decoder:
    """Reads protocol values from a binary stream within a byte budget.

    ``remain`` holds how many bytes of the budget are left.
    """

    def __init__(self, stream: BinaryIO, size: int) -> None:
        self._stream = stream
        self.remain = size

    def _take(self, count: int) -> bytes:
        if count > self.remain:
            raise ShortReadError(
                f"need {count} bytes but only {self.remain} remain"
            )
        data = self._stream.read(count)
        if len(data) != count:
            raise ShortReadError(f"stream ended after {len(data)} of {count} bytes")
        self.remain -= count
        return data

    def _signed(self, count: int) -> int:
        return int.from_bytes(self._take(count), "big", signed=True)

    def read_int16(self) -> int:
        return self._signed(2)

    def read_int32(self) -> int:
        return self._signed(4)

    def read_int64(self) -> int:
        return self._signed(8)

    def read_string(self) -> str:
        length = self.read_int16()
        if length < 0:
            return ""
        return self._take(length).decode("utf-8")

    def read_bytes(self) -> bytes | None:
        length = self.read_int32()
        if length < 0:
            return None
        return self._take(length)

    def read_int32_array(self) -> list[int]:
        count = self.read_int32()
        return [self.read_int32() for _ in range(max(count, 0))]

    def read_string_int32_map(self) -> dict[str, list[int]]:
        count = self.read_int32()
        result: dict[str, list[int]] = {}
        for _ in range(max(count, 0)):
            key = self.read_string()
            result[key] = self.read_int32_array()
        return result