"""Zstandard compression codec for Kafka messages."""

from __future__ import annotations

from dataclasses import dataclass

import zstandard

CODE = 4
DEFAULT_COMPRESSION_LEVEL = 5


@dataclass(frozen=True)
class ZstdCodec:
    """Compresses message payloads with Zstandard."""

    compression_level: int = DEFAULT_COMPRESSION_LEVEL

    def code(self) -> int:
        return CODE

    def encode(self, data: bytes) -> bytes:
        compressor = zstandard.ZstdCompressor(level=self.compression_level)
        return compressor.compress(bytes(data))

    def decode(self, data: bytes) -> bytes:
        decompressor = zstandard.ZstdDecompressor().decompressobj()
        return decompressor.decompress(bytes(data))