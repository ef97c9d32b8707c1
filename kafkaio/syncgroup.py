"""SyncGroup request and response structures and member assignments."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import BinaryIO

from .wire import (
    Decoder,
    encode_bytes,
    encode_int16,
    encode_int32,
    encode_int32_array,
    encode_string,
)


def _sizeof_string(value: str) -> int:
    return 2 + len(value.encode("utf-8"))


def _sizeof_bytes(value: bytes | None) -> int:
    return 4 + (len(value) if value is not None else 0)


@dataclass
class GroupAssignment:
    """Partitions assigned to one group member, per topic."""

    version: int = 0
    topics: dict[str, list[int]] = field(default_factory=dict)
    user_data: bytes | None = None

    def size(self) -> int:
        total = 2 + 2
        for topic, partitions in self.topics.items():
            total += _sizeof_string(topic) + 4 + 4 * len(partitions)
        return total + _sizeof_bytes(self.user_data)

    def encode(self) -> bytes:
        parts = [encode_int16(self.version), encode_int32(len(self.topics))]
        for topic, partitions in self.topics.items():
            parts.append(encode_string(topic))
            parts.append(encode_int32_array(partitions))
        parts.append(encode_bytes(self.user_data))
        return b"".join(parts)

    @classmethod
    def read_from(cls, stream: BinaryIO, size: int) -> tuple[GroupAssignment, int]:
        """Decode an assignment; returns it with the unread byte budget.

        An empty payload, which some clients send, yields an empty assignment.
        """
        if size == 0:
            return cls(topics={}), 0
        decoder = Decoder(stream, size)
        version = decoder.read_int16()
        topics = decoder.read_string_int32_map()
        user_data = decoder.read_bytes()
        return cls(version=version, topics=topics, user_data=user_data), decoder.remain


@dataclass
class SyncGroupRequestAssignment:
    """An encoded assignment the group leader hands to one member."""

    member_id: str
    member_assignments: bytes | None = None

    def size(self) -> int:
        return _sizeof_string(self.member_id) + _sizeof_bytes(self.member_assignments)

    def encode(self) -> bytes:
        return encode_string(self.member_id) + encode_bytes(self.member_assignments)


@dataclass
class SyncGroupRequest:
    """SyncGroup request, version 0."""

    group_id: str
    generation_id: int
    member_id: str
    group_assignments: list[SyncGroupRequestAssignment] = field(default_factory=list)

    def size(self) -> int:
        return (
            _sizeof_string(self.group_id)
            + 4
            + _sizeof_string(self.member_id)
            + 4
            + sum(a.size() for a in self.group_assignments)
        )

    def encode(self) -> bytes:
        return b"".join(
            (
                encode_string(self.group_id),
                encode_int32(self.generation_id),
                encode_string(self.member_id),
                encode_int32(len(self.group_assignments)),
                *(a.encode() for a in self.group_assignments),
            )
        )


@dataclass
class SyncGroupResponse:
    """SyncGroup response, version 0."""

    error_code: int = 0
    member_assignments: bytes | None = None

    def size(self) -> int:
        return 2 + _sizeof_bytes(self.member_assignments)

    def encode(self) -> bytes:
        return encode_int16(self.error_code) + encode_bytes(self.member_assignments)

    @classmethod
    def read_from(cls, stream: BinaryIO, size: int) -> tuple[SyncGroupResponse, int]:
        decoder = Decoder(stream, size)
        error_code = decoder.read_int16()
        member_assignments = decoder.read_bytes()
        return cls(error_code=error_code, member_assignments=member_assignments), decoder.remain