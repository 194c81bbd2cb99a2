from __future__ import annotations

import struct
from dataclasses import dataclass

from .constants import HEADER_FORMAT, MAX_PAYLOAD_SIZE, SEQ_MODULUS
from .errors import MalformedSegment

_HEADER = struct.Struct(HEADER_FORMAT)


def next_seq(seq: int) -> int:
    return (seq + 1) % SEQ_MODULUS


@dataclass(frozen=True, slots=True)
class Segment:
    """One data chunk or, with an empty payload, one acknowledgment.

    There is no kind tag on the wire: both peers agree that a zero-length
    payload means "ack", and the ack number travels in ``seq``.
    """

    seq: int
    payload: bytes = b""

    def __post_init__(self) -> None:
        if not 0 <= self.seq < SEQ_MODULUS:
            raise ValueError(f"sequence number out of range: {self.seq}")
        if len(self.payload) > MAX_PAYLOAD_SIZE:
            raise ValueError(f"payload too large: {len(self.payload)} > {MAX_PAYLOAD_SIZE}")

    @property
    def length(self) -> int:
        return len(self.payload)

    @property
    def is_ack(self) -> bool:
        return not self.payload

    def to_bytes(self) -> bytes:
        return _HEADER.pack(self.seq, len(self.payload)) + self.payload

    @staticmethod
    def from_bytes(raw: bytes) -> "Segment":
        if len(raw) < _HEADER.size:
            raise MalformedSegment(f"datagram too small to be a segment: {len(raw)} bytes")

        seq, length = _HEADER.unpack_from(raw)
        if length > MAX_PAYLOAD_SIZE:
            raise MalformedSegment(f"declared payload length {length} exceeds {MAX_PAYLOAD_SIZE}")

        payload = bytes(raw[_HEADER.size : _HEADER.size + length])
        if len(payload) != length:
            raise MalformedSegment(f"truncated payload: declared {length}, got {len(payload)}")

        return Segment(seq=seq, payload=payload)

    @staticmethod
    def ack(seq: int) -> "Segment":
        return Segment(seq=seq)


def encode(segment: Segment) -> bytes:
    return segment.to_bytes()


def decode(raw: bytes) -> Segment:
    return Segment.from_bytes(raw)
