from __future__ import annotations

import struct

import pytest

from swftp.constants import MAX_PAYLOAD_SIZE, MAX_SEGMENT_SIZE
from swftp.errors import MalformedSegment
from swftp.segment import Segment, decode, encode, next_seq


@pytest.mark.parametrize("seq", [0, 1, 4242, 2**31, 2**32 - 1])
@pytest.mark.parametrize("size", [0, 1, 700, MAX_PAYLOAD_SIZE])
def test_roundtrip(seq, size):
    seg = Segment(seq=seq, payload=bytes(i % 251 for i in range(size)))
    raw = encode(seg)
    assert len(raw) == 8 + size
    assert decode(raw) == seg


def test_wire_layout_is_big_endian_header_then_payload():
    raw = Segment(seq=0x01020304, payload=b"hi").to_bytes()
    assert raw == b"\x01\x02\x03\x04" + b"\x00\x00\x00\x02" + b"hi"


def test_ack_is_zero_length_segment():
    a = Segment.ack(7)
    assert a.is_ack
    assert a.to_bytes() == struct.pack("!II", 7, 0)
    p = decode(a.to_bytes())
    assert p.seq == 7
    assert p.payload == b""
    assert not Segment(seq=7, payload=b"x").is_ack


def test_full_segment_fits_max_segment_size():
    raw = Segment(seq=1, payload=b"z" * MAX_PAYLOAD_SIZE).to_bytes()
    assert len(raw) == MAX_SEGMENT_SIZE


def test_too_short():
    with pytest.raises(MalformedSegment):
        decode(b"\x00\x00\x00\x01\x00\x00")


def test_declared_length_exceeds_buffer():
    raw = struct.pack("!II", 3, 10) + b"short"
    with pytest.raises(MalformedSegment):
        decode(raw)


def test_declared_length_exceeds_max_payload():
    raw = struct.pack("!II", 3, MAX_PAYLOAD_SIZE + 1) + b"x" * (MAX_PAYLOAD_SIZE + 1)
    with pytest.raises(MalformedSegment):
        decode(raw)


def test_malformed_is_a_value_error():
    with pytest.raises(ValueError):
        decode(b"")


def test_trailing_bytes_are_ignored():
    raw = Segment(seq=9, payload=b"abc").to_bytes() + b"junk"
    assert decode(raw) == Segment(seq=9, payload=b"abc")


def test_constructor_rejects_oversized_payload():
    with pytest.raises(ValueError):
        Segment(seq=0, payload=b"x" * (MAX_PAYLOAD_SIZE + 1))


@pytest.mark.parametrize("seq", [-1, 2**32])
def test_constructor_rejects_out_of_range_seq(seq):
    with pytest.raises(ValueError):
        Segment(seq=seq)


def test_next_seq_wraps():
    assert next_seq(5) == 6
    assert next_seq(2**32 - 1) == 0
