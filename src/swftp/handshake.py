from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import BinaryIO

from .errors import HandshakeError

NAME_LEN_FORMAT = "!H"
REQUEST_TAIL_FORMAT = "!qI"  # file length, sender datagram port
REPLY_FORMAT = "!II"  # receiver datagram port, initial sequence number

_NAME_LEN = struct.Struct(NAME_LEN_FORMAT)
_REQUEST_TAIL = struct.Struct(REQUEST_TAIL_FORMAT)
_REPLY = struct.Struct(REPLY_FORMAT)


@dataclass(frozen=True, slots=True)
class HandshakeRequest:
    file_name: str
    file_length: int
    datagram_port: int

    def to_bytes(self) -> bytes:
        name = self.file_name.encode("utf-8")
        if len(name) > 0xFFFF:
            raise HandshakeError(f"file name too long for handshake: {len(name)} bytes")
        return _NAME_LEN.pack(len(name)) + name + _REQUEST_TAIL.pack(self.file_length, self.datagram_port)


@dataclass(frozen=True, slots=True)
class HandshakeReply:
    datagram_port: int
    initial_seq: int

    def to_bytes(self) -> bytes:
        return _REPLY.pack(self.datagram_port, self.initial_seq)


def _read_exact(stream: BinaryIO, n: int, what: str) -> bytes:
    data = stream.read(n)
    if data is None or len(data) != n:
        got = 0 if data is None else len(data)
        raise HandshakeError(f"stream closed while reading {what}: wanted {n} bytes, got {got}")
    return data


class HandshakeNegotiator:
    """Both halves of the one-shot session setup over a reliable stream.

    ``stream`` is a buffered binary stream that can both read and write,
    e.g. ``socket.makefile("rwb")``. Every I/O fault surfaces as
    :class:`HandshakeError`; nothing is retried here.
    """

    def __init__(self, stream: BinaryIO):
        self.stream = stream

    def perform(self, file_name: str, file_length: int, local_port: int) -> HandshakeReply:
        request = HandshakeRequest(file_name, file_length, local_port)
        try:
            self.stream.write(request.to_bytes())
            self.stream.flush()
            port = _read_exact(self.stream, 4, "receiver datagram port")
            isn = _read_exact(self.stream, 4, "initial sequence number")
        except OSError as exc:
            raise HandshakeError(f"handshake I/O failed: {exc}") from exc

        (datagram_port,) = struct.unpack("!I", port)
        (initial_seq,) = struct.unpack("!I", isn)
        return HandshakeReply(datagram_port=datagram_port, initial_seq=initial_seq)

    def accept(self, local_port: int, initial_seq: int) -> HandshakeRequest:
        try:
            (name_len,) = _NAME_LEN.unpack(_read_exact(self.stream, _NAME_LEN.size, "file name length"))
            raw_name = _read_exact(self.stream, name_len, "file name")
            file_length, datagram_port = _REQUEST_TAIL.unpack(
                _read_exact(self.stream, _REQUEST_TAIL.size, "file length and datagram port")
            )
            self.stream.write(HandshakeReply(local_port, initial_seq).to_bytes())
            self.stream.flush()
        except OSError as exc:
            raise HandshakeError(f"handshake I/O failed: {exc}") from exc

        try:
            file_name = raw_name.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise HandshakeError("file name is not valid UTF-8") from exc
        if file_length < 0:
            raise HandshakeError(f"negative file length: {file_length}")

        return HandshakeRequest(file_name=file_name, file_length=file_length, datagram_port=datagram_port)
