from __future__ import annotations

import logging
import random
import select
import socket
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Tuple

from .constants import DEFAULT_LINGER_S
from .errors import HandshakeError, MalformedSegment, TransferError
from .handshake import HandshakeNegotiator
from .metrics import Metrics
from .net import Impairment, UdpEndpoint
from .segment import Segment, next_seq

LINGER_POLL_MS = 50


@dataclass(frozen=True, slots=True)
class ReceiveResult:
    path: Path
    file_length: int
    metrics: Metrics


class Receiver:
    """Reference receiving peer: one TCP handshake, then in-order UDP segments.

    Each accepted segment (and a duplicate of the previous one) is acknowledged
    with ``Segment.ack(seq + 1)``. Once the whole file has arrived the receiver
    keeps re-acknowledging duplicates until the sender closes the stream, so a
    lost final ack does not strand the sender.
    """

    def __init__(
        self,
        server: socket.socket,
        out_dir: str | Path,
        *,
        initial_seq: int | None = None,
        impairment: Impairment | None = None,
        idle_timeout_s: float | None = None,
        linger_s: float = DEFAULT_LINGER_S,
    ):
        self.server = server
        self.out_dir = Path(out_dir)
        self.initial_seq = initial_seq
        self.impairment = impairment or Impairment()
        self.idle_timeout_s = idle_timeout_s
        self.linger_s = linger_s

    @classmethod
    def listening(cls, host: str, port: int, out_dir: str | Path, **kwargs) -> "Receiver":
        server = socket.create_server((host, port))
        return cls(server, out_dir, **kwargs)

    @property
    def address(self) -> Tuple[str, int]:
        host, port = self.server.getsockname()[:2]
        return host, port

    def close(self) -> None:
        self.server.close()

    def serve_once(self) -> ReceiveResult:
        conn, peer = self.server.accept()
        with conn:
            udp = UdpEndpoint.listening(
                self.address[0],
                0,
                timeout_ms=int(self.idle_timeout_s * 1000) if self.idle_timeout_s else 0,
                impairment=self.impairment,
            )
            try:
                with conn.makefile("rwb") as stream:
                    isn = self.initial_seq if self.initial_seq is not None else random.getrandbits(31)
                    request = HandshakeNegotiator(stream).accept(udp.port, isn)
                    name = Path(request.file_name).name
                    if not name:
                        raise HandshakeError(f"unusable file name: {request.file_name!r}")
                    path = self.out_dir / name
                    logging.info(
                        "receiving %s (%d bytes) from %s; udp port=%d initial seq=%d",
                        request.file_name,
                        request.file_length,
                        peer[0],
                        udp.port,
                        isn,
                    )

                    metrics = Metrics()
                    with open(path, "wb") as out:
                        expected = self._receive(udp, out, isn, request.file_length, metrics)
                    metrics.finish()

                    self._linger(udp, conn, expected, metrics)
            finally:
                udp.close()

        logging.info("received %s; segments=%d duplicates=%d", path, metrics.segments, metrics.duplicates)
        return ReceiveResult(path=path, file_length=request.file_length, metrics=metrics)

    def _ack_if_in_sequence(self, udp: UdpEndpoint, seg: Segment, expected: int, addr: Tuple[str, int]) -> None:
        if seg.seq == expected or next_seq(seg.seq) == expected:
            udp.sendto(Segment.ack(next_seq(seg.seq)).to_bytes(), addr)

    def _receive(self, udp: UdpEndpoint, out: BinaryIO, isn: int, file_length: int, metrics: Metrics) -> int:
        expected = isn
        while metrics.bytes_transferred < file_length:
            try:
                raw, addr = udp.recvfrom()
            except TimeoutError:
                raise TransferError(
                    f"no data for {self.idle_timeout_s}s; got {metrics.bytes_transferred}/{file_length} bytes"
                ) from None
            try:
                seg = Segment.from_bytes(raw)
            except MalformedSegment:
                continue

            if seg.seq == expected:
                out.write(seg.payload)
                metrics.segments += 1
                metrics.bytes_transferred += seg.length
                self._ack_if_in_sequence(udp, seg, expected, addr)
                expected = next_seq(expected)
            else:
                if next_seq(seg.seq) == expected:
                    metrics.duplicates += 1
                self._ack_if_in_sequence(udp, seg, expected, addr)
        out.flush()
        return expected

    def _linger(self, udp: UdpEndpoint, conn: socket.socket, expected: int, metrics: Metrics) -> None:
        udp.sock.settimeout(LINGER_POLL_MS / 1000.0)
        deadline = time.monotonic() + self.linger_s
        while time.monotonic() < deadline:
            readable, _, _ = select.select([conn], [], [], 0)
            if readable:
                try:
                    if not conn.recv(1):
                        return
                except OSError:
                    return
            try:
                raw, addr = udp.recvfrom()
            except TimeoutError:
                continue
            try:
                seg = Segment.from_bytes(raw)
            except MalformedSegment:
                continue
            if next_seq(seg.seq) == expected:
                metrics.duplicates += 1
            self._ack_if_in_sequence(udp, seg, expected, addr)
