from __future__ import annotations

import contextlib
import enum
import logging
import os
import socket
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Tuple

from .constants import DEFAULT_CONNECT_TIMEOUT_S, DEFAULT_TIMEOUT_MS, MAX_PAYLOAD_SIZE
from .errors import (
    HandshakeError,
    MalformedSegment,
    RetransmitLimitExceeded,
    SourceReadFault,
    TransferError,
    TransmitFault,
)
from .handshake import HandshakeNegotiator
from .metrics import Metrics
from .net import Impairment, UdpEndpoint
from .segment import Segment, next_seq
from .timer import RetransmissionTimer, TimerHandle


class SenderState(enum.Enum):
    IDLE = "idle"
    HANDSHAKING = "handshaking"
    SENDING = "sending"
    AWAITING_ACK = "awaiting_ack"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(slots=True)
class Session:
    peer_host: str
    peer_control_port: int
    peer_datagram_port: int = 0
    initial_seq: int = 0
    seq: int = 0
    outstanding: bytes = b""
    timer: RetransmissionTimer = field(default_factory=RetransmissionTimer)

    @property
    def dest(self) -> Tuple[str, int]:
        return (self.peer_host, self.peer_datagram_port)


@dataclass(slots=True)
class StopAndWaitSender:
    """Sends one file per call with at most one unacknowledged segment in flight.

    The control thread is the only one that creates, replaces or cancels the
    retransmission timer; the timer thread only resends the already-encoded
    bytes of the outstanding segment. Retransmission is unbounded unless
    ``max_retransmits`` is set.
    """

    timeout_ms: int = DEFAULT_TIMEOUT_MS
    segment_size: int = MAX_PAYLOAD_SIZE
    max_retransmits: int | None = None
    connect_timeout_s: float | None = DEFAULT_CONNECT_TIMEOUT_S
    impairment: Impairment = field(default_factory=Impairment)
    endpoint_factory: Callable[..., UdpEndpoint] = UdpEndpoint.sending
    state: SenderState = field(default=SenderState.IDLE, init=False)
    metrics: Metrics | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        if not 0 < self.segment_size <= MAX_PAYLOAD_SIZE:
            raise ValueError(f"segment_size must be in 1..{MAX_PAYLOAD_SIZE}, got {self.segment_size}")
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.max_retransmits is not None and self.max_retransmits < 0:
            raise ValueError(f"max_retransmits must be >= 0, got {self.max_retransmits}")

    def send(self, host: str, port: int, path: str | os.PathLike[str]) -> bool:
        self.metrics = None
        try:
            self.metrics = self.transfer(host, port, path)
        except TransferError as exc:
            logging.error("transfer of %s to %s:%d aborted: %s", path, host, port, exc)
            return False
        return True

    def transfer(self, host: str, port: int, path: str | os.PathLike[str]) -> Metrics:
        self._set_state(SenderState.IDLE)
        session = Session(peer_host=host, peer_control_port=port)
        metrics = Metrics()

        try:
            with contextlib.ExitStack() as resources:
                source = resources.enter_context(self._open_source(path))
                file_length = self._source_length(source)

                try:
                    udp = self.endpoint_factory(
                        timeout_ms=self.timeout_ms if self.max_retransmits is not None else 0,
                        impairment=self.impairment,
                    )
                except OSError as exc:
                    raise TransmitFault(f"cannot bind datagram socket: {exc}") from exc
                resources.callback(udp.close)
                resources.callback(session.timer.cancel)

                self._set_state(SenderState.HANDSHAKING)
                self._handshake(session, resources, os.path.basename(path), file_length, udp.port)

                logging.info(
                    "sending %s (%d bytes) to %s:%d; initial seq=%d",
                    path,
                    file_length,
                    host,
                    session.peer_datagram_port,
                    session.initial_seq,
                )
                self._send_loop(session, source, udp, metrics)
        except TransferError:
            self._set_state(SenderState.ABORTED)
            raise

        metrics.finish()
        self._set_state(SenderState.DONE)
        logging.info(
            "done; segments=%d retransmits=%d throughput=%.2f Mbps",
            metrics.segments,
            metrics.retransmits,
            metrics.throughput_mbps,
        )
        return metrics

    def _set_state(self, state: SenderState) -> None:
        if state is not self.state:
            logging.debug("state %s -> %s", self.state.value, state.value)
        self.state = state

    @staticmethod
    def _open_source(path: str | os.PathLike[str]) -> BinaryIO:
        try:
            return open(path, "rb")
        except OSError as exc:
            raise SourceReadFault(f"cannot open {path}: {exc}") from exc

    @staticmethod
    def _source_length(source: BinaryIO) -> int:
        try:
            return os.fstat(source.fileno()).st_size
        except OSError as exc:
            raise SourceReadFault(f"cannot stat source: {exc}") from exc

    def _handshake(
        self,
        session: Session,
        resources: contextlib.ExitStack,
        file_name: str,
        file_length: int,
        local_port: int,
    ) -> None:
        try:
            conn = socket.create_connection(
                (session.peer_host, session.peer_control_port), timeout=self.connect_timeout_s
            )
        except OSError as exc:
            raise HandshakeError(
                f"cannot connect to {session.peer_host}:{session.peer_control_port}: {exc}"
            ) from exc
        resources.enter_context(conn)
        stream = resources.enter_context(conn.makefile("rwb"))

        reply = HandshakeNegotiator(stream).perform(file_name, file_length, local_port)
        session.peer_datagram_port = reply.datagram_port
        session.initial_seq = reply.initial_seq
        session.seq = reply.initial_seq

    def _send_loop(
        self,
        session: Session,
        source: BinaryIO,
        udp: UdpEndpoint,
        metrics: Metrics,
    ) -> None:
        interval_s = self.timeout_ms / 1000.0

        while True:
            self._set_state(SenderState.SENDING)
            try:
                chunk = source.read(self.segment_size)
            except OSError as exc:
                raise SourceReadFault(f"reading source failed at seq={session.seq}: {exc}") from exc
            if not chunk:
                break

            session.outstanding = Segment(session.seq, chunk).to_bytes()
            self._transmit(udp, session.outstanding, session.dest)
            logging.debug("send <%d>", session.seq)
            metrics.segments += 1
            metrics.bytes_transferred += len(chunk)

            handle = session.timer.start(
                interval_s,
                self._make_resend(udp, session.outstanding, session.dest, session.seq),
                max_fires=self.max_retransmits,
            )

            self._set_state(SenderState.AWAITING_ACK)
            self._await_ack(udp, next_seq(session.seq), handle)

            session.timer.cancel(handle)
            # A fire racing the cancel may still be in progress; count it too.
            handle.join()
            metrics.retransmits += handle.fires
            session.seq = next_seq(session.seq)

    @staticmethod
    def _transmit(udp: UdpEndpoint, data: bytes, dest: Tuple[str, int]) -> None:
        try:
            udp.sendto(data, dest)
        except OSError as exc:
            raise TransmitFault(f"sending datagram to {dest[0]}:{dest[1]} failed: {exc}") from exc

    @staticmethod
    def _make_resend(udp: UdpEndpoint, data: bytes, dest: Tuple[str, int], seq: int) -> Callable[[], None]:
        def resend() -> None:
            logging.debug("timeout")
            try:
                udp.sendto(data, dest)
            except OSError as exc:
                # The socket may already be closed if cancel raced with this fire.
                logging.debug("retx <%d> failed: %s", seq, exc)
                return
            logging.debug("retx <%d>", seq)

        return resend

    def _await_ack(self, udp: UdpEndpoint, expected: int, handle: TimerHandle) -> None:
        while True:
            try:
                raw, _ = udp.recvfrom()
            except TimeoutError:
                # Only reachable when max_retransmits is set (the socket has a timeout).
                if handle.expired:
                    raise RetransmitLimitExceeded(
                        f"no ack {expected} after {handle.fires} retransmissions"
                    ) from None
                continue
            except OSError as exc:
                raise TransmitFault(f"receiving acknowledgment failed: {exc}") from exc

            try:
                ack = Segment.from_bytes(raw)
            except MalformedSegment as exc:
                logging.debug("discarding malformed datagram: %s", exc)
                continue

            logging.debug("ack <%d>", ack.seq)
            if ack.seq == expected:
                return
