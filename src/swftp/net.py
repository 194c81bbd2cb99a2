from __future__ import annotations

import logging
import random
import socket
import time
from dataclasses import dataclass
from typing import Tuple

from .constants import MAX_SEGMENT_SIZE


@dataclass(frozen=True, slots=True)
class Impairment:
    """Simulated loss/delay applied by a :class:`UdpEndpoint`, for benchmarks and tests."""

    loss_rate: float = 0.0
    delay_ms: int = 0

    def should_drop(self) -> bool:
        return self.loss_rate > 0 and random.random() < self.loss_rate

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)


class UdpEndpoint:
    def __init__(self, sock: socket.socket, impairment: Impairment | None = None, name: str = ""):
        self.sock = sock
        self.impairment = impairment or Impairment()
        self.name = name

    @classmethod
    def listening(
        cls,
        host: str,
        port: int,
        timeout_ms: int = 0,
        impairment: Impairment | None = None,
        name: str = "receiver",
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((host, port))
        except OSError:
            sock.close()
            raise
        if timeout_ms > 0:
            sock.settimeout(timeout_ms / 1000.0)
        return cls(sock, impairment, name)

    @classmethod
    def sending(
        cls,
        timeout_ms: int = 0,
        impairment: Impairment | None = None,
        name: str = "sender",
    ) -> "UdpEndpoint":
        # Bound up front: the port is announced in the handshake before any send.
        return cls.listening("0.0.0.0", 0, timeout_ms=timeout_ms, impairment=impairment, name=name)

    @property
    def port(self) -> int:
        return self.sock.getsockname()[1]

    def sendto(self, data: bytes, addr: Tuple[str, int]) -> None:
        if self.impairment.should_drop():
            logging.debug("[%s] DROPPED outbound %d bytes", self.name, len(data))
            return
        self.impairment.sleep_if_needed()
        self.sock.sendto(data, addr)

    def recvfrom(self, bufsize: int = MAX_SEGMENT_SIZE) -> Tuple[bytes, Tuple[str, int]]:
        while True:
            data, addr = self.sock.recvfrom(bufsize)
            if self.impairment.should_drop():
                logging.debug("[%s] DROPPED inbound %d bytes", self.name, len(data))
                continue
            self.impairment.sleep_if_needed()
            return data, addr

    def close(self) -> None:
        self.sock.close()
