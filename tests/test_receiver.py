from __future__ import annotations

import socket

import pytest

import swftp.receiver
from conftest import Background


def test_connection_closed_when_datagram_bind_fails(receiver, monkeypatch):
    def refuse(*args, **kwargs):
        raise OSError("no datagram port available")

    monkeypatch.setattr(swftp.receiver.UdpEndpoint, "listening", refuse)
    server = Background(receiver.serve_once)

    with socket.create_connection(receiver.address, timeout=5.0) as client:
        with pytest.raises(OSError, match="no datagram port"):
            server.result()
        assert client.recv(1) == b""
