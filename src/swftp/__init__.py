"""Stop-and-Wait File Transfer (swftp)

A sender-driven Stop-and-Wait ARQ over UDP, bootstrapped by a TCP handshake:
- segment framing is kept apart from the sender state machine
- retransmission runs on a timer thread that only ever resends bytes
- every transfer owns its sockets and releases them on every exit path
"""

from .errors import (
    HandshakeError,
    MalformedSegment,
    RetransmitLimitExceeded,
    SourceReadFault,
    TransferError,
    TransmitFault,
)
from .segment import Segment, decode, encode
from .sender import SenderState, StopAndWaitSender

__all__ = [
    "HandshakeError",
    "MalformedSegment",
    "RetransmitLimitExceeded",
    "Segment",
    "SenderState",
    "SourceReadFault",
    "StopAndWaitSender",
    "TransferError",
    "TransmitFault",
    "decode",
    "encode",
]
