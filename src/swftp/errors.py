from __future__ import annotations


class TransferError(Exception):
    """Base class for everything that can abort (or disturb) a transfer."""


class HandshakeError(TransferError):
    pass


class MalformedSegment(TransferError, ValueError):
    pass


class TransmitFault(TransferError):
    pass


class RetransmitLimitExceeded(TransmitFault):
    pass


class SourceReadFault(TransferError):
    pass
