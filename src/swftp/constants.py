from __future__ import annotations

HEADER_FORMAT = "!II"  # seq, payload length
HEADER_SIZE = 8

MAX_PAYLOAD_SIZE = 1400  # conservative to avoid IP fragmentation
MAX_SEGMENT_SIZE = MAX_PAYLOAD_SIZE + HEADER_SIZE

SEQ_MODULUS = 1 << 32

DEFAULT_TIMEOUT_MS = 1000
DEFAULT_CONNECT_TIMEOUT_S = 10.0
DEFAULT_LINGER_S = 2.0
