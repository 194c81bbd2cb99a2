from __future__ import annotations

import os
import tempfile
import threading
from dataclasses import dataclass

from .constants import DEFAULT_TIMEOUT_MS, MAX_PAYLOAD_SIZE
from .net import Impairment
from .receiver import ReceiveResult, Receiver
from .sender import StopAndWaitSender


@dataclass(frozen=True, slots=True)
class BenchmarkResult:
    bytes_transferred: int
    duration_s: float
    throughput_mbps: float
    segments: int
    retransmits: int


def run_benchmark(
    *,
    size_bytes: int,
    loss_rate: float = 0.0,
    delay_ms: int = 0,
    segment_size: int = MAX_PAYLOAD_SIZE,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
) -> BenchmarkResult:
    impair = Impairment(loss_rate=loss_rate, delay_ms=delay_ms)

    with tempfile.TemporaryDirectory() as workdir:
        src_path = os.path.join(workdir, "payload.bin")
        out_dir = os.path.join(workdir, "out")
        os.mkdir(out_dir)
        with open(src_path, "wb") as f:
            f.write(os.urandom(size_bytes))

        receiver = Receiver.listening("127.0.0.1", 0, out_dir, impairment=impair)
        recv_host, recv_port = receiver.address
        holder: dict[str, ReceiveResult | BaseException] = {}

        def recv_runner() -> None:
            try:
                holder["result"] = receiver.serve_once()
            except BaseException as exc:  # surfaced to the caller below
                holder["result"] = exc
            finally:
                receiver.close()

        t = threading.Thread(target=recv_runner, name="bench-receiver", daemon=True)
        t.start()

        sender = StopAndWaitSender(segment_size=segment_size, timeout_ms=timeout_ms, impairment=impair)
        send_metrics = sender.transfer(recv_host, recv_port, src_path)

        t.join(timeout=10.0)
        result = holder.get("result")
        if isinstance(result, BaseException):
            raise result
        if result is None:
            raise RuntimeError("receiver did not finish")

        with open(src_path, "rb") as a, open(result.path, "rb") as b:
            if a.read() != b.read():
                raise RuntimeError("received file differs from source")

    duration_s = max(0.001, send_metrics.duration_s)
    throughput_mbps = (size_bytes * 8 / 1_000_000) / duration_s

    return BenchmarkResult(
        bytes_transferred=size_bytes,
        duration_s=duration_s,
        throughput_mbps=throughput_mbps,
        segments=send_metrics.segments,
        retransmits=send_metrics.retransmits,
    )
