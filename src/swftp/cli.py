from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict

from .bench import run_benchmark
from .constants import DEFAULT_TIMEOUT_MS, MAX_PAYLOAD_SIZE
from .errors import TransferError
from .net import Impairment
from .receiver import Receiver
from .sender import StopAndWaitSender


def _emit(payload: dict, as_json: bool) -> None:
    print(json.dumps(payload, indent=2) if as_json else payload)


def cmd_send(args: argparse.Namespace) -> int:
    sender = StopAndWaitSender(
        timeout_ms=args.timeout_ms,
        segment_size=args.segment_size,
        max_retransmits=args.max_retransmits,
        impairment=Impairment(args.loss_rate, args.delay_ms),
    )
    try:
        metrics = sender.transfer(args.host, args.port, args.file)
    except TransferError as exc:
        logging.error("send failed: %s", exc)
        return 1

    _emit(
        {
            "role": "sender",
            "bytes": metrics.bytes_transferred,
            "segments": metrics.segments,
            "retransmits": metrics.retransmits,
            "seconds": metrics.duration_s,
            "mbps": metrics.throughput_mbps,
        },
        args.json,
    )
    return 0


def cmd_recv(args: argparse.Namespace) -> int:
    receiver = Receiver.listening(
        args.listen_host,
        args.listen_port,
        args.out_dir,
        initial_seq=args.initial_seq,
        impairment=Impairment(args.loss_rate, args.delay_ms),
        idle_timeout_s=args.idle_timeout_s,
    )
    try:
        result = receiver.serve_once()
    except TransferError as exc:
        logging.error("receive failed: %s", exc)
        return 1
    finally:
        receiver.close()

    _emit(
        {
            "role": "receiver",
            "path": str(result.path),
            "bytes": result.metrics.bytes_transferred,
            "segments": result.metrics.segments,
            "duplicates": result.metrics.duplicates,
            "seconds": result.metrics.duration_s,
            "mbps": result.metrics.throughput_mbps,
        },
        args.json,
    )
    return 0


def cmd_bench(args: argparse.Namespace) -> int:
    r = run_benchmark(
        size_bytes=args.size_bytes,
        loss_rate=args.loss_rate,
        delay_ms=args.delay_ms,
        segment_size=args.segment_size,
        timeout_ms=args.timeout_ms,
    )
    _emit({"role": "bench", **asdict(r)}, args.json)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="swftp", description="Stop-and-Wait file transfer over UDP with a TCP handshake.")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--loss-rate", type=float, default=0.0, help="simulate datagram loss")
        x.add_argument("--delay-ms", type=int, default=0, help="simulate datagram delay")
        x.add_argument("--json", action="store_true")

    send = sub.add_parser("send", help="send a file to a receiver")
    add_common(send)
    send.add_argument("--host", required=True)
    send.add_argument("--port", type=int, required=True, help="receiver TCP (handshake) port")
    send.add_argument("--file", required=True)
    send.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS)
    send.add_argument("--segment-size", type=int, default=MAX_PAYLOAD_SIZE)
    send.add_argument("--max-retransmits", type=int, default=None, help="abort after this many resends (default: never)")
    send.set_defaults(func=cmd_send)

    recv = sub.add_parser("recv", help="receive one file and write it to disk")
    add_common(recv)
    recv.add_argument("--listen-host", default="0.0.0.0")
    recv.add_argument("--listen-port", type=int, required=True)
    recv.add_argument("--out-dir", default=".")
    recv.add_argument("--initial-seq", type=int, default=None)
    recv.add_argument("--idle-timeout-s", type=float, default=None)
    recv.set_defaults(func=cmd_recv)

    bench = sub.add_parser("bench", help="loopback benchmark")
    add_common(bench)
    bench.add_argument("--size-bytes", type=int, default=1_000_000)
    bench.add_argument("--timeout-ms", type=int, default=50)
    bench.add_argument("--segment-size", type=int, default=MAX_PAYLOAD_SIZE)
    bench.set_defaults(func=cmd_bench)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
