from __future__ import annotations

import json
import socket
import time

from conftest import Background
from swftp.bench import run_benchmark
from swftp.cli import main


def test_benchmark_lossless():
    r = run_benchmark(size_bytes=50_000, timeout_ms=200)
    assert r.bytes_transferred == 50_000
    assert r.segments == 36
    assert r.retransmits == 0
    assert r.throughput_mbps > 0


def test_benchmark_with_loss():
    r = run_benchmark(size_bytes=8_000, loss_rate=0.1, timeout_ms=20, segment_size=1000)
    assert r.segments == 8


def test_cli_bench_json(capsys):
    assert main(["bench", "--size-bytes", "3000", "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["role"] == "bench"
    assert payload["bytes_transferred"] == 3000


def test_cli_send_and_recv(tmp_path):
    src = tmp_path / "hello.txt"
    src.write_bytes(b"hello over udp\n" * 200)
    out_dir = tmp_path / "out"
    out_dir.mkdir()

    probe = socket.socket()
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()

    recv = Background(
        main, ["recv", "--listen-host", "127.0.0.1", "--listen-port", str(port), "--out-dir", str(out_dir)]
    )
    rc = 1
    for _ in range(100):
        rc = main(["send", "--host", "127.0.0.1", "--port", str(port), "--file", str(src), "--json"])
        if rc == 0:
            break
        time.sleep(0.05)  # receiver not listening yet
    assert rc == 0
    assert recv.result() == 0
    assert (out_dir / "hello.txt").read_bytes() == src.read_bytes()


def test_cli_send_failure_exit_code(tmp_path):
    assert main(["send", "--host", "127.0.0.1", "--port", "1", "--file", str(tmp_path / "nope")]) == 1
