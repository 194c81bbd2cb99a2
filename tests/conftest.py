from __future__ import annotations

import threading

import pytest

from swftp.receiver import Receiver


class Background:
    """Runs a callable on a thread and hands back its result (or re-raises its error)."""

    def __init__(self, fn, *args):
        self._result = None
        self._error: BaseException | None = None
        self._thread = threading.Thread(target=self._run, args=(fn, *args), daemon=True)
        self._thread.start()

    def _run(self, fn, *args):
        try:
            self._result = fn(*args)
        except BaseException as exc:
            self._error = exc

    def result(self, timeout: float = 10.0):
        self._thread.join(timeout)
        assert not self._thread.is_alive(), "background task did not finish"
        if self._error is not None:
            raise self._error
        return self._result


@pytest.fixture
def out_dir(tmp_path):
    d = tmp_path / "out"
    d.mkdir()
    return d


@pytest.fixture
def receiver(out_dir):
    r = Receiver.listening("127.0.0.1", 0, out_dir, initial_seq=100, linger_s=1.0)
    yield r
    r.close()
