from __future__ import annotations

import threading
import time

import pytest

from swftp.timer import RetransmissionTimer


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


def test_fires_repeatedly_until_cancelled():
    timer = RetransmissionTimer()
    calls = []
    handle = timer.start(0.02, lambda: calls.append(time.monotonic()))
    try:
        assert wait_for(lambda: len(calls) >= 3)
    finally:
        timer.cancel(handle)
    assert handle.fires >= 3


def test_cancel_stops_firing_allowing_one_in_flight():
    timer = RetransmissionTimer()
    fired = threading.Event()
    handle = timer.start(0.01, fired.set)
    assert fired.wait(1.0)
    timer.cancel(handle)
    seen = handle.fires
    time.sleep(0.1)
    assert handle.fires <= seen + 1
    assert not handle.active


def test_cancel_is_idempotent_and_safe_without_timer():
    timer = RetransmissionTimer()
    timer.cancel()
    handle = timer.start(0.05, lambda: None)
    timer.cancel(handle)
    timer.cancel(handle)
    timer.cancel()
    assert timer.active is None


def test_start_replaces_previous_timer():
    timer = RetransmissionTimer()
    first = timer.start(0.05, lambda: None)
    second = timer.start(0.05, lambda: None)
    try:
        assert not first.active
        assert timer.active is second
    finally:
        timer.cancel()


def test_does_not_fire_before_interval():
    timer = RetransmissionTimer()
    handle = timer.start(0.5, lambda: None)
    time.sleep(0.05)
    timer.cancel(handle)
    assert handle.fires == 0


def test_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        RetransmissionTimer().start(0, lambda: None)


def test_max_fires_stops_timer_and_marks_expired():
    timer = RetransmissionTimer()
    handle = timer.start(0.01, lambda: None, max_fires=2)
    assert wait_for(lambda: handle.expired)
    time.sleep(0.05)
    assert handle.fires == 2
    timer.cancel(handle)


def test_zero_max_fires_expires_without_firing():
    timer = RetransmissionTimer()
    calls = []
    handle = timer.start(0.01, lambda: calls.append(1), max_fires=0)
    assert wait_for(lambda: handle.expired)
    assert calls == []
    assert handle.fires == 0


def test_cancelled_timer_does_not_expire():
    timer = RetransmissionTimer()
    handle = timer.start(0.02, lambda: None, max_fires=0)
    timer.cancel(handle)
    handle.join(1.0)
    assert not handle.expired


def test_join_waits_for_fire_in_progress():
    timer = RetransmissionTimer()
    started = threading.Event()
    finished = []

    def slow_fire():
        started.set()
        time.sleep(0.05)
        finished.append(1)

    handle = timer.start(0.01, slow_fire)
    assert started.wait(1.0)
    timer.cancel(handle)
    handle.join(1.0)
    fires = handle.fires
    assert len(finished) == fires
    time.sleep(0.05)
    assert handle.fires == fires
