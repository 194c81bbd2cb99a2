from __future__ import annotations

import threading
import time
from typing import Callable, Optional


class TimerHandle:
    """A fixed-rate repeating timer running on its own daemon thread.

    ``on_fire`` runs every ``interval_s`` seconds (measured from start, not
    from the previous fire) until :meth:`cancel` is called. Cancellation is
    best-effort: a fire already in progress is allowed to finish.

    With ``max_fires`` set, the timer fires at most that many times; one
    interval after the last fire it stops and sets :attr:`expired`.
    """

    def __init__(
        self,
        interval_s: float,
        on_fire: Callable[[], None],
        name: str = "retx-timer",
        max_fires: Optional[int] = None,
    ):
        self.interval_s = interval_s
        self.max_fires = max_fires
        self.fires = 0
        self._on_fire = on_fire
        self._cancelled = threading.Event()
        self._expired = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def _run(self) -> None:
        deadline = time.monotonic() + self.interval_s
        while not self._cancelled.wait(max(0.0, deadline - time.monotonic())):
            if self.max_fires is not None and self.fires >= self.max_fires:
                self._expired.set()
                return
            self.fires += 1
            self._on_fire()
            deadline += self.interval_s

    @property
    def active(self) -> bool:
        return not self._cancelled.is_set() and self._thread.is_alive()

    @property
    def expired(self) -> bool:
        return self._expired.is_set()

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._cancelled.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout)


class RetransmissionTimer:
    """Owns at most one running :class:`TimerHandle`.

    Only the sending thread may call :meth:`start` and :meth:`cancel`.
    """

    def __init__(self) -> None:
        self._active: Optional[TimerHandle] = None

    @property
    def active(self) -> Optional[TimerHandle]:
        return self._active

    def start(
        self, interval_s: float, on_fire: Callable[[], None], max_fires: Optional[int] = None
    ) -> TimerHandle:
        if interval_s <= 0:
            raise ValueError(f"timer interval must be positive, got {interval_s}")
        self.cancel()
        handle = TimerHandle(interval_s, on_fire, max_fires=max_fires)
        self._active = handle
        handle.start()
        return handle

    def cancel(self, handle: Optional[TimerHandle] = None) -> None:
        target = handle if handle is not None else self._active
        if target is None:
            return
        target.cancel()
        if target is self._active:
            self._active = None
