"""Periodic position sampler and a main-thread scheduler for headless use."""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from typing import Any, Callable

from ..constants import DEFAULT_TICK_INTERVAL_MS
from .ports import Scheduler

logger = logging.getLogger(__name__)


class PlaybackClock:
    """Calls ``engine.tick()`` on a fixed cadence through a tkinter-style scheduler."""

    def __init__(
        self,
        engine,
        scheduler: Scheduler,
        *,
        interval_ms: int = DEFAULT_TICK_INTERVAL_MS,
        logger_instance=None,
    ) -> None:
        self.engine = engine
        self.scheduler = scheduler
        self.interval_ms = max(1, int(interval_ms))
        self.logger = logger_instance or logger
        self._job: Any = None

    @property
    def running(self) -> bool:
        return self._job is not None

    def start(self) -> None:
        if self._job is not None:
            return
        self._job = self.scheduler.after(self.interval_ms, self._on_tick)

    def stop(self) -> None:
        if self._job is None:
            return
        job = self._job
        self._job = None
        try:
            self.scheduler.after_cancel(job)
        except Exception:
            self.logger.exception("Failed to cancel playback clock")

    def _on_tick(self) -> None:
        if self._job is None:
            return
        self._job = None
        try:
            self.engine.tick()
        except Exception:
            self.logger.exception("Playback tick failed")
        self._job = self.scheduler.after(self.interval_ms, self._on_tick)


class LoopScheduler:
    """Runs scheduled callbacks on the thread that calls :meth:`run_until`.

    ``after`` may be called from other threads (media backends post their
    events through :meth:`call_soon`); callbacks always execute on the loop
    thread.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.clock = clock
        self._lock = threading.Lock()
        self._wakeup = threading.Event()
        self._queue: list[tuple[float, int, Callable[[], None]]] = []
        self._cancelled: set[int] = set()
        self._ids = itertools.count(1)

    def after(self, delay_ms: int, callback: Callable[[], None]) -> int:
        handle = next(self._ids)
        due = self.clock() + max(0, int(delay_ms)) / 1000.0
        with self._lock:
            heapq.heappush(self._queue, (due, handle, callback))
        self._wakeup.set()
        return handle

    def after_cancel(self, handle: int) -> None:
        with self._lock:
            self._cancelled.add(handle)

    def call_soon(self, callback: Callable[[], None]) -> int:
        return self.after(0, callback)

    def run_pending(self) -> int:
        """Run every callback that is due now; returns how many ran."""
        ran = 0
        while True:
            with self._lock:
                if not self._queue or self._queue[0][0] > self.clock():
                    return ran
                _due, handle, callback = heapq.heappop(self._queue)
                if handle in self._cancelled:
                    self._cancelled.discard(handle)
                    continue
            callback()
            ran += 1

    def next_delay(self) -> float | None:
        with self._lock:
            if not self._queue:
                return None
            return max(0.0, self._queue[0][0] - self.clock())

    def run_until(self, predicate: Callable[[], bool], *, poll_seconds: float = 0.25) -> None:
        while not predicate():
            self.run_pending()
            if predicate():
                return
            delay = self.next_delay()
            timeout = poll_seconds if delay is None else min(delay, poll_seconds)
            self._wakeup.wait(timeout)
            self._wakeup.clear()
