from __future__ import annotations
import heapq
import itertools
import threading
import time
from collections import deque
from typing import Callable, Optional, List, Tuple

from beat_party.core.debug import debug_error


class ScheduledTask:
    __slots__ = ("due", "fn", "cancelled", "name")

    def __init__(self, due: float, fn: Callable[[], None], name: str = ""):
        self.due = due
        self.fn = fn
        self.cancelled = False
        self.name = name

    def cancel(self):
        self.cancelled = True


class Scheduler:
    """
    Cooperative delayed-callback queue, drained from the frame tick.
    Only post() may be called off the main thread.
    """
    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self._heap: List[Tuple[float, int, ScheduledTask]] = []
        self._counter = itertools.count()
        self._posted: deque = deque()
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def delay(self, seconds: float, fn: Callable[[], None], *, name: str = "") -> ScheduledTask:
        task = ScheduledTask(self.now() + max(0.0, float(seconds)), fn, name)
        heapq.heappush(self._heap, (task.due, next(self._counter), task))
        return task

    def post(self, fn: Callable[[], None]):
        """Thread-safe: run fn on the next update()."""
        with self._lock:
            self._posted.append(fn)

    def pending(self) -> int:
        return sum(1 for _, _, t in self._heap if not t.cancelled) + len(self._posted)

    def update(self, now: Optional[float] = None) -> int:
        now = self.now() if now is None else now
        ran = 0

        with self._lock:
            posted = list(self._posted)
            self._posted.clear()
        for fn in posted:
            self._run(fn, "posted")
            ran += 1

        while self._heap and self._heap[0][0] <= now:
            _, _, task = heapq.heappop(self._heap)
            if task.cancelled:
                continue  # stale
            self._run(task.fn, task.name or "delayed")
            ran += 1
        return ran

    def clear(self):
        for _, _, task in self._heap:
            task.cancel()
        self._heap.clear()
        with self._lock:
            self._posted.clear()

    @staticmethod
    def _run(fn: Callable[[], None], label: str):
        try:
            fn()
        except Exception as e:
            debug_error(f"[SCHED] {label} callback failed", e)
