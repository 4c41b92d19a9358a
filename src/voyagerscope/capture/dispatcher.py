"""Single consumer thread for capture sessions that run without an event loop."""

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Callable, Iterator, Sequence
from typing import Any

import structlog

logger = structlog.get_logger()

_STOP = object()


class ThreadDispatcher:
    """Run queued calls in order on one private thread.

    Hooks only enqueue, so the host's own call never waits on the pipeline,
    and the pipeline caches are only ever touched from this thread. When a
    ``heal`` callable is given it runs after each warm-up delay and then
    every ``interval`` seconds, between queued calls.
    """

    def __init__(
        self,
        heal: Callable[[], Any] | None = None,
        *,
        warmup: Sequence[float] = (),
        interval: float = 2.0,
        name: str = "voyagerscope-dispatch",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._heal = heal
        self._warmup = sorted(warmup)
        self._interval = interval
        self._name = name
        self._clock = clock
        self._queue: queue.SimpleQueue[Any] = queue.SimpleQueue()
        self._thread: threading.Thread | None = None
        self._accepting = False

    @property
    def running(self) -> bool:
        return self._accepting

    @property
    def thread_name(self) -> str:
        return self._name

    def start(self) -> None:
        if self._thread is not None:
            return
        self._accepting = True
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def submit(self, func: Callable[..., Any], *args: Any) -> bool:
        """Queue a call; False once the dispatcher is stopping."""
        if not self._accepting:
            return False
        self._queue.put((func, args))
        return True

    def stop(self, timeout: float | None = 5.0) -> None:
        """Run everything already queued, then join the thread."""
        if self._thread is None:
            return
        self._accepting = False
        self._queue.put(_STOP)
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Dispatcher did not stop in time", thread=self._name)
        self._thread = None

    def _heal_times(self, started: float) -> Iterator[float]:
        last = 0.0
        for delay in self._warmup:
            last = delay
            yield started + delay
        due = started + last
        while True:
            due += self._interval
            yield due

    def _run(self) -> None:
        schedule = self._heal_times(self._clock()) if self._heal is not None else None
        next_heal = next(schedule) if schedule is not None else None
        while True:
            timeout = None if next_heal is None else max(next_heal - self._clock(), 0.0)
            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                item = None
            if item is _STOP:
                break
            if item is not None:
                func, args = item
                try:
                    func(*args)
                except Exception:
                    logger.exception("Dispatched call failed", func=getattr(func, "__name__", repr(func)))
            if schedule is not None and next_heal is not None and self._clock() >= next_heal:
                try:
                    self._heal()  # type: ignore[misc]
                except Exception:
                    logger.exception("Health check failed")
                next_heal = next(schedule)
