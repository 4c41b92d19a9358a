"""Interception layer: hook slots, fire-and-forget dispatch, self-healing."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable, Iterable, Sequence
from typing import Any, Protocol

import structlog

from voyagerscope.capture.dispatcher import ThreadDispatcher
from voyagerscope.capture.hooks import HookPoint, HookSlot
from voyagerscope.capture.models import CapturedExchange, HookOrigin

logger = structlog.get_logger()

DEFAULT_WARMUP_SECONDS: tuple[float, ...] = (0.5, 1.0, 3.0)
DEFAULT_INTERVAL_SECONDS = 2.0


class ExchangeSink(Protocol):
    closed: bool

    def is_relevant_address(self, address: str | None) -> bool: ...

    def has_data_shape(self, payload: Any) -> bool: ...

    def process(self, exchange: CapturedExchange) -> Any: ...


class Interceptor:
    """Owns the hook slots of one capture session.

    Observers hand exchanges to ``dispatch``, which schedules processing on
    the bound loop and returns immediately. Without a loop, calls go to the
    attached thread dispatcher; with neither, the pipeline runs inline.
    """

    def __init__(self, pipeline: ExchangeSink, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self.pipeline = pipeline
        self._loop = loop
        self._dispatcher: ThreadDispatcher | None = None
        self._slots: list[HookSlot] = []
        self._lock = threading.Lock()
        self.stats: dict[str, int] = {"captured": 0, "healed": 0, "dispatch_errors": 0}

    @property
    def slots(self) -> list[HookSlot]:
        return list(self._slots)

    @property
    def loop(self) -> asyncio.AbstractEventLoop | None:
        return self._loop

    @property
    def dispatcher(self) -> ThreadDispatcher | None:
        return self._dispatcher

    def bind_loop(self, loop: asyncio.AbstractEventLoop | None) -> None:
        self._loop = loop

    def bind_dispatcher(self, dispatcher: ThreadDispatcher | None) -> None:
        self._dispatcher = dispatcher

    def add(self, point: HookPoint) -> HookSlot:
        slot = HookSlot(point, self)
        with self._lock:
            self._slots.append(slot)
        return slot

    def install(self, points: Iterable[HookPoint]) -> list[HookSlot]:
        installed: list[HookSlot] = []
        for point in points:
            slot = self.add(point)
            slot.install()
            installed.append(slot)
        logger.info("Interceptor installed", hooks=[slot.point.name for slot in installed])
        return installed

    def uninstall(self) -> None:
        with self._lock:
            for slot in reversed(self._slots):
                slot.uninstall()
            self._slots.clear()

    def heal(self) -> int:
        with self._lock:
            healed = sum(1 for slot in self._slots if slot.heal())
        self.stats["healed"] += healed
        return healed

    def inactive_hooks(self) -> list[str]:
        return [slot.point.name for slot in self._slots if not slot.is_active()]

    async def run_health_checks(
        self,
        warmup: Sequence[float] = DEFAULT_WARMUP_SECONDS,
        interval: float = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        """Re-wrap displaced hooks after each warm-up delay, then periodically."""
        elapsed = 0.0
        for delay in sorted(warmup):
            await asyncio.sleep(max(delay - elapsed, 0.0))
            elapsed = delay
            self.heal()
        while True:
            await asyncio.sleep(interval)
            self.heal()

    # Observer surface used by the decorators.

    def is_relevant_address(self, address: str | None) -> bool:
        return self.pipeline.is_relevant_address(address)

    def has_data_shape(self, payload: Any) -> bool:
        return self.pipeline.has_data_shape(payload)

    def capture(self, address: str | None, method: str, payload: Any, origin: HookOrigin) -> None:
        self.dispatch(
            CapturedExchange(
                source_address=address,
                http_method=(method or "GET").upper(),
                raw_payload=payload,
                hook_origin=origin,
            )
        )

    def dispatch(self, exchange: CapturedExchange) -> None:
        self.stats["captured"] += 1
        self.call_in_loop(self._run, exchange)

    def call_in_loop(self, func: Callable[..., Any], *args: Any) -> None:
        """Run ``func`` on the bound loop or dispatcher without waiting for it.

        Inline only when neither is available. Calls arriving while an
        attached dispatcher is stopping are dropped.
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            if self._dispatcher is not None:
                self._dispatcher.submit(func, *args)
            else:
                func(*args)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            loop.call_soon(func, *args)
        else:
            loop.call_soon_threadsafe(func, *args)

    def _run(self, exchange: CapturedExchange) -> None:
        if self.pipeline.closed:
            return
        try:
            self.pipeline.process(exchange)
        except Exception:
            self.stats["dispatch_errors"] += 1
            logger.exception("Pipeline failed", origin=exchange.hook_origin.value, address=exchange.source_address)
