"""Capture session: pipeline, hooks, timing feed and health check with one lifecycle."""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Iterable, Sequence
from typing import Any

import structlog

from voyagerscope.capture.dispatcher import ThreadDispatcher
from voyagerscope.capture.hooks import HookPoint
from voyagerscope.capture.httpx_host import HttpxHost
from voyagerscope.capture.interceptor import Interceptor
from voyagerscope.capture.timing import PoolTimingFeed
from voyagerscope.capture.worker import WorkerChannelTap
from voyagerscope.config import settings
from voyagerscope.ingest.pipeline import CapturePipeline

logger = structlog.get_logger()


class CaptureSession:
    """Install the in-process host hooks for the duration of a ``with`` block.

    On entry the hooks and the connection-pool timing feed are bound and the
    health check starts. Under ``async with`` the pipeline and the health
    check run on the running loop; under a plain ``with`` both run on a
    private dispatcher thread. On exit the health check stops, hooks are
    unbound (host replacements are left alone), queued work is drained and
    pipeline caches are dropped.
    """

    def __init__(
        self,
        pipeline: CapturePipeline | None = None,
        *,
        channels: Iterable[Any] = (),
        extra_points: Iterable[HookPoint] = (),
        health_check: bool = True,
        warmup: Sequence[float] | None = None,
        interval: float | None = None,
    ) -> None:
        self.pipeline = pipeline or CapturePipeline.from_settings()
        self.interceptor = Interceptor(self.pipeline)
        self.host = HttpxHost()
        self.timing = PoolTimingFeed(self._record_timing)
        self._channels = list(channels)
        self._extra_points = list(extra_points)
        self._health_check = health_check
        self._warmup = tuple(settings.health_check_warmup_seconds if warmup is None else warmup)
        self._interval = settings.health_check_interval_seconds if interval is None else interval
        self._dispatcher: ThreadDispatcher | None = None
        self._health_task: asyncio.Task[None] | None = None
        self._started = False

    @property
    def bus(self):
        return self.pipeline.bus

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if self._started:
            return
        self.interceptor.bind_loop(loop)
        if loop is None:
            self._dispatcher = ThreadDispatcher(
                self.interceptor.heal if self._health_check else None,
                warmup=self._warmup,
                interval=self._interval,
            )
            self.interceptor.bind_dispatcher(self._dispatcher)
            self._dispatcher.start()
        points: list[HookPoint] = [*self.host.hook_points(), *self.timing.hook_points(), *self._extra_points]
        for channel in self._channels:
            points.extend(WorkerChannelTap(channel).hook_points())
        try:
            self.interceptor.install(points)
        except Exception:
            self.interceptor.uninstall()
            self._stop_dispatcher()
            raise
        if loop is not None and self._health_check:
            self._health_task = loop.create_task(self.interceptor.run_health_checks(self._warmup, self._interval))
        self._started = True
        logger.info("Capture session started", hooks=len(self.interceptor.slots))

    def tap_channel(self, channel: Any, method: str = "put") -> None:
        """Observe a worker channel created after the session started."""
        self.interceptor.install(WorkerChannelTap(channel, method=method).hook_points())

    async def stop(self) -> None:
        if not self._started:
            return
        if self._health_task is not None:
            self._health_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._health_task
            self._health_task = None
        # Let already scheduled dispatches run before the caches go away.
        await asyncio.sleep(0)
        await self.pipeline.bus.drain()
        self._teardown()

    def stop_sync(self) -> None:
        if not self._started:
            return
        if self._health_task is not None:
            self._health_task.cancel()
            self._health_task = None
        self._teardown()

    async def __aenter__(self) -> CaptureSession:
        self.start(asyncio.get_running_loop())
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    def __enter__(self) -> CaptureSession:
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop_sync()

    def _record_timing(self, address: str) -> None:
        self.interceptor.call_in_loop(self.pipeline.record_timing, address, time.monotonic())

    def _stop_dispatcher(self) -> None:
        if self._dispatcher is None:
            return
        self._dispatcher.stop()
        self.interceptor.bind_dispatcher(None)
        self._dispatcher = None

    def _teardown(self) -> None:
        # Unbind first so nothing new is queued while the dispatcher drains.
        self.interceptor.uninstall()
        self._stop_dispatcher()
        self.pipeline.close()
        self._started = False
        logger.info("Capture session stopped", **self.interceptor.stats)
