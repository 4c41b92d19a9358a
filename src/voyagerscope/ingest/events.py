"""Capture events and their publish/subscribe fan-out."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from voyagerscope.capture.models import HookOrigin
from voyagerscope.classify.categories import Category, MatchedBy
from voyagerscope.resolve.entities import Entity, entity_to_dict

logger = structlog.get_logger()

Subscriber = Callable[["CaptureEvent"], Any]


@dataclass(frozen=True)
class CaptureEvent:
    category: Category
    matched_by: MatchedBy | None
    origin_address: str | None
    entities: tuple[Entity, ...]
    raw_payload: Any
    hook_origin: HookOrigin
    observed_at: datetime
    address_correlated: bool = False

    def summary(self) -> str:
        source = self.origin_address or "(no address)"
        return f"{self.category.value}: {len(self.entities)} entities from {source}"

    def to_dict(self, *, include_payload: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "category": self.category.value,
            "matched_by": self.matched_by.value if self.matched_by else None,
            "origin_address": self.origin_address,
            "hook_origin": self.hook_origin.value,
            "observed_at": self.observed_at.isoformat(),
            "address_correlated": self.address_correlated,
            "entities": [entity_to_dict(entity) for entity in self.entities],
        }
        if include_payload:
            data["raw_payload"] = self.raw_payload
        return data


class EventBus:
    """Deliver each published event to every subscriber.

    Coroutine subscribers are scheduled on the running loop. A failing
    subscriber is logged; the others still receive the event.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def publish(self, event: CaptureEvent) -> int:
        """Fan out an event; return how many subscribers accepted it."""
        delivered = 0
        for subscriber in list(self._subscribers):
            try:
                result = subscriber(event)
                if inspect.isawaitable(result):
                    self._schedule(result, subscriber)
            except Exception:
                logger.exception(
                    "Subscriber failed",
                    subscriber=getattr(subscriber, "__name__", repr(subscriber)),
                    category=event.category.value,
                )
                continue
            delivered += 1
        return delivered

    async def drain(self) -> None:
        """Wait for scheduled coroutine subscribers to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _schedule(self, awaitable: Any, subscriber: Subscriber) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(_guarded(awaitable, subscriber))
            return
        task = loop.create_task(_guarded(awaitable, subscriber))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


async def _guarded(awaitable: Any, subscriber: Subscriber) -> None:
    try:
        await awaitable
    except Exception:
        logger.exception(
            "Async subscriber failed",
            subscriber=getattr(subscriber, "__name__", repr(subscriber)),
        )
