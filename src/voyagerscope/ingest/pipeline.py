"""Pipeline-scoped context: correlate, classify, dedupe, resolve, publish."""

from __future__ import annotations

import dataclasses
import time
from collections import Counter
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from voyagerscope.capture.models import CapturedExchange
from voyagerscope.classify.categories import Classification
from voyagerscope.classify.classifier import Classifier, classify_by_shape
from voyagerscope.classify.tables import ClassifierTables, load_tables
from voyagerscope.config import settings
from voyagerscope.ingest.correlation import CorrelationTracker
from voyagerscope.ingest.dedupe import Deduplicator
from voyagerscope.ingest.events import CaptureEvent, EventBus
from voyagerscope.resolve.resolver import EntityResolver

logger = structlog.get_logger()

DATA_SHAPE_KEYS = ("data", "included", "elements")


class ProcessStatus(Enum):
    FORWARDED = "forwarded"
    DUPLICATE = "duplicate"
    EXCLUDED = "excluded"


@dataclass(frozen=True)
class ProcessOutcome:
    status: ProcessStatus
    classification: Classification
    event: CaptureEvent | None = None


def has_data_shape(payload: Any) -> bool:
    """True when the payload carries application data the shape fingerprints recognize.

    A bare ``data``/``included``/``elements`` key is not enough: unrelated
    documents use the same names.
    """
    if not isinstance(payload, Mapping) or not any(payload.get(key) for key in DATA_SHAPE_KEYS):
        return False
    return classify_by_shape(payload) is not None


class CapturePipeline:
    """Owns the caches for one capture session.

    ``process`` is synchronous and bounded; it never raises for a malformed
    payload. Call ``close`` when the session ends to drop cached state.
    """

    def __init__(
        self,
        tables: ClassifierTables,
        *,
        bus: EventBus | None = None,
        dedup_window_seconds: float = 0.5,
        dedup_prefix_chars: int = 500,
        retention_seconds: float = 10.0,
        forward_excluded: bool = False,
        now_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tables = tables
        self.bus = bus or EventBus()
        self.forward_excluded = forward_excluded
        self.classifier = Classifier(tables)
        self.tracker = CorrelationTracker(tables.is_relevant_address, retention_seconds, now_fn=now_fn)
        self.deduplicator = Deduplicator(dedup_window_seconds, dedup_prefix_chars, now_fn=now_fn)
        self.resolver = EntityResolver()
        self.stats: dict[str, int] = {
            "received": 0,
            "correlated": 0,
            "uncorrelated": 0,
            "excluded": 0,
            "duplicates": 0,
            "forwarded": 0,
            "entities": 0,
        }
        self.category_counts: Counter[str] = Counter()
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        tables: ClassifierTables | None = None,
        *,
        bus: EventBus | None = None,
        now_fn: Callable[[], float] = time.monotonic,
    ) -> CapturePipeline:
        return cls(
            tables or load_tables(settings.tables_path),
            bus=bus,
            dedup_window_seconds=settings.dedup_window_ms / 1000,
            dedup_prefix_chars=settings.dedup_prefix_chars,
            retention_seconds=settings.correlation_retention_seconds,
            forward_excluded=settings.forward_excluded,
            now_fn=now_fn,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def is_relevant_address(self, address: str | None) -> bool:
        return self.tables.is_capture_address(address)

    def has_data_shape(self, payload: Any) -> bool:
        return has_data_shape(payload)

    def record_timing(self, address: str, observed_at: float | None = None) -> None:
        """Passive resource-timing entry: an address whose load just completed."""
        if self._closed:
            return
        self.tracker.record(address, observed_at)

    def process(self, exchange: CapturedExchange) -> ProcessOutcome:
        self.stats["received"] += 1
        exchange = self._correlate(exchange)

        classification = self.classifier.classify(exchange.source_address, exchange.raw_payload)
        self.category_counts[classification.category.value] += 1

        if classification.is_excluded:
            self.stats["excluded"] += 1
            if not self.forward_excluded:
                logger.debug("Excluded exchange", address=exchange.source_address)
                return ProcessOutcome(status=ProcessStatus.EXCLUDED, classification=classification)

        if not self.deduplicator.should_forward(exchange.raw_payload):
            self.stats["duplicates"] += 1
            return ProcessOutcome(status=ProcessStatus.DUPLICATE, classification=classification)

        entities = self.resolver.resolve(
            exchange.raw_payload,
            classification.category,
            exchange.source_address,
        )
        event = CaptureEvent(
            category=classification.category,
            matched_by=classification.matched_by,
            origin_address=exchange.source_address,
            entities=tuple(entities),
            raw_payload=exchange.raw_payload,
            hook_origin=exchange.hook_origin,
            observed_at=exchange.observed_at,
            address_correlated=exchange.address_correlated,
        )
        self.stats["forwarded"] += 1
        self.stats["entities"] += len(entities)
        logger.info(
            "Captured payload",
            category=classification.category.value,
            matched_by=classification.matched_by.value if classification.matched_by else None,
            origin=exchange.hook_origin.value,
            entities=len(entities),
        )
        self.bus.publish(event)
        status = ProcessStatus.EXCLUDED if classification.is_excluded else ProcessStatus.FORWARDED
        return ProcessOutcome(status=status, classification=classification, event=event)

    def close(self) -> None:
        self.tracker.clear()
        self.deduplicator.clear()
        self._closed = True
        logger.info("Pipeline closed", **self.stats)

    def _correlate(self, exchange: CapturedExchange) -> CapturedExchange:
        if exchange.source_address is not None:
            return exchange
        address = self.tracker.most_recent_relevant_address()
        if address is None:
            self.stats["uncorrelated"] += 1
            return exchange
        self.stats["correlated"] += 1
        return dataclasses.replace(exchange, source_address=address, address_correlated=True)
