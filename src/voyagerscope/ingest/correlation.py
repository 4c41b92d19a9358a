"""Recover the most plausible source address for address-less decode events."""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from voyagerscope.capture.models import AddressRecord

logger = structlog.get_logger()

DEFAULT_RETENTION_SECONDS = 10.0
MAX_RECORDS = 256


class CorrelationTracker:
    """Short-lived cache of recently completed resource loads.

    Populated only from passive resource-timing feeds. Entries older than the
    retention window are evicted on every write; reads return the freshest
    relevant record (most recent wins).
    """

    def __init__(
        self,
        is_relevant: Callable[[str], bool],
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        *,
        max_records: int = MAX_RECORDS,
        now_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        self._is_relevant = is_relevant
        self._retention = retention_seconds
        self._max_records = max_records
        self._now = now_fn
        self._records: dict[str, AddressRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def record(self, address: str, observed_at: float | None = None) -> None:
        if not address:
            return
        now = self._now()
        seen_at = now if observed_at is None else observed_at
        # Re-inserting moves the key to the end so iteration order tracks recency.
        self._records.pop(address, None)
        self._records[address] = AddressRecord(address=address, observed_at=seen_at)
        self._evict(now)

    def most_recent_relevant_address(self) -> str | None:
        now = self._now()
        best: AddressRecord | None = None
        for record in self._records.values():
            if now - record.observed_at > self._retention:
                continue
            if not self._is_relevant(record.address):
                continue
            if best is None or record.observed_at >= best.observed_at:
                best = record
        return best.address if best else None

    def clear(self) -> None:
        self._records.clear()

    def _evict(self, now: float) -> None:
        expired = [address for address, rec in self._records.items() if now - rec.observed_at > self._retention]
        for address in expired:
            del self._records[address]
        while len(self._records) > self._max_records:
            del self._records[next(iter(self._records))]
        if expired:
            logger.debug("Evicted stale addresses", count=len(expired))
