"""Replay recorded HAR traffic through the capture pipeline."""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from voyagerscope.browser.capture import RESOURCE_ORIGINS
from voyagerscope.capture.httpx_host import JSON_CONTENT_TYPES, parse_json_body
from voyagerscope.capture.models import CapturedExchange, HookOrigin
from voyagerscope.classify.tables import ClassifierTables
from voyagerscope.ingest.events import CaptureEvent, EventBus
from voyagerscope.ingest.pipeline import CapturePipeline, ProcessStatus
from voyagerscope.resolve.fields import parse_timestamp

logger = structlog.get_logger()


class ReplayClock:
    """Monotonic clock driven by recorded timestamps."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance_to(self, seconds: float) -> None:
        self.now = max(self.now, seconds)


@dataclass(frozen=True)
class HarEntry:
    address: str
    method: str
    resource_type: str | None
    status: int
    content_type: str
    body: str | None
    started_at: datetime | None
    duration_seconds: float

    @property
    def origin(self) -> HookOrigin:
        return RESOURCE_ORIGINS.get(self.resource_type or "fetch", HookOrigin.PRIMARY_CALL)

    @property
    def is_timing_entry(self) -> bool:
        return self.resource_type is None or self.resource_type in RESOURCE_ORIGINS


@dataclass
class ReplayResult:
    stats: dict[str, int]
    category_counts: dict[str, int]
    events: list[CaptureEvent] = field(default_factory=list)


def _get(data: Any, *path: str) -> Any:
    current = data
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def entry_body(content: Mapping[str, Any]) -> str | None:
    text = content.get("text")
    if not isinstance(text, str):
        return None
    if content.get("encoding") == "base64":
        try:
            return base64.b64decode(text).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError):
            logger.debug("Undecodable base64 body")
            return None
    return text


def parse_entry(raw: Mapping[str, Any]) -> HarEntry | None:
    address = _get(raw, "request", "url")
    if not isinstance(address, str) or not address:
        return None
    content = _get(raw, "response", "content") or {}
    status = _get(raw, "response", "status")
    duration = raw.get("time")
    return HarEntry(
        address=address,
        method=str(_get(raw, "request", "method") or "GET").upper(),
        resource_type=raw.get("_resourceType"),
        status=status if isinstance(status, int) else 0,
        content_type=str(content.get("mimeType") or "").lower(),
        body=entry_body(content),
        started_at=parse_timestamp(raw.get("startedDateTime")),
        duration_seconds=duration / 1000 if isinstance(duration, (int, float)) and duration > 0 else 0.0,
    )


def load_har(path: str | Path) -> list[HarEntry]:
    with open(Path(path).expanduser(), encoding="utf-8") as f:
        har = json.load(f)
    raw_entries = _get(har, "log", "entries")
    if not isinstance(raw_entries, list):
        raise ValueError(f"{path}: not a HAR file (missing log.entries)")
    entries = [entry for entry in (parse_entry(raw) for raw in raw_entries if isinstance(raw, Mapping)) if entry]
    return entries


class HarReplayer:
    def __init__(self, pipeline: CapturePipeline, clock: ReplayClock) -> None:
        self.pipeline = pipeline
        self.clock = clock
        self.stats: dict[str, int] = {
            "entries": 0,
            "skipped": 0,
            "exchanges": 0,
            "forwarded": 0,
            "duplicates": 0,
            "excluded": 0,
        }

    @classmethod
    def create(cls, tables: ClassifierTables | None = None, *, bus: EventBus | None = None) -> HarReplayer:
        clock = ReplayClock()
        return cls(CapturePipeline.from_settings(tables, bus=bus, now_fn=clock), clock)

    def replay(self, entries: list[HarEntry]) -> ReplayResult:
        events: list[CaptureEvent] = []
        for entry, offset in self._timeline(entries):
            self.stats["entries"] += 1
            self.clock.advance_to(offset + entry.duration_seconds)
            if entry.is_timing_entry:
                self.pipeline.record_timing(entry.address)

            exchange = self._exchange(entry)
            if exchange is None:
                self.stats["skipped"] += 1
                continue
            self.stats["exchanges"] += 1
            outcome = self.pipeline.process(exchange)
            if outcome.status is ProcessStatus.DUPLICATE:
                self.stats["duplicates"] += 1
            elif outcome.status is ProcessStatus.EXCLUDED:
                self.stats["excluded"] += 1
            else:
                self.stats["forwarded"] += 1
            if outcome.event is not None:
                events.append(outcome.event)

        logger.info("HAR replay complete", **self.stats)
        return ReplayResult(stats=dict(self.stats), category_counts=dict(self.pipeline.category_counts), events=events)

    def _timeline(self, entries: list[HarEntry]) -> Iterator[tuple[HarEntry, float]]:
        dated = [entry for entry in entries if entry.started_at is not None]
        if len(dated) != len(entries):
            # Without timestamps, entries are spaced by their own durations.
            offset = 0.0
            for entry in entries:
                yield entry, offset
                offset += entry.duration_seconds
            return
        ordered = sorted(entries, key=lambda entry: entry.started_at)  # type: ignore[arg-type,return-value]
        base = ordered[0].started_at if ordered else None
        for entry in ordered:
            yield entry, (entry.started_at - base).total_seconds()  # type: ignore[operator]

    def _exchange(self, entry: HarEntry) -> CapturedExchange | None:
        if not self.pipeline.is_relevant_address(entry.address):
            return None
        if not any(kind in entry.content_type for kind in JSON_CONTENT_TYPES):
            return None
        origin = entry.origin
        if origin is HookOrigin.LEGACY_CALL and not 200 <= entry.status < 300:
            return None
        payload = parse_json_body(entry.body) if entry.body else None
        if payload is None:
            return None
        return CapturedExchange(
            source_address=entry.address,
            http_method=entry.method,
            raw_payload=payload,
            hook_origin=origin,
            observed_at=entry.started_at or datetime.now(UTC),
        )


def replay_har(
    path: str | Path,
    *,
    tables: ClassifierTables | None = None,
    bus: EventBus | None = None,
) -> ReplayResult:
    replayer = HarReplayer.create(tables, bus=bus)
    try:
        return replayer.replay(load_har(path))
    finally:
        replayer.pipeline.close()
