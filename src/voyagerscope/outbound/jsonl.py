"""Append capture events to a JSONL file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import IO

import structlog

from voyagerscope.ingest.events import CaptureEvent

logger = structlog.get_logger()


class JsonlSink:
    """EventBus subscriber writing one JSON object per line."""

    def __init__(self, path: str | Path, *, include_payload: bool = False) -> None:
        self.path = Path(path).expanduser()
        self.include_payload = include_payload
        self.count = 0
        self._fo: IO[str] | None = None

    def __call__(self, event: CaptureEvent) -> None:
        self.write(event)

    def write(self, event: CaptureEvent) -> None:
        if self._fo is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fo = open(self.path, "a", encoding="utf-8")
        line = json.dumps(event.to_dict(include_payload=self.include_payload), separators=(",", ":"), default=str)
        self._fo.write(line + "\n")
        self._fo.flush()
        self.count += 1

    def close(self) -> None:
        if self._fo is not None:
            self._fo.close()
            self._fo = None
            logger.info("Events written", path=str(self.path), count=self.count)

    def __enter__(self) -> JsonlSink:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
