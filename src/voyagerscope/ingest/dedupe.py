"""Collapse repeated deliveries of one logical payload."""

from __future__ import annotations

import hashlib
import json
import time
from collections.abc import Callable
from typing import Any

import structlog

logger = structlog.get_logger()

DEFAULT_WINDOW_SECONDS = 0.5
DEFAULT_PREFIX_CHARS = 500


def canonical_json(payload: Any) -> str:
    """Serialize a payload deterministically (sorted keys, compact separators)."""
    try:
        return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return repr(payload)


def compute_dedup_key(payload: Any, prefix_chars: int = DEFAULT_PREFIX_CHARS) -> str:
    """Hash a bounded prefix of the canonical payload."""
    prefix = canonical_json(payload)[:prefix_chars]
    return hashlib.sha256(prefix.encode("utf-8")).hexdigest()


class Deduplicator:
    """Time-windowed content-hash cache.

    ``should_forward`` is true exactly once per key per window and records the
    key on that first call. Expired keys are evicted lazily on each call.
    """

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        prefix_chars: int = DEFAULT_PREFIX_CHARS,
        *,
        now_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._prefix_chars = prefix_chars
        self._now = now_fn
        self._seen: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._seen)

    def should_forward(self, payload: Any) -> bool:
        now = self._now()
        self._evict(now)

        key = compute_dedup_key(payload, self._prefix_chars)
        if key in self._seen:
            logger.debug("Dedup skip (same payload)", key=key[:12])
            return False

        self._seen[key] = now
        return True

    def clear(self) -> None:
        self._seen.clear()

    def _evict(self, now: float) -> None:
        expired = [key for key, seen_at in self._seen.items() if now - seen_at > self._window]
        for key in expired:
            del self._seen[key]
