"""Captured exchange contract shared by every hook origin."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class HookOrigin(Enum):
    PRIMARY_CALL = "primary-call"
    LEGACY_CALL = "legacy-call"
    DECODE_JSON = "decode-json"
    DECODE_TEXT = "decode-text"
    DECODE_BINARY = "decode-binary"
    GENERIC_DESERIALIZE = "generic-deserialize"
    WORKER_MESSAGE = "worker-message"


@dataclass(frozen=True)
class CapturedExchange:
    source_address: str | None
    http_method: str
    raw_payload: Any
    hook_origin: HookOrigin
    observed_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    address_correlated: bool = False


@dataclass(frozen=True)
class AddressRecord:
    address: str
    observed_at: float
