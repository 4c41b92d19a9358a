"""Passive resource-timing feed at the connection-pool layer.

Records ``(address, completion time)`` for every request an httpx client
sends, whichever client primitive issued it. Bodies are never touched.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpcore
import structlog

from voyagerscope.capture.hooks import HookPoint, Observer, wrap_call

logger = structlog.get_logger()

DEFAULT_PORTS = {b"http": 80, b"https": 443}


def request_address(request: httpcore.Request) -> str:
    url = request.url
    host = url.host.decode("ascii", errors="replace")
    if url.port is not None and url.port != DEFAULT_PORTS.get(url.scheme):
        host = f"{host}:{url.port}"
    scheme = url.scheme.decode("ascii", errors="replace")
    target = url.target.decode("ascii", errors="replace")
    return f"{scheme}://{host}{target}"


class PoolTimingFeed:
    def __init__(self, record: Callable[[str], None]) -> None:
        self._record = record

    def hook_points(self) -> list[HookPoint]:
        return [
            HookPoint("pool-timing", None, httpcore.ConnectionPool, "handle_request", self._build),
            HookPoint("async-pool-timing", None, httpcore.AsyncConnectionPool, "handle_async_request", self._build),
        ]

    def _build(self, original: Any, observer: Observer) -> Any:
        def on_complete(args: tuple[Any, ...], kwargs: dict[str, Any], response: Any) -> None:
            request = args[1] if len(args) > 1 else kwargs.get("request")
            if isinstance(request, httpcore.Request):
                self._record(request_address(request))

        return wrap_call(original, on_complete, "pool-timing")
