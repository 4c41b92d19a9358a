"""Observe messages a worker context posts back to the primary context."""

from __future__ import annotations

from typing import Any

from voyagerscope.capture.hooks import HookPoint, Observer, wrap_call
from voyagerscope.capture.httpx_host import ADDRESSLESS_METHOD, parse_json_body
from voyagerscope.capture.models import HookOrigin


def message_payload(message: Any) -> Any:
    """Structured value carried by a channel message, or ``None``."""
    if isinstance(message, (dict, list)):
        return message
    if isinstance(message, (str, bytes, bytearray)):
        return parse_json_body(message)
    return None


class WorkerChannelTap:
    """Wrap the message method of one channel instance (a queue, a pipe end).

    Messages may be posted from another thread; the interceptor hands them to
    the pipeline through the loop's thread-safe scheduling or the session's
    dispatcher thread.
    """

    def __init__(self, channel: Any, *, method: str = "put", name: str | None = None) -> None:
        self.channel = channel
        self.method = method
        self.name = name or f"worker-{type(channel).__name__}-{method}"

    def hook_points(self) -> list[HookPoint]:
        return [HookPoint(self.name, HookOrigin.WORKER_MESSAGE, self.channel, self.method, self._build)]

    def _build(self, original: Any, observer: Observer) -> Any:
        def on_message(args: tuple[Any, ...], kwargs: dict[str, Any], result: Any) -> None:
            message = args[0] if args else kwargs.get("item", kwargs.get("obj"))
            payload = message_payload(message)
            if payload is not None and observer.has_data_shape(payload):
                observer.capture(None, ADDRESSLESS_METHOD, payload, HookOrigin.WORKER_MESSAGE)

        return wrap_call(original, on_message, self.name)
