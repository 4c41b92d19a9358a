"""In-process host binding: httpx call and decode primitives plus ``json.loads``."""

from __future__ import annotations

import json
import weakref
from typing import Any

import httpx
import structlog

from voyagerscope.capture.hooks import HookPoint, Observer, wrap_call, wrap_property
from voyagerscope.capture.models import HookOrigin

logger = structlog.get_logger()

# Bound before any hook is installed; observers parse with this one.
_json_loads = json.loads

JSON_CONTENT_TYPES = ("application/json", "application/vnd.linkedin")
ADDRESSLESS_METHOD = "GET"


def is_json_response(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "").lower()
    return any(kind in content_type for kind in JSON_CONTENT_TYPES)


def response_address(response: httpx.Response) -> tuple[str | None, str]:
    """``(address, method)`` of the request behind a response, when attached."""
    try:
        request = response.request
    except RuntimeError:
        return None, ADDRESSLESS_METHOD
    return str(request.url), request.method


def parse_json_body(body: Any) -> Any:
    """Parse JSON text or bytes; ``None`` when the body is not a JSON document."""
    if isinstance(body, (bytes, bytearray)):
        stripped = bytes(body).lstrip()
        if not stripped or stripped[:1] not in (b"{", b"["):
            return None
    elif isinstance(body, str):
        stripped_text = body.lstrip()
        if not stripped_text or stripped_text[0] not in "{[":
            return None
    else:
        return None
    try:
        return _json_loads(body)
    except ValueError:
        logger.debug("Body is not JSON", size=len(body))
        return None


def read_loaded_payload(response: httpx.Response) -> Any:
    """Parse an already-read body; streamed bodies that were never read are left alone."""
    try:
        content = response.content
    except httpx.ResponseNotRead:
        return None
    return parse_json_body(content)


def _decode_wanted(observer: Observer, address: str | None, payload: Any) -> bool:
    """Decoded bodies from a known address follow that address; shape decides only without one."""
    if address is not None:
        return observer.is_relevant_address(address)
    return observer.has_data_shape(payload)


class HttpxHost:
    """Hook points covering every way an httpx client may issue or decode a call."""

    def __init__(self) -> None:
        self._initiated: weakref.WeakKeyDictionary[httpx.Request, tuple[str, str]] = weakref.WeakKeyDictionary()
        self._text_seen: weakref.WeakSet[httpx.Response] = weakref.WeakSet()

    def hook_points(self) -> list[HookPoint]:
        return [
            HookPoint("async-client-send", HookOrigin.PRIMARY_CALL, httpx.AsyncClient, "send", self._build_primary),
            HookPoint(
                "client-build-request",
                HookOrigin.LEGACY_CALL,
                httpx.Client,
                "build_request",
                self._build_initiation,
            ),
            HookPoint("client-send", HookOrigin.LEGACY_CALL, httpx.Client, "send", self._build_legacy_send),
            HookPoint("response-json", HookOrigin.DECODE_JSON, httpx.Response, "json", self._build_decode_json),
            HookPoint("response-text", HookOrigin.DECODE_TEXT, httpx.Response, "text", self._build_decode_text),
            HookPoint("response-read", HookOrigin.DECODE_BINARY, httpx.Response, "read", self._build_decode_binary),
            HookPoint("response-aread", HookOrigin.DECODE_BINARY, httpx.Response, "aread", self._build_decode_binary),
            HookPoint("json-loads", HookOrigin.GENERIC_DESERIALIZE, json, "loads", self._build_deserialize),
        ]

    # Call primitives

    def _build_primary(self, original: Any, observer: Observer) -> Any:
        def on_response(args: tuple[Any, ...], kwargs: dict[str, Any], response: httpx.Response) -> None:
            address, method = response_address(response)
            if not observer.is_relevant_address(address) or not is_json_response(response):
                return
            payload = read_loaded_payload(response)
            if payload is not None:
                observer.capture(address, method, payload, HookOrigin.PRIMARY_CALL)

        return wrap_call(original, on_response, "async-client-send")

    def _build_initiation(self, original: Any, observer: Observer) -> Any:
        def on_request(args: tuple[Any, ...], kwargs: dict[str, Any], request: httpx.Request) -> None:
            self._initiated[request] = (request.method, str(request.url))

        return wrap_call(original, on_request, "client-build-request")

    def _build_legacy_send(self, original: Any, observer: Observer) -> Any:
        def on_response(args: tuple[Any, ...], kwargs: dict[str, Any], response: httpx.Response) -> None:
            request = args[1] if len(args) > 1 else kwargs.get("request")
            initiated = self._initiated.get(request) if isinstance(request, httpx.Request) else None
            if initiated is None:
                address, method = response_address(response)
            else:
                method, address = initiated
            if not observer.is_relevant_address(address) or not response.is_success:
                return
            if not is_json_response(response):
                return
            payload = read_loaded_payload(response)
            if payload is not None:
                observer.capture(address, method, payload, HookOrigin.LEGACY_CALL)

        return wrap_call(original, on_response, "client-send")

    # Decode primitives

    def _build_decode_json(self, original: Any, observer: Observer) -> Any:
        def on_decoded(args: tuple[Any, ...], kwargs: dict[str, Any], payload: Any) -> None:
            address, method = response_address(args[0])
            if _decode_wanted(observer, address, payload):
                observer.capture(address, method, payload, HookOrigin.DECODE_JSON)

        return wrap_call(original, on_decoded, "response-json", shield=True)

    def _build_decode_text(self, original: Any, observer: Observer) -> Any:
        def on_text(args: tuple[Any, ...], kwargs: dict[str, Any], text: str) -> None:
            response = args[0]
            if response in self._text_seen:
                return
            self._text_seen.add(response)
            payload = parse_json_body(text)
            if payload is None:
                return
            address, method = response_address(response)
            if _decode_wanted(observer, address, payload):
                observer.capture(address, method, payload, HookOrigin.DECODE_TEXT)

        return wrap_property(original, on_text, "response-text", shield=True)

    def _build_decode_binary(self, original: Any, observer: Observer) -> Any:
        def on_bytes(args: tuple[Any, ...], kwargs: dict[str, Any], body: bytes) -> None:
            payload = parse_json_body(body)
            if payload is None:
                return
            address, method = response_address(args[0])
            if _decode_wanted(observer, address, payload):
                observer.capture(address, method, payload, HookOrigin.DECODE_BINARY)

        return wrap_call(original, on_bytes, "response-read", shield=True)

    def _build_deserialize(self, original: Any, observer: Observer) -> Any:
        def on_loaded(args: tuple[Any, ...], kwargs: dict[str, Any], payload: Any) -> None:
            if observer.has_data_shape(payload):
                observer.capture(None, ADDRESSLESS_METHOD, payload, HookOrigin.GENERIC_DESERIALIZE)

        return wrap_call(original, on_loaded, "json-loads")
