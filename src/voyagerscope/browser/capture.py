"""Playwright browser host: observe a live SPA page."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from voyagerscope.capture.httpx_host import JSON_CONTENT_TYPES, parse_json_body
from voyagerscope.capture.models import CapturedExchange, HookOrigin
from voyagerscope.config import settings
from voyagerscope.ingest.pipeline import CapturePipeline

logger = structlog.get_logger()

# Resource type of the page request -> hook origin of the exchange.
RESOURCE_ORIGINS = {
    "fetch": HookOrigin.PRIMARY_CALL,
    "xhr": HookOrigin.LEGACY_CALL,
}


@dataclass(frozen=True)
class WatchResult:
    url: str
    responses: int
    exchanges: int
    timing_entries: int
    error: str | None


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(min=2, max=30),
    retry=retry_if_exception_type(PlaywrightError),
    reraise=True,
)
def _goto(page: Any, url: str, wait_until: str) -> None:
    page.goto(url, wait_until=wait_until)


class BrowserCapture:
    """Feed page traffic into a pipeline.

    ``response`` events for fetch/xhr resources become exchanges;
    ``requestfinished`` events are the resource-timing feed.
    """

    def __init__(self, pipeline: CapturePipeline) -> None:
        self.pipeline = pipeline
        self.user_data_dir = Path(settings.browser_user_data_dir).expanduser()
        self.headless = settings.browser_headless
        self.timeout_ms = settings.browser_timeout_ms
        self.args = settings.browser_args
        self.stats: dict[str, int] = {"responses": 0, "exchanges": 0, "timing_entries": 0}

    def watch(self, url: str, seconds: float = 30.0, wait_until: str = "domcontentloaded") -> WatchResult:
        self.user_data_dir.mkdir(parents=True, exist_ok=True)
        with sync_playwright() as p:
            context = p.chromium.launch_persistent_context(
                user_data_dir=str(self.user_data_dir),
                headless=self.headless,
                args=self.args,
                viewport={"width": 1280, "height": 800},
            )
            try:
                page = context.new_page()
                page.set_default_timeout(self.timeout_ms)
                page.on("response", self.on_response)
                page.on("requestfinished", self.on_request_finished)
                _goto(page, url, wait_until)
                page.wait_for_timeout(seconds * 1000)
                error = None
            except PlaywrightError as exc:
                logger.error("Browser capture failed", url=url, error=str(exc))
                error = str(exc)
            finally:
                context.close()

        return WatchResult(
            url=url,
            responses=self.stats["responses"],
            exchanges=self.stats["exchanges"],
            timing_entries=self.stats["timing_entries"],
            error=error,
        )

    def on_request_finished(self, request: Any) -> None:
        if request.resource_type not in RESOURCE_ORIGINS:
            return
        self.stats["timing_entries"] += 1
        self.pipeline.record_timing(request.url)

    def on_response(self, response: Any) -> None:
        self.stats["responses"] += 1
        request = response.request
        origin = RESOURCE_ORIGINS.get(request.resource_type)
        if origin is None or not self.pipeline.is_relevant_address(response.url):
            return
        content_type = (response.headers.get("content-type") or "").lower()
        if not any(kind in content_type for kind in JSON_CONTENT_TYPES):
            return
        if origin is HookOrigin.LEGACY_CALL and not response.ok:
            return
        try:
            body = response.body()
        except PlaywrightError as exc:
            logger.debug("Response body unavailable", url=response.url, error=str(exc))
            return
        payload = parse_json_body(body)
        if payload is None:
            return
        self.stats["exchanges"] += 1
        self.pipeline.process(
            CapturedExchange(
                source_address=response.url,
                http_method=request.method,
                raw_payload=payload,
                hook_origin=origin,
            )
        )
