"""Browser engines driven through Playwright's sync API."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, ContextManager, Iterator, Mapping, Protocol

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page, Playwright, Route, sync_playwright

from ..config import NetworkSettings
from .page import IMAGE_BOX_SCRIPT, IMAGE_COMPLETE_SCRIPT, BenchPage, CaptureRegion

logger = logging.getLogger(__name__)

ENGINES = ("chromium", "firefox", "webkit")
DEFAULT_VIEWPORT = {"width": 1280, "height": 800}
DEVICE_SCALE_FACTOR = 1


@dataclass
class EngineSession:
    name: str
    version: str
    page: BenchPage


class EngineFactory(Protocol):
    def open(self, name: str) -> ContextManager[EngineSession]:
        ...


class PlaywrightBenchPage:
    def __init__(self, page: Page) -> None:
        self._page = page

    def load_harness(self, html_doc: str, timeout_ms: float) -> None:
        self._page.set_content(html_doc, wait_until="domcontentloaded", timeout=timeout_ms)

    def image_box(self) -> Mapping[str, Any]:
        return self._page.evaluate(IMAGE_BOX_SCRIPT)

    def screenshot(self, region: CaptureRegion) -> bytes:
        return self._page.screenshot(clip=region.to_clip(), type="png")

    def image_complete(self) -> bool:
        return bool(self._page.evaluate(IMAGE_COMPLETE_SCRIPT))

    def wait(self, ms: float) -> None:
        # Unlike time.sleep, this lets route handlers run while we wait.
        self._page.wait_for_timeout(ms)


class PlaywrightEngines:
    """Owns one Playwright driver and opens engines on demand.

    Usage:
        with PlaywrightEngines(network=cfg.network) as engines:
            with engines.open("firefox") as session:
                ...
    """

    def __init__(self, *, network: NetworkSettings | None = None, headless: bool = False) -> None:
        self.network = network or NetworkSettings()
        self.headless = headless
        self._playwright: Playwright | None = None

    def __enter__(self) -> "PlaywrightEngines":
        self._playwright = sync_playwright().start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None

    @contextmanager
    def open(self, name: str) -> Iterator[EngineSession]:
        if self._playwright is None:
            raise RuntimeError("PlaywrightEngines must be entered before opening engines")
        if name not in ENGINES:
            raise ValueError(f"Unknown engine '{name}' (expected one of {', '.join(ENGINES)})")
        browser = getattr(self._playwright, name).launch(headless=self.headless)
        try:
            context = browser.new_context(
                viewport=DEFAULT_VIEWPORT,
                device_scale_factor=DEVICE_SCALE_FACTOR,
                bypass_csp=True,
            )
            context.route("**/*", _no_cache_route)
            page = context.new_page()
            if name == "chromium" and self.network.throttle:
                _emulate_network(context, page, self.network)
            yield EngineSession(name=name, version=browser.version, page=PlaywrightBenchPage(page))
            context.close()
        finally:
            browser.close()


def _no_cache_route(route: Route) -> None:
    headers = {**route.request.headers, "cache-control": "no-cache"}
    try:
        route.continue_(headers=headers)
    except PlaywrightError as exc:
        # The page may be torn down while a request is still in flight.
        logger.debug("route.continue_ failed for %s: %s", route.request.url, exc)


def _emulate_network(context: Any, page: Page, network: NetworkSettings) -> None:
    cdp = context.new_cdp_session(page)
    cdp.send("Network.enable")
    cdp.send(
        "Network.emulateNetworkConditions",
        {
            "offline": False,
            "latency": network.latency_ms,
            "downloadThroughput": network.download_bytes_per_s,
            "uploadThroughput": network.upload_bytes_per_s,
            "connectionType": "cellular3g",
        },
    )
    logger.info(
        "Chromium network emulation: latency=%g ms down=%g kbps up=%g kbps",
        network.latency_ms,
        network.down_kbps,
        network.up_kbps,
    )
