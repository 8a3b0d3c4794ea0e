from __future__ import annotations

from typing import Any

import pytest

from progressive_bench.capture.engines import PlaywrightBenchPage
from progressive_bench.capture.loop import CaptureLoop
from progressive_bench.capture.page import CaptureRegion
from progressive_bench.config import CaptureSettings


class StubPage:
    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []

    def set_content(self, html_doc: str, **kwargs: Any) -> None:
        self.calls.append(("set_content", kwargs))

    def evaluate(self, script: str) -> Any:
        self.calls.append(("evaluate", script))
        if "getBoundingClientRect" in script:
            return {"x": 0, "y": 0, "width": 4, "height": 4, "dpr": 2}
        return True

    def screenshot(self, **kwargs: Any) -> bytes:
        self.calls.append(("screenshot", kwargs))
        return b"png"

    def wait_for_timeout(self, ms: float) -> None:
        self.calls.append(("wait_for_timeout", ms))


def test_bench_page_maps_onto_playwright_calls() -> None:
    stub = StubPage()
    page = PlaywrightBenchPage(stub)  # type: ignore[arg-type]

    page.load_harness("<html></html>", 5000)
    assert stub.calls[-1] == ("set_content", {"wait_until": "domcontentloaded", "timeout": 5000})

    region = CaptureRegion.from_box(page.image_box())
    assert page.screenshot(region) == b"png"
    assert stub.calls[-1] == ("screenshot", {"clip": {"x": 0.0, "y": 0.0, "width": 4.0, "height": 4.0}, "type": "png"})
    assert page.image_complete() is True

    page.wait(100)
    assert stub.calls[-1] == ("wait_for_timeout", 100)


def test_capture_loop_waits_inside_the_browser() -> None:
    stub = StubPage()
    settings = CaptureSettings(sample_interval_ms=10, quiet_period_ms=0, settle_ms=20, max_capture_ms=1000)
    ticks = iter(range(0, 10000, 7))
    result = CaptureLoop(
        PlaywrightBenchPage(stub),  # type: ignore[arg-type]
        settings=settings,
        clock=lambda: float(next(ticks)),
        compare=lambda a, b: 1.0,
    ).capture("/x.png")

    waits = [arg for name, arg in stub.calls if name == "wait_for_timeout"]
    assert waits and waits[0] == pytest.approx(20)
    assert len(result.timeline) >= 2
