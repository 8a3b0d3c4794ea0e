"""Capture loop: sample one test case in one browsing context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from ..config import CaptureSettings, RenderSettings
from ..metrics.convergence import Frame
from ..metrics.similarity import FrameSource, similarity
from ..utils import monotonic_ms
from .page import BenchPage, CaptureRegion, render_harness_html
from .termination import CaptureState, TerminationPolicy

logger = logging.getLogger(__name__)

# Smallest step between two frame offsets, in ms.
_MIN_STEP_MS = 0.001


@dataclass(frozen=True)
class CaptureResult:
    timeline: tuple[Frame, ...]
    state: CaptureState
    region: CaptureRegion


class CaptureLoop:
    def __init__(
        self,
        page: BenchPage,
        *,
        settings: CaptureSettings | None = None,
        render: RenderSettings | None = None,
        compare: Callable[[FrameSource, FrameSource], float] = similarity,
        clock: Callable[[], float] = monotonic_ms,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.page = page
        self.settings = settings or CaptureSettings()
        self.render = render or RenderSettings()
        self.compare = compare
        self.clock = clock
        # Waiting through the page keeps the browser driver dispatching events
        # (request routing included) between samples.
        self.sleep = sleep if sleep is not None else page_sleep(page)

    def capture(self, url: str) -> CaptureResult:
        """Load the harness for `url` and sample it until it settles or times out.

        Navigation and evaluation errors propagate to the caller.
        """

        settings = self.settings
        started = self.clock()
        self.page.load_harness(render_harness_html(url, self.render), settings.navigation_timeout_ms)
        region = CaptureRegion.from_box(self.page.image_box())
        self._sleep_ms(settings.settle_ms)

        policy = TerminationPolicy(
            quiet_period_ms=settings.quiet_period_ms,
            max_capture_ms=settings.max_capture_ms,
            started_at_ms=started,
        )
        timeline: list[Frame] = []
        previous: bytes | None = None
        while True:
            # Always keep at least one frame so a page that never paints still
            # yields a (degenerate) timeline.
            if timeline and policy.check_deadline(self.clock()) is CaptureState.TIMED_OUT:
                break
            png = self.page.screenshot(region)
            now = self.clock()
            t = now - started
            if timeline and t <= timeline[-1].t:
                t = timeline[-1].t + _MIN_STEP_MS
            changed = previous is None or self.compare(png, previous) < settings.change_threshold
            previous = png
            timeline.append(Frame(t=t, png=png))

            complete = self.page.image_complete()
            if policy.observe(now, changed=changed, image_complete=complete) is not CaptureState.SAMPLING:
                break
            self._sleep_ms(settings.sample_interval_ms)

        logger.debug(
            "Captured %d frames for %s in %.0f ms (%s)",
            len(timeline),
            url,
            timeline[-1].t,
            policy.state.value,
        )
        return CaptureResult(timeline=tuple(timeline), state=policy.state, region=region)

    def _sleep_ms(self, ms: float) -> None:
        if ms > 0:
            self.sleep(ms / 1000.0)


def page_sleep(page: BenchPage) -> Callable[[float], None]:
    """Adapt `page.wait(ms)` to a `sleep(seconds)` callable."""

    def sleep(seconds: float) -> None:
        page.wait(seconds * 1000.0)

    return sleep
