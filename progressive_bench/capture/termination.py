"""When to stop sampling a page.

States: SAMPLING until either the image reports complete and nothing has
changed on screen for the quiet period (CONVERGED), or the hard timeout runs
out (TIMED_OUT). Both end states are terminal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class CaptureState(str, Enum):
    SAMPLING = "sampling"
    CONVERGED = "converged"
    TIMED_OUT = "timed_out"


@dataclass
class TerminationPolicy:
    quiet_period_ms: float
    max_capture_ms: float
    started_at_ms: float
    last_change_ms: float = field(init=False)
    state: CaptureState = field(default=CaptureState.SAMPLING, init=False)

    def __post_init__(self) -> None:
        self.last_change_ms = self.started_at_ms

    @property
    def done(self) -> bool:
        return self.state is not CaptureState.SAMPLING

    def timed_out(self, now_ms: float) -> bool:
        return now_ms - self.started_at_ms >= self.max_capture_ms

    def check_deadline(self, now_ms: float) -> CaptureState:
        if not self.done and self.timed_out(now_ms):
            self.state = CaptureState.TIMED_OUT
        return self.state

    def observe(self, now_ms: float, *, changed: bool, image_complete: bool) -> CaptureState:
        if self.done:
            return self.state
        if changed:
            self.last_change_ms = now_ms
        if image_complete and now_ms - self.last_change_ms > self.quiet_period_ms:
            self.state = CaptureState.CONVERGED
        elif self.timed_out(now_ms):
            self.state = CaptureState.TIMED_OUT
        return self.state
