"""Reduce a captured timeline to t85 / t95 / Visual Index."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from .similarity import FrameSource, similarity

PRECISION = 4
T85_LEVEL = 0.85
T95_LEVEL = 0.95


@dataclass(frozen=True)
class Frame:
    t: float
    png: bytes = field(repr=False)


@dataclass(frozen=True)
class Sample:
    t: float
    completeness: float

    def to_dict(self) -> dict[str, Any]:
        return {"t": self.t, "completeness": self.completeness}


@dataclass(frozen=True)
class ConvergenceMetrics:
    samples: tuple[Sample, ...]
    t85: float | None
    t95: float | None
    vis_index: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "samples": [s.to_dict() for s in self.samples],
            "t85": self.t85,
            "t95": self.t95,
            "visIndex": self.vis_index,
        }


EMPTY_METRICS = ConvergenceMetrics(samples=(), t85=None, t95=None, vis_index=0.0)


def analyze(
    timeline: Sequence[Frame],
    compare: Callable[[FrameSource, FrameSource], float] = similarity,
) -> ConvergenceMetrics:
    """Score every frame against the last one and derive the timing metrics.

    The final frame is the convergence target. A single-frame timeline has
    nothing to converge towards and is reported as instantly complete.
    """

    if not timeline:
        return EMPTY_METRICS
    if len(timeline) == 1:
        return ConvergenceMetrics(samples=(Sample(0, 1.0),), t85=0, t95=0, vis_index=0.0)

    target = timeline[-1].png
    samples: list[Sample] = []
    for index, frame in enumerate(timeline):
        if index == len(timeline) - 1:
            score = 1.0
        else:
            score = compare(frame.png, target)
        completeness = min(1.0, max(0.0, float(score)))
        samples.append(Sample(frame.t, round(completeness, PRECISION)))

    t0 = samples[0].t
    t_end = samples[-1].t
    if t_end <= t0:
        return ConvergenceMetrics(samples=tuple(samples), t85=0, t95=0, vis_index=0.0)

    area = 0.0
    for prev, cur in zip(samples, samples[1:]):
        area += (1.0 - prev.completeness) * (cur.t - prev.t)
    vis_index = round(area / (t_end - t0), PRECISION)

    return ConvergenceMetrics(
        samples=tuple(samples),
        t85=_first_reaching(samples, T85_LEVEL),
        t95=_first_reaching(samples, T95_LEVEL),
        vis_index=vis_index,
    )


def _first_reaching(samples: Sequence[Sample], level: float) -> float | None:
    for sample in samples:
        if sample.completeness >= level:
            return round(sample.t, PRECISION)
    return None
