"""Per-run and aggregated result records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..config import TestCase
from ..metrics.convergence import ConvergenceMetrics, Sample

METRICS = ("t85", "t95", "visIndex")


@dataclass(frozen=True)
class RunResult:
    engine: str
    engine_version: str
    test_id: str
    label: str
    format: str
    notes: str
    run: int
    t85: float | None = None
    t95: float | None = None
    vis_index: float | None = None
    samples: tuple[Sample, ...] = ()
    error: str | None = None

    @classmethod
    def success(
        cls, engine: str, engine_version: str, test: TestCase, run: int, metrics: ConvergenceMetrics
    ) -> "RunResult":
        return cls(
            engine=engine,
            engine_version=engine_version,
            test_id=test.id,
            label=test.label,
            format=test.format,
            notes=test.notes,
            run=run,
            t85=metrics.t85,
            t95=metrics.t95,
            vis_index=metrics.vis_index,
            samples=metrics.samples,
        )

    @classmethod
    def failure(cls, engine: str, engine_version: str, test: TestCase, run: int, error: str) -> "RunResult":
        return cls(
            engine=engine,
            engine_version=engine_version,
            test_id=test.id,
            label=test.label,
            format=test.format,
            notes=test.notes,
            run=run,
            error=error or "unknown error",
        )

    @property
    def ok(self) -> bool:
        return self.error is None

    def metric(self, name: str) -> float | None:
        if name == "visIndex":
            return self.vis_index
        return getattr(self, name)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "engine": self.engine,
            "engine_version": self.engine_version,
            "id": self.test_id,
            "label": self.label,
            "format": self.format,
            "notes": self.notes,
            "run": self.run,
        }
        if self.error is not None:
            payload["error"] = self.error
        else:
            payload["samples"] = [s.to_dict() for s in self.samples]
            payload["t85"] = self.t85
            payload["t95"] = self.t95
            payload["visIndex"] = self.vis_index
        return payload


@dataclass(frozen=True)
class AggregatedResult:
    engine: str
    engine_version: str
    test_id: str
    label: str
    format: str
    notes: str
    count: int
    dist: dict[str, list[float]] = field(default_factory=dict)
    median: dict[str, float | None] = field(default_factory=dict)
    p10: dict[str, float | None] = field(default_factory=dict)
    p90: dict[str, float | None] = field(default_factory=dict)
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "engine": self.engine,
            "engine_version": self.engine_version,
            "id": self.test_id,
            "label": self.label,
            "format": self.format,
            "notes": self.notes,
            "dist": {"count": self.count, **{name: list(self.dist.get(name, [])) for name in METRICS}},
            "median": dict(self.median),
            "p10": dict(self.p10),
            "p90": dict(self.p90),
            "errors": list(self.errors),
        }
