"""Combine repeated trials into median / percentile summaries."""

from __future__ import annotations

import math
from typing import Iterable, Sequence

from .records import METRICS, AggregatedResult, RunResult


def median(values: Sequence[float]) -> float | None:
    ordered = sorted(values)
    n = len(ordered)
    if n == 0:
        return None
    mid = n // 2
    if n % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def percentile(values: Sequence[float], p: float) -> float | None:
    """Linear-interpolated percentile, `p` in [0, 100]."""

    ordered = sorted(values)
    if not ordered:
        return None
    idx = (p / 100.0) * (len(ordered) - 1)
    lo = math.floor(idx)
    hi = math.ceil(idx)
    if lo == hi:
        return ordered[lo]
    weight = idx - lo
    return ordered[lo] * (1 - weight) + ordered[hi] * weight


def _finite(value: float | None) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def aggregate_pair(results: Sequence[RunResult]) -> AggregatedResult:
    """Aggregate all trials of one (engine, test) pair."""

    if not results:
        raise ValueError("aggregate_pair needs at least one RunResult")
    base = results[0]
    ok = [r for r in results if r.ok]
    errors = tuple(r.error for r in results if not r.ok and r.error is not None)

    dist: dict[str, list[float]] = {}
    for name in METRICS:
        dist[name] = [float(v) for v in (r.metric(name) for r in ok) if _finite(v)]

    return AggregatedResult(
        engine=base.engine,
        engine_version=base.engine_version,
        test_id=base.test_id,
        label=base.label,
        format=base.format,
        notes=base.notes,
        count=len(results),
        dist=dist,
        median={name: median(dist[name]) for name in METRICS},
        p10={name: percentile(dist[name], 10) for name in METRICS},
        p90={name: percentile(dist[name], 90) for name in METRICS},
        errors=errors,
    )


def aggregate(results: Iterable[RunResult]) -> list[AggregatedResult]:
    """Group by (engine, test id) in first-seen order and aggregate each group."""

    groups: dict[tuple[str, str], list[RunResult]] = {}
    for result in results:
        groups.setdefault((result.engine, result.test_id), []).append(result)
    return [aggregate_pair(group) for group in groups.values()]
