"""Bench runner.

Starts the paced server over the asset root, walks engines, then tests, then runs,
captures and analyzes each trial, then writes the run directory artifacts
(see `runs.artifacts`). Engines run one after another and each engine runs its
trials sequentially, so visual-change detection never sees two loads at once.

A failing trial becomes an `error` RunResult and the suite moves on. Config and
server start-up failures raise before any trial runs. When the suite aborts
midway (a `DimensionMismatch`, an interrupt) the summary files still cover the
trials that finished, and telemetry ends with `bench_aborted`.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from ..capture.engines import ENGINES, EngineFactory, EngineSession, PlaywrightEngines
from ..capture.loop import CaptureLoop
from ..config import BenchConfig, CaptureSettings, TestCase, resolve_runs
from ..errors import DimensionMismatch, TrialFailure
from ..metrics.convergence import analyze
from ..runs.aggregate import aggregate
from ..runs.artifacts import RunArtifacts, collect_run_meta
from ..runs.events import EventWriter
from ..runs.records import AggregatedResult, RunResult
from ..server.paced import PacedContentServer, TraceCollector
from ..utils import run_stamp

logger = logging.getLogger(__name__)

BENCH_SCHEMA = "progressive_bench.run"
BENCH_SCHEMA_VERSION = 1
UNKNOWN_VERSION = "unknown"


@dataclass(frozen=True)
class BenchRunResult:
    run_id: str
    run_dir: Path
    artifacts: RunArtifacts
    results: tuple[RunResult, ...]
    aggregated: tuple[AggregatedResult, ...]


@dataclass
class _Suite:
    config: BenchConfig
    runs: int
    base_url: str
    capture: CaptureSettings
    artifacts: RunArtifacts
    events: EventWriter
    results: list[RunResult] = field(default_factory=list)
    versions: dict[str, str] = field(default_factory=dict)

    def record(self, result: RunResult) -> None:
        self.results.append(result)
        self.artifacts.write_trial(result)
        self.events.emit(
            "trial_finished",
            engine=result.engine,
            test_id=result.test_id,
            run=result.run,
            t85=result.t85,
            t95=result.t95,
            vis_index=result.vis_index,
            error=result.error,
        )


def run_bench(
    *,
    config: BenchConfig,
    asset_root: str | Path,
    out_dir: str | Path,
    runs: int | None = None,
    engines: Sequence[str] = ENGINES,
    engine_factory: EngineFactory | None = None,
    headless: bool = False,
    capture: CaptureSettings | None = None,
    telemetry: bool = True,
) -> BenchRunResult:
    resolved_runs = resolve_runs(runs, config.runs)
    run_dir = Path(out_dir).expanduser() / run_stamp()
    run_dir.mkdir(parents=True, exist_ok=True)
    artifacts = RunArtifacts(run_dir)
    artifacts.write_config(config.raw)
    run_id = str(uuid.uuid4())
    events = EventWriter(artifacts.events_path if telemetry else None, run_id)

    traces = TraceCollector()
    server = PacedContentServer(asset_root, settings=config.network.server, traces=traces)

    suite: _Suite | None = None
    try:
        with server:
            suite = _Suite(
                config=config,
                runs=resolved_runs,
                base_url=server.base_url,
                capture=capture or CaptureSettings(),
                artifacts=artifacts,
                events=events,
            )
            events.emit(
                "bench_started",
                schema=BENCH_SCHEMA,
                schema_version=BENCH_SCHEMA_VERSION,
                base_url=server.base_url,
                engines=list(engines),
                tests=[t.id for t in config.tests],
                runs=resolved_runs,
            )
            if engine_factory is None:
                with PlaywrightEngines(network=config.network, headless=headless) as playwright_engines:
                    _run_engines(playwright_engines, engines, suite)
            else:
                _run_engines(engine_factory, engines, suite)
    except BaseException as exc:
        if suite is not None:
            # Keep what the finished trials produced before propagating.
            _write_summary(suite, traces)
            events.emit(
                "bench_aborted",
                error=f"{exc.__class__.__name__}: {exc}",
                trials=len(suite.results),
                requests_served=len(traces),
            )
        raise

    aggregated = _write_summary(suite, traces)
    events.emit(
        "bench_finished",
        trials=len(suite.results),
        failed=sum(1 for r in suite.results if not r.ok),
        requests_served=len(traces),
    )
    return BenchRunResult(
        run_id=run_id,
        run_dir=run_dir,
        artifacts=artifacts,
        results=tuple(suite.results),
        aggregated=tuple(aggregated),
    )


def _write_summary(suite: _Suite, traces: TraceCollector) -> list[AggregatedResult]:
    aggregated = aggregate(suite.results)
    artifacts = suite.artifacts
    artifacts.write_per_run(suite.results)
    artifacts.write_aggregated(aggregated)
    artifacts.write_traces(traces.to_list())
    artifacts.write_meta(collect_run_meta(engine_versions=suite.versions, runs=suite.runs))
    return aggregated


def _run_engines(factory: EngineFactory, engines: Sequence[str], suite: _Suite) -> None:
    for name in engines:
        logger.info("==> %s", name.upper())
        suite.events.emit("engine_started", engine=name)
        _run_engine(factory, name, suite)
        suite.events.emit("engine_finished", engine=name, version=suite.versions.get(name))


def _run_engine(factory: EngineFactory, name: str, suite: _Suite) -> None:
    with ExitStack() as stack:
        try:
            session = stack.enter_context(factory.open(name))
        except Exception as exc:
            logger.error("Engine %s failed to launch: %s", name, exc)
            suite.versions[name] = UNKNOWN_VERSION
            for test in suite.config.tests:
                for k in range(1, suite.runs + 1):
                    suite.record(
                        RunResult.failure(name, UNKNOWN_VERSION, test, k, f"engine failed to launch: {exc}")
                    )
            return

        suite.versions[name] = session.version
        for test in suite.config.tests:
            url = test.resolve_url(suite.base_url)
            logger.info("  %s: %s (runs=%d)", test.id, test.label or url, suite.runs)
            for k in range(1, suite.runs + 1):
                suite.events.emit("trial_started", engine=name, test_id=test.id, run=k, url=url)
                suite.record(run_trial(session, test, k, url, config=suite.config, capture=suite.capture))


def run_trial(
    session: EngineSession,
    test: TestCase,
    run: int,
    url: str,
    *,
    config: BenchConfig,
    capture: CaptureSettings,
) -> RunResult:
    """Capture and analyze one run; any failure except a region defect becomes an error record."""

    try:
        result = CaptureLoop(session.page, settings=capture, render=config.render).capture(url)
        metrics = analyze(result.timeline)
    except DimensionMismatch:
        raise
    except Exception as exc:
        failure = TrialFailure(session.name, test.id, run, exc)
        logger.warning("Trial failed (%s / %s / run %d): %s", failure.engine, failure.test_id, failure.run, failure)
        return RunResult.failure(session.name, session.version, test, run, str(failure))
    return RunResult.success(session.name, session.version, test, run, metrics)
