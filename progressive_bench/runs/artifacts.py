"""Run directory layout and artifact writers.

A bench run writes, under `<out>/<stamp>/`:
- `config.used.json` (the config as loaded)
- `<engine>-<test>-run<k>.json` (one record per trial, written as it finishes)
- `per-run.json`, `aggregated.json`, `server.traces.json`, `meta.json`
- `telemetry.jsonl` (see `runs.events`)
"""

from __future__ import annotations

import os
import platform
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

from ..utils import now_utc_iso, safe_slug, write_json
from .records import AggregatedResult, RunResult


@dataclass(frozen=True)
class RunArtifacts:
    run_dir: Path

    @property
    def config_path(self) -> Path:
        return self.run_dir / "config.used.json"

    @property
    def per_run_path(self) -> Path:
        return self.run_dir / "per-run.json"

    @property
    def aggregated_path(self) -> Path:
        return self.run_dir / "aggregated.json"

    @property
    def traces_path(self) -> Path:
        return self.run_dir / "server.traces.json"

    @property
    def meta_path(self) -> Path:
        return self.run_dir / "meta.json"

    @property
    def events_path(self) -> Path:
        return self.run_dir / "telemetry.jsonl"

    def trial_path(self, result: RunResult) -> Path:
        return self.run_dir / f"{safe_slug(result.engine)}-{safe_slug(result.test_id)}-run{result.run}.json"

    def write_config(self, raw_config: Mapping[str, Any]) -> Path:
        write_json(self.config_path, dict(raw_config))
        return self.config_path

    def write_trial(self, result: RunResult) -> Path:
        path = self.trial_path(result)
        write_json(path, result.to_dict())
        return path

    def write_per_run(self, results: Sequence[RunResult]) -> Path:
        write_json(self.per_run_path, [r.to_dict() for r in results])
        return self.per_run_path

    def write_aggregated(self, aggregated: Sequence[AggregatedResult]) -> Path:
        write_json(self.aggregated_path, [a.to_dict() for a in aggregated])
        return self.aggregated_path

    def write_traces(self, traces: Sequence[Mapping[str, Any]]) -> Path:
        write_json(self.traces_path, list(traces))
        return self.traces_path

    def write_meta(self, meta: Mapping[str, Any]) -> Path:
        write_json(self.meta_path, dict(meta))
        return self.meta_path


def collect_run_meta(*, engine_versions: Mapping[str, str], runs: int) -> dict[str, Any]:
    return {
        "system": {
            "os_type": platform.system(),
            "os_platform": sys.platform,
            "os_release": platform.release(),
            "os_arch": platform.machine(),
            "cpu_model": platform.processor() or "unknown",
            "cpu_cores": os.cpu_count() or 0,
            "memory_gb": _memory_gb(),
        },
        "python": platform.python_version(),
        "versions": dict(engine_versions),
        "runs": runs,
        "created_at": now_utc_iso(),
    }


def _memory_gb() -> int | None:
    try:
        pages = os.sysconf("SC_PHYS_PAGES")
        page_size = os.sysconf("SC_PAGE_SIZE")
    except (AttributeError, ValueError, OSError):
        return None
    if pages <= 0 or page_size <= 0:
        return None
    return round(pages * page_size / 1e9)
