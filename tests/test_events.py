from __future__ import annotations

import json
import math
from pathlib import Path

from progressive_bench.runs.events import EventWriter


def test_event_writer(tmp_path: Path) -> None:
    path = tmp_path / "telemetry.jsonl"
    writer = EventWriter(path, "run-123")
    writer.emit("bench_started", base_url="http://127.0.0.1:8080", runs=5)
    writer.emit("trial_finished", engine="webkit", t85=math.inf, out_dir=tmp_path)
    lines = path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    payload = json.loads(lines[0])
    assert payload["type"] == "bench_started"
    assert payload["run_id"] == "run-123"
    assert "ts" in payload
    assert payload["runs"] == 5
    second = json.loads(lines[1])
    assert second["t85"] is None
    assert second["out_dir"] == str(tmp_path)


def test_event_writer_without_path_only_returns_events(tmp_path: Path) -> None:
    writer = EventWriter(None, "run-0")
    event = writer.emit("engine_started", engine="chromium")
    assert event["engine"] == "chromium"
    assert list(tmp_path.iterdir()) == []
