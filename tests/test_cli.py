from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from progressive_bench import cli


def test_missing_config_exits_before_running(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(sys, "argv", ["progressive-bench", "run", str(tmp_path / "nope.json")])
    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    assert excinfo.value.code == 2
    assert "Config file not found" in capsys.readouterr().err


def test_missing_asset_root_exits_non_zero(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = tmp_path / "bench.config.json"
    config_path.write_text(json.dumps({"tests": [{"id": "a", "url": "a.jpg"}]}), encoding="utf-8")
    argv = ["progressive-bench", "run", str(config_path), "--root", str(tmp_path / "missing"), "--out", str(tmp_path)]
    monkeypatch.setattr(sys, "argv", argv)
    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    assert excinfo.value.code == 2
    assert "Asset root is not a directory" in capsys.readouterr().err


def test_no_command_prints_help(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setattr(sys, "argv", ["progressive-bench"])
    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    assert excinfo.value.code == 1
    assert "usage: progressive-bench" in capsys.readouterr().out
