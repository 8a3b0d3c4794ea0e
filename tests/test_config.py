from __future__ import annotations

import json
from pathlib import Path

import pytest

from progressive_bench.config import (
    DEFAULT_RUNS,
    BenchConfig,
    ServerSettings,
    TestCase,
    load_config,
    resolve_runs,
)
from progressive_bench.errors import ConfigError


def _write(tmp_path: Path, payload: object) -> Path:
    path = tmp_path / "bench.config.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_load_config_applies_defaults(tmp_path: Path) -> None:
    path = _write(tmp_path, {"tests": [{"id": "hero-base", "url": "/variants/hero.base.jpg"}]})
    config = load_config(path)
    assert config.tests == (TestCase(id="hero-base", url="/variants/hero.base.jpg"),)
    assert config.render.bg == "#ffffff"
    assert config.render.fit == "contain"
    assert config.network.throttle is False
    assert config.network.server.chunk_bytes == 16384
    assert config.network.server.chunk_delay_ms == 60
    assert config.runs is None


def test_load_config_reads_network_and_server(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        {
            "render": {"bg": "#000", "fit": "cover"},
            "network": {
                "throttle": True,
                "latency": 200,
                "downKbps": 750,
                "upKbps": 250,
                "server": {"chunkBytes": 4096, "chunkDelayMs": 10},
            },
            "runs": 3,
            "tests": [{"id": "a", "url": "a.avif", "label": "A", "format": "avif", "notes": "q50"}],
            "extra": {"ignored": True},
        },
    )
    config = load_config(path)
    assert config.render.fit == "cover"
    assert config.network.throttle is True
    assert config.network.latency_ms == 200
    assert config.network.download_bytes_per_s == 750 * 1024 / 8
    assert config.network.server == ServerSettings(chunk_bytes=4096, chunk_delay_ms=10)
    assert config.runs == 3
    assert config.tests[0].notes == "q50"
    assert config.raw["extra"] == {"ignored": True}


def test_load_config_errors(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError, match="not valid JSON"):
        load_config(bad)

    with pytest.raises(ConfigError, match="tests"):
        load_config(_write(tmp_path, {"tests": []}))


def test_invalid_entries_are_rejected() -> None:
    with pytest.raises(ConfigError, match="Duplicate"):
        BenchConfig.from_mapping({"tests": [{"id": "a", "url": "a.jpg"}, {"id": "a", "url": "b.jpg"}]})
    with pytest.raises(ConfigError, match="url"):
        BenchConfig.from_mapping({"tests": [{"id": "a"}]})
    with pytest.raises(ConfigError, match="chunkBytes"):
        BenchConfig.from_mapping({"tests": [{"id": "a", "url": "a.jpg"}], "network": {"server": {"chunkBytes": 0}}})
    with pytest.raises(ConfigError, match="chunkDelayMs"):
        ServerSettings(chunk_delay_ms=-1)


def test_resolve_runs_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("RUNS", raising=False)
    assert resolve_runs() == DEFAULT_RUNS
    assert resolve_runs(config_runs=3) == 3

    monkeypatch.setenv("RUNS", "7")
    assert resolve_runs(config_runs=3) == 7
    assert resolve_runs(2, config_runs=3) == 2

    monkeypatch.setenv("RUNS", "zero")
    assert resolve_runs(config_runs=3) == 3
    monkeypatch.setenv("RUNS", "0")
    assert resolve_runs(config_runs=0) == DEFAULT_RUNS


def test_resolve_runs_ignores_environment_when_asked(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RUNS", "9")
    assert resolve_runs(config_runs=4, read_env=False) == 4
    assert resolve_runs(config_runs=4, env_value="11") == 11


def test_resolve_url() -> None:
    base = "http://127.0.0.1:5173/"
    assert TestCase(id="a", url="/variants/a.jpg").resolve_url(base) == "http://127.0.0.1:5173/variants/a.jpg"
    assert TestCase(id="b", url="b.jpg").resolve_url(base) == "http://127.0.0.1:5173/b.jpg"
    remote = "https://cdn.example.com/c.webp"
    assert TestCase(id="c", url=remote).resolve_url(base) == remote


def test_throttle_flag_parsing() -> None:
    def throttle(value: object) -> bool:
        return BenchConfig.from_mapping(
            {"network": {"throttle": value}, "tests": [{"id": "a", "url": "a.jpg"}]}
        ).network.throttle

    assert throttle(True) is True
    assert throttle("false") is False
    assert throttle("FALSE") is False
    assert throttle("0") is False
    assert throttle("yes") is True
    assert throttle(1) is True
    assert throttle(None) is False
    with pytest.raises(ConfigError, match="throttle"):
        throttle("maybe")
    with pytest.raises(ConfigError, match="throttle"):
        throttle(5)
