"""Bench configuration.

The config file is authored by the variant-encoding step and enumerates the
test cases plus render/network knobs:

    {
      "render": {"bg": "#ffffff", "fit": "contain"},
      "network": {
        "throttle": true, "latency": 200, "downKbps": 750, "upKbps": 250,
        "server": {"chunkBytes": 16384, "chunkDelayMs": 60}
      },
      "runs": 5,
      "tests": [{"id": "...", "label": "...", "format": "jpeg", "url": "...", "notes": ""}]
    }

Unknown keys are ignored so newer config writers stay compatible.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

from .errors import ConfigError
from .utils import getenv_int

DEFAULT_RUNS = 5
RUNS_ENV_VAR = "RUNS"

_ABSOLUTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


@dataclass(frozen=True)
class RenderSettings:
    bg: str = "#ffffff"
    fit: str = "contain"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "RenderSettings":
        raw = raw if isinstance(raw, Mapping) else {}
        return cls(
            bg=str(raw.get("bg") or cls.bg),
            fit=str(raw.get("fit") or cls.fit),
        )


@dataclass(frozen=True)
class ServerSettings:
    chunk_bytes: int = 16 * 1024
    chunk_delay_ms: float = 60

    def __post_init__(self) -> None:
        if self.chunk_bytes <= 0:
            raise ConfigError(f"chunkBytes must be positive, got {self.chunk_bytes}")
        if self.chunk_delay_ms < 0:
            raise ConfigError(f"chunkDelayMs must not be negative, got {self.chunk_delay_ms}")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "ServerSettings":
        raw = raw if isinstance(raw, Mapping) else {}
        return cls(
            chunk_bytes=_as_int(raw.get("chunkBytes"), cls.chunk_bytes, "chunkBytes"),
            chunk_delay_ms=_as_float(raw.get("chunkDelayMs"), cls.chunk_delay_ms, "chunkDelayMs"),
        )


@dataclass(frozen=True)
class NetworkSettings:
    throttle: bool = False
    latency_ms: float = 150
    down_kbps: float = 200
    up_kbps: float = 50
    server: ServerSettings = field(default_factory=ServerSettings)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "NetworkSettings":
        raw = raw if isinstance(raw, Mapping) else {}
        return cls(
            throttle=_as_bool(raw.get("throttle"), cls.throttle, "throttle"),
            latency_ms=_as_float(raw.get("latency"), cls.latency_ms, "latency"),
            down_kbps=_as_float(raw.get("downKbps"), cls.down_kbps, "downKbps"),
            up_kbps=_as_float(raw.get("upKbps"), cls.up_kbps, "upKbps"),
            server=ServerSettings.from_mapping(raw.get("server")),
        )

    @property
    def download_bytes_per_s(self) -> float:
        return self.down_kbps * 1024 / 8

    @property
    def upload_bytes_per_s(self) -> float:
        return self.up_kbps * 1024 / 8


@dataclass(frozen=True)
class TestCase:
    id: str
    url: str
    label: str = ""
    format: str = ""
    notes: str = ""

    __test__ = False  # not a pytest class

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "TestCase":
        if not isinstance(raw, Mapping):
            raise ConfigError(f"Test entry must be an object, got {type(raw).__name__}")
        test_id = str(raw.get("id") or "").strip()
        url = str(raw.get("url") or "").strip()
        if not test_id:
            raise ConfigError("Test entry is missing 'id'")
        if not url:
            raise ConfigError(f"Test '{test_id}' is missing 'url'")
        return cls(
            id=test_id,
            url=url,
            label=str(raw.get("label") or ""),
            format=str(raw.get("format") or ""),
            notes=str(raw.get("notes") or ""),
        )

    def resolve_url(self, base_url: str) -> str:
        if _ABSOLUTE_URL_RE.match(self.url):
            return self.url
        return f"{base_url.rstrip('/')}/{self.url.lstrip('/')}"


@dataclass(frozen=True)
class CaptureSettings:
    """Timing knobs for the capture loop (all milliseconds)."""

    sample_interval_ms: float = 100
    quiet_period_ms: float = 700
    max_capture_ms: float = 12000
    settle_ms: float = 50
    navigation_timeout_ms: float = 30000
    change_threshold: float = 0.999


@dataclass(frozen=True)
class BenchConfig:
    tests: tuple[TestCase, ...]
    render: RenderSettings = field(default_factory=RenderSettings)
    network: NetworkSettings = field(default_factory=NetworkSettings)
    runs: int | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "BenchConfig":
        if not isinstance(raw, Mapping):
            raise ConfigError("Config root must be a JSON object")
        tests_raw = raw.get("tests")
        if not isinstance(tests_raw, list) or not tests_raw:
            raise ConfigError("Config must contain a non-empty 'tests' list")
        tests = tuple(TestCase.from_mapping(item) for item in tests_raw)
        seen: set[str] = set()
        for test in tests:
            if test.id in seen:
                raise ConfigError(f"Duplicate test id '{test.id}'")
            seen.add(test.id)
        runs_raw = raw.get("runs")
        runs = _positive_int(runs_raw)
        return cls(
            tests=tests,
            render=RenderSettings.from_mapping(raw.get("render")),
            network=NetworkSettings.from_mapping(raw.get("network")),
            runs=runs,
            raw=dict(raw),
        )


def load_config(path: str | Path) -> BenchConfig:
    config_path = Path(path).expanduser()
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {config_path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file is not valid JSON: {config_path}: {exc}") from exc
    return BenchConfig.from_mapping(payload)


def resolve_runs(
    override: Any = None,
    config_runs: Any = None,
    *,
    env_value: Any = None,
    read_env: bool = True,
) -> int:
    """Pick the run count: explicit override, then $RUNS, then config, then 5."""

    if env_value is None and read_env:
        env_value = getenv_int(RUNS_ENV_VAR)
    candidates: Sequence[Any] = (override, env_value, config_runs, DEFAULT_RUNS)
    for candidate in candidates:
        value = _positive_int(candidate)
        if value is not None:
            return value
    return DEFAULT_RUNS


def _positive_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return int(number)


def _as_int(value: Any, default: int, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"'{key}' must be an integer, got {value!r}") from exc


def _as_float(value: Any, default: float, key: str) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"'{key}' must be a number, got {value!r}") from exc


_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "off", ""})


def _as_bool(value: Any, default: bool, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ConfigError(f"'{key}' must be a boolean, got {value!r}")
