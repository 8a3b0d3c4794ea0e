"""progressive-bench CLI entrypoints."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .bench.runner import run_bench
from .capture.engines import ENGINES
from .config import load_config
from .errors import BenchError

DEFAULT_OUT_DIR = "bench-results"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="progressive-bench",
        description="Progressive image convergence benchmark",
    )
    parser.add_argument("--log-level", dest="log_level", default="INFO")
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Run the bench suite described by a config file")
    run.add_argument("config", help="Path to bench config JSON")
    run.add_argument("--root", default=".", help="Directory served by the paced server")
    run.add_argument("--runs", type=int, help="Runs per test (overrides $RUNS and config)")
    run.add_argument("--out", default=DEFAULT_OUT_DIR, help="Directory for run results")
    run.add_argument(
        "--engine",
        dest="engines",
        action="append",
        choices=ENGINES,
        help="Engine to run (repeatable, default: all)",
    )
    run.add_argument("--headless", action="store_true", help="Launch engines headless")
    run.add_argument(
        "--no-telemetry",
        dest="telemetry",
        action="store_false",
        help="Do not write telemetry.jsonl",
    )
    return parser


def _handle_run(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config)
        outcome = run_bench(
            config=config,
            asset_root=Path(args.root),
            out_dir=Path(args.out),
            runs=args.runs,
            engines=tuple(args.engines or ENGINES),
            headless=args.headless,
            telemetry=args.telemetry,
        )
    except BenchError as exc:
        print(f"progressive-bench: {exc}", file=sys.stderr)
        return 2

    artifacts = outcome.artifacts
    failed = sum(1 for r in outcome.results if not r.ok)
    print(f"\nWrote ({len(outcome.results)} trials, {failed} failed):")
    for path in (
        artifacts.aggregated_path,
        artifacts.per_run_path,
        artifacts.traces_path,
        artifacts.meta_path,
        artifacts.events_path,
    ):
        if path.exists():
            print(f"  {path}")
    return 0


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "run":
        raise SystemExit(_handle_run(args))
    parser.print_help()
    raise SystemExit(1)


if __name__ == "__main__":
    main()
