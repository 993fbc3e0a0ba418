"""Command-line interface for vmetest-runner.

Runs registered kube-burner workload tests, sequentially or concurrently,
and prints a suite summary for multi-test runs.

Usage:
    # List available tests
    vmetest-run --list

    # Run one test in sanity mode
    vmetest-run cpu-limits --mode sanity

    # Run every test concurrently, forwarding a flag to kube-burner
    vmetest-run --all --parallel --timeout=2h

Unrecognized ``--flags`` are forwarded to kube-burner. Tunables are read
from the environment first, then from the test's vars file:

    vmsPerNamespace=100 targetNode=worker001 vmetest-run per-host-density
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Sequence

from vmetest_core.errors import ConfigurationError
from vmetest_validation.clients import OcClusterClient

from vmetest_runner.config import (
    DEFAULT_REGISTRY,
    DEFAULT_RESULTS_BASE,
    Registry,
    RunnerSettings,
    load_registry,
    parse_mode,
)
from vmetest_runner.models import ExecutionStrategy
from vmetest_runner.orchestrator import Orchestrator
from vmetest_runner.summary import SuiteSummary

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str) -> None:
    """Configure logging."""
    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT)


def attach_main_log(results_base: Path) -> Path:
    """Copy all log records into ``<results_base>/vme-test-<timestamp>.log``."""
    results_base.mkdir(parents=True, exist_ok=True)
    path = results_base / f"vme-test-{datetime.now():%Y%m%d-%H%M%S}.log"
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(handler)
    return path


def format_test_list(registry: Registry) -> str:
    """Render the ``--list`` table."""
    lines = [
        "Available VME Tests:",
        "",
        ("%-24s %-40s %-8s" % ("TEST NAME", "DIRECTORY", "VARS EXT")).rstrip(),
        "-" * 80,
    ]
    for definition in registry:
        row = "%-24s %-40s .%-7s" % (
            definition.name,
            definition.directory,
            definition.vars_extension,
        )
        lines.append(row.rstrip())
    lines += [
        "",
        "Run a test:",
        "  vmetest-run <test-name>",
        "  vmetest-run <test-name> --mode sanity",
    ]
    return "\n".join(lines) + "\n"


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="vmetest-run",
        description="VME workload test runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )
    parser.add_argument("tests", nargs="*", help="Test names to run")
    parser.add_argument("--mode", default="full", help="sanity or full (default: full)")
    strategy = parser.add_mutually_exclusive_group()
    strategy.add_argument(
        "--parallel",
        dest="strategy",
        action="store_const",
        const=ExecutionStrategy.CONCURRENT,
        help="Run tests concurrently",
    )
    strategy.add_argument(
        "--sequential",
        dest="strategy",
        action="store_const",
        const=ExecutionStrategy.SEQUENTIAL,
        help="Run tests one at a time (default)",
    )
    parser.set_defaults(strategy=ExecutionStrategy.SEQUENTIAL)
    parser.add_argument("--all", action="store_true", help="Run every registered test")
    parser.add_argument("--list", action="store_true", help="List available tests and exit")
    parser.add_argument(
        "--registry", type=Path, default=DEFAULT_REGISTRY, help="Workload registry file"
    )
    parser.add_argument(
        "--workloads-dir",
        type=Path,
        default=Path.cwd(),
        help="Root containing the workload directories (default: current directory)",
    )
    parser.add_argument(
        "--results-base",
        type=Path,
        default=DEFAULT_RESULTS_BASE,
        help=f"Results root (default: {DEFAULT_RESULTS_BASE})",
    )
    parser.add_argument("--engine-binary", default="kube-burner", help="kube-burner executable")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    return parser


def _error(*lines: str) -> int:
    for line in lines:
        print(line, file=sys.stderr)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args, extras = parser.parse_known_intermixed_args(argv)

    try:
        registry = load_registry(args.registry)
    except ConfigurationError as exc:
        return _error(f"Error: {exc}")

    if args.list:
        print(format_test_list(registry))
        return 0

    try:
        mode = parse_mode(args.mode)
    except ConfigurationError as exc:
        return _error(str(exc))

    unknown = [arg for arg in extras if not arg.startswith("--")]
    unknown += [name for name in args.tests if name not in registry]
    if unknown:
        return _error(
            f"Unknown test or option: {unknown[0]}",
            "Use --list to see available tests or --help for usage",
        )

    tests = list(dict.fromkeys([*args.tests, *(registry.order if args.all else ())]))
    if not tests:
        return _error(
            "No tests specified",
            "Use --all to run all tests, or specify test names",
            "Use --list to see available tests",
        )

    settings = RunnerSettings(
        workloads_dir=args.workloads_dir,
        results_base=args.results_base,
        mode=mode,
        strategy=args.strategy,
        engine_binary=args.engine_binary,
        engine_args=tuple(extras),
        registry_path=args.registry,
    )
    try:
        for name in tests:
            registry.get(name).check_files(settings.workloads_dir, mode)
    except ConfigurationError as exc:
        return _error(str(exc))

    setup_logging(args.log_level)
    main_log = attach_main_log(settings.results_base)
    logger.info("Starting VME Test Suite")
    logger.info(
        "Mode: %s | Execution: %s | Tests: %s", mode.value, settings.strategy.value, " ".join(tests)
    )
    logger.info("Main log: %s", main_log)

    orchestrator = Orchestrator(registry, settings, cluster=OcClusterClient())
    result = asyncio.run(orchestrator.run(tests, settings.strategy))

    if len(tests) > 1:
        summary = SuiteSummary.from_records(
            result.records, mode.value, settings.strategy.value, main_log
        )
        print(summary.render())

    logger.info("All tests completed")
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
