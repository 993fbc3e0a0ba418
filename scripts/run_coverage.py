#!/usr/bin/env python3
"""Coverage runner for the vmetest packages.

Runs each package's unit tests under pytest-cov with its own data file, then
combines the data into one terminal, HTML and JSON report under coverage/.

Usage:
    # All packages
    python scripts/run_coverage.py

    # One package
    python scripts/run_coverage.py --package vmetest-runner

    # Open the HTML report afterwards
    python scripts/run_coverage.py --open
"""

from __future__ import annotations

import argparse
import os
import subprocess
import sys
import webbrowser
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
COVERAGE_DIR = PROJECT_ROOT / "coverage"

PACKAGES = [
    "vmetest-core",
    "vmetest-validation",
    "vmetest-runner",
]


def _coverage_env(data_file: Path) -> dict[str, str]:
    env = dict(os.environ)
    env["COVERAGE_FILE"] = str(data_file)
    return env


def run_package(package: str, verbose: bool = True) -> Path | None:
    """Run one package's unit tests with coverage.

    Args:
        package: Package directory name, e.g. ``vmetest-core``.
        verbose: Pass ``-v`` to pytest.

    Returns:
        The coverage data file, or None if the package has no unit tests.

    Raises:
        subprocess.CalledProcessError: If any test fails.
    """
    test_path = PROJECT_ROOT / package / "tests" / "unit"
    if not test_path.exists():
        return None

    print(f"\n{'=' * 60}\nTesting: {package}\n{'=' * 60}")
    data_file = COVERAGE_DIR / f".coverage.{package}"
    cmd = [
        sys.executable,
        "-m",
        "pytest",
        f"--cov={PROJECT_ROOT / package / 'src'}",
        "--cov-report=",
        str(test_path),
    ]
    if verbose:
        cmd.append("-v")
    subprocess.run(cmd, cwd=PROJECT_ROOT, env=_coverage_env(data_file), check=True)
    return data_file


def combine_and_report(data_files: list[Path]) -> None:
    """Combine per-package data and write the reports."""
    existing = [str(path) for path in data_files if path.exists()]
    if not existing:
        print("No coverage data collected")
        return

    env = _coverage_env(COVERAGE_DIR / ".coverage")
    coverage = [sys.executable, "-m", "coverage"]
    subprocess.run([*coverage, "combine", "--keep", *existing], cwd=PROJECT_ROOT, env=env)
    subprocess.run([*coverage, "report", "--show-missing"], cwd=PROJECT_ROOT, env=env)
    subprocess.run(
        [*coverage, "html", "-d", str(COVERAGE_DIR / "html")], cwd=PROJECT_ROOT, env=env
    )
    subprocess.run(
        [*coverage, "json", "-o", str(COVERAGE_DIR / "coverage.json")], cwd=PROJECT_ROOT, env=env
    )
    print(f"\nCoverage HTML report: {COVERAGE_DIR / 'html' / 'index.html'}")


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run the unit tests with coverage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--package",
        "-p",
        action="append",
        dest="packages",
        choices=PACKAGES,
        help="Package(s) to test (repeatable, default: all)",
    )
    parser.add_argument("--open", "-o", action="store_true", help="Open the HTML report")
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")
    args = parser.parse_args()

    COVERAGE_DIR.mkdir(exist_ok=True)
    exit_code = 0
    data_files = []
    for package in args.packages or PACKAGES:
        try:
            data_file = run_package(package, verbose=not args.quiet)
        except subprocess.CalledProcessError:
            exit_code = 1
            data_file = COVERAGE_DIR / f".coverage.{package}"
        if data_file is not None:
            data_files.append(data_file)

    combine_and_report(data_files)

    if args.open:
        html_report = COVERAGE_DIR / "html" / "index.html"
        if html_report.exists():
            webbrowser.open(f"file://{html_report}")
        else:
            print(f"HTML report not found at {html_report}")

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
