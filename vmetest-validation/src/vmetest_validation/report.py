"""Validation report persistence and classification.

Each check attempt writes ``validation-<test>.json`` into the results
directory, overwriting the report of the previous attempt. After a run the
reports found under the results directory are classified into a single
validation status for the run summary.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from vmetest_core.types.validation import ValidationReport

logger = logging.getLogger(__name__)

REPORT_GLOB = "validation-*.json"

# Report statuses counted as success
SUCCESS_STATUSES = frozenset({"SUCCESS", "PASS"})

# Validation status when no report exists
NO_REPORTS = "N/A"

# Validation status when a report cannot be read
UNREADABLE = "UNKNOWN"

# At most this many reports are classified per run
MAX_REPORTS = 5


def report_path(results_dir: Path, test_name: str) -> Path:
    """Return the report file path for a test."""
    return Path(results_dir) / f"validation-{test_name}.json"


def write_report(report: ValidationReport, results_dir: Path) -> Path:
    """Write a validation report as JSON.

    Args:
        report: Report to write.
        results_dir: Directory receiving the report; created if missing.

    Returns:
        Path to the written report.
    """
    results_dir = Path(results_dir)
    results_dir.mkdir(parents=True, exist_ok=True)
    path = report_path(results_dir, report.test_name)
    path.write_text(json.dumps(report.to_dict(), indent=2) + "\n")
    logger.info("Validation report saved to: %s", path)
    return path


def scan_reports(results_path: Path, limit: int = MAX_REPORTS) -> list[Path]:
    """Find validation reports below a results directory.

    Args:
        results_path: Directory to search recursively.
        limit: Maximum number of reports returned.

    Returns:
        Sorted report paths.
    """
    results_path = Path(results_path)
    if not results_path.is_dir():
        return []
    return sorted(results_path.rglob(REPORT_GLOB))[:limit]


def _report_status(path: Path) -> str:
    try:
        data: dict[str, Any] = json.loads(path.read_text())
    except (OSError, ValueError) as exc:
        logger.warning("Cannot read validation report %s: %s", path, exc)
        return UNREADABLE
    status = data.get("overallStatus") or data.get("status")
    return str(status) if status else UNREADABLE


@dataclass(frozen=True)
class ValidationSummary:
    """Classification of the reports of one run.

    Attributes:
        status: ``SUCCESS``, the first non-success status, or ``N/A``.
        files: Report paths considered.
    """

    status: str
    files: tuple[Path, ...] = ()

    @property
    def primary_file(self) -> Path | None:
        """Return the first report, if any."""
        return self.files[0] if self.files else None


def classify_reports(paths: Iterable[Path]) -> ValidationSummary:
    """Derive a single validation status from a set of reports.

    The status is ``SUCCESS`` only if every report's ``overallStatus`` (or
    ``status``) is ``SUCCESS`` or ``PASS``; otherwise it is the first
    non-success status encountered. No reports yields ``N/A``.

    Args:
        paths: Report file paths.

    Returns:
        ValidationSummary instance.
    """
    files = tuple(paths)
    if not files:
        return ValidationSummary(NO_REPORTS)

    for path in files:
        status = _report_status(path)
        if status not in SUCCESS_STATUSES:
            return ValidationSummary(status, files)
    return ValidationSummary("SUCCESS", files)


def summarize_results(results_path: Path) -> ValidationSummary:
    """Scan and classify the reports of one run directory."""
    return classify_reports(scan_reports(results_path))
