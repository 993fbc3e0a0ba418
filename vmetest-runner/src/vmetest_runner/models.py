"""Pydantic models for vmetest-runner execution records.

Each execution unit writes one TestExecutionRecord as ``summary.json`` into
its own run directory. The orchestrator reads the records back after every
unit has terminated.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

# Exit code and validation status of a test that left no record
MISSING_EXIT_CODE = 999
NO_SUMMARY = "NO_SUMMARY"

# Validation status of a test whose setup hook failed
SETUP_FAILED = "SETUP_FAILED"


class ExecutionStrategy(str, Enum):
    """How the orchestrator schedules tests.

    Attributes:
        SEQUENTIAL: One test at a time, in caller order.
        CONCURRENT: All tests at once, joined before reconciliation.
    """

    SEQUENTIAL = "sequential"
    CONCURRENT = "concurrent"


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


class TestExecutionRecord(BaseModel):
    """Result of one test run, persisted as ``summary.json``.

    Attributes:
        test: Test name.
        mode: Mode the test ran in.
        exit_code: Engine exit code (1 for setup failure, 999 if missing).
        results_path: Run results directory.
        kube_burner_log: Path of the teed engine log.
        validation_status: Classification of the run's validation reports.
        validation_files: Validation report paths found in the run directory.
        duration_seconds: Wall-clock duration of the run.
        timestamp: ISO-8601 time the record was written.
    """

    __test__ = False

    test: str
    mode: str
    exit_code: int
    results_path: str
    kube_burner_log: str = ""
    validation_status: str = "N/A"
    validation_files: list[str] = Field(default_factory=list)
    duration_seconds: int = 0
    timestamp: str = Field(default_factory=_now_iso)

    @property
    def missing(self) -> bool:
        """Return True for the missing-record sentinel."""
        return self.exit_code == MISSING_EXIT_CODE and self.validation_status == NO_SUMMARY

    @classmethod
    def missing_record(cls, test: str, mode: str) -> TestExecutionRecord:
        """Build the sentinel for a test that left no readable record."""
        return cls(
            test=test,
            mode=mode,
            exit_code=MISSING_EXIT_CODE,
            results_path="N/A",
            validation_status=NO_SUMMARY,
        )

    def save(self, path: Path) -> None:
        """Write the record as JSON."""
        Path(path).write_text(self.model_dump_json(indent=2) + "\n", encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> TestExecutionRecord | None:
        """Read a record, returning None if it is absent or unreadable."""
        path = Path(path)
        try:
            return cls.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValidationError) as exc:
            logger.error("Unreadable execution record %s: %s", path, exc)
            return None
