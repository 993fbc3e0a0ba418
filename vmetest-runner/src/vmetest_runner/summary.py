"""Suite summary table.

Rows are derived from execution records only, so building a summary from
the same records twice yields the same table.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable

from vmetest_runner.models import TestExecutionRecord

RULE_WIDTH = 80
ROW_FORMAT = "%-24s %-10s %-12s %-12s"


class SuiteStatus(str, Enum):
    """Per-test status in the suite summary.

    Attributes:
        PASS: Engine exited with 0.
        FAIL: Engine exited non-zero or setup failed.
        MISSING: The unit left no readable execution record.
    """

    PASS = "PASS"
    FAIL = "FAIL"
    MISSING = "MISSING"

    @classmethod
    def of(cls, record: TestExecutionRecord) -> SuiteStatus:
        """Classify a record."""
        if record.missing:
            return cls.MISSING
        return cls.PASS if record.exit_code == 0 else cls.FAIL


def format_duration(seconds: int) -> str:
    """Format a duration as ``1h 2m 3s``, ``2m 3s`` or ``3s``."""
    seconds = max(0, int(seconds))
    if seconds >= 3600:
        return f"{seconds // 3600}h {seconds % 3600 // 60}m {seconds % 60}s"
    if seconds >= 60:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds}s"


@dataclass(frozen=True)
class SuiteRow:
    """One test in the summary.

    Attributes:
        test: Test name.
        status: Suite status.
        validation: Validation status of the run.
        duration_seconds: Run duration.
        results_path: Results directory, or None if unknown.
        validation_file: First validation report, if it exists.
        engine_log: Engine log shown for failures without a report.
    """

    test: str
    status: SuiteStatus
    validation: str
    duration_seconds: int
    results_path: str | None = None
    validation_file: str | None = None
    engine_log: str | None = None

    @classmethod
    def from_record(cls, record: TestExecutionRecord) -> SuiteRow:
        """Build a row, keeping only the files that exist."""
        status = SuiteStatus.of(record)
        results_path = record.results_path if record.results_path != "N/A" else None

        validation_file = None
        if record.validation_files and Path(record.validation_files[0]).is_file():
            validation_file = record.validation_files[0]

        engine_log = None
        if validation_file is None and status == SuiteStatus.FAIL and results_path:
            log = Path(results_path) / "kube-burner.log"
            if log.is_file():
                engine_log = str(log)

        return cls(
            test=record.test,
            status=status,
            validation=record.validation_status,
            duration_seconds=record.duration_seconds,
            results_path=results_path,
            validation_file=validation_file,
            engine_log=engine_log,
        )


@dataclass(frozen=True)
class SuiteSummary:
    """Summary of a suite run.

    Attributes:
        rows: One row per test, in run order.
        mode: Mode the suite ran in.
        execution: ``sequential`` or ``concurrent``.
        main_log: Main suite log file, if any.
    """

    rows: tuple[SuiteRow, ...]
    mode: str
    execution: str
    main_log: str | None = None

    @classmethod
    def from_records(
        cls,
        records: Iterable[TestExecutionRecord],
        mode: str,
        execution: str,
        main_log: Path | str | None = None,
    ) -> SuiteSummary:
        """Build a summary from execution records."""
        return cls(
            rows=tuple(SuiteRow.from_record(record) for record in records),
            mode=mode,
            execution=execution,
            main_log=str(main_log) if main_log is not None else None,
        )

    @property
    def total(self) -> int:
        """Get the number of tests."""
        return len(self.rows)

    @property
    def passed(self) -> int:
        """Get the number of passed tests."""
        return sum(1 for row in self.rows if row.status == SuiteStatus.PASS)

    @property
    def failed(self) -> int:
        """Get the number of failed or missing tests."""
        return self.total - self.passed

    @property
    def missing(self) -> int:
        """Get the number of tests without an execution record."""
        return sum(1 for row in self.rows if row.status == SuiteStatus.MISSING)

    @property
    def exit_code(self) -> int:
        """Return 0 if every test passed, otherwise 1."""
        return 0 if self.failed == 0 else 1

    def render(self) -> str:
        """Render the summary table."""
        lines = [
            "",
            "=" * RULE_WIDTH,
            "VME Test Suite Summary".center(RULE_WIDTH).rstrip(),
            "=" * RULE_WIDTH,
            f"MODE: {self.mode} | EXECUTION: {self.execution} | TESTS: {self.total}",
        ]
        if self.main_log:
            lines.append(f"MAIN LOG: {self.main_log}")
        header = ROW_FORMAT % ("TEST", "STATUS", "VALIDATION", "DURATION")
        lines += ["", header.rstrip(), "-" * RULE_WIDTH]

        for row in self.rows:
            duration = format_duration(row.duration_seconds)
            line = ROW_FORMAT % (row.test, row.status.value, row.validation, duration)
            lines.append(line.rstrip())
            if row.results_path:
                lines.append(f"  Results: {row.results_path}/")
            if row.validation_file:
                lines.append(f"  Validation: {row.validation_file}")
            elif row.engine_log:
                lines.append(f"  Log: {row.engine_log}")
            lines.append("")

        lines += [
            "=" * RULE_WIDTH,
            f"PASSED: {self.passed} | FAILED: {self.failed} | TOTAL: {self.total}",
            "=" * RULE_WIDTH,
        ]
        if self.main_log:
            lines += ["", "Main log file:", f"  {self.main_log}"]
        return "\n".join(lines) + "\n"
