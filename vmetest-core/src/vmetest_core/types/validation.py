"""Validation outcome and report types.

A check is evaluated as a sequence of named phases. Each phase produces a
ValidationOutcome; the outcomes of one check attempt are collected into an
immutable ValidationReport whose overall status is derived from them.

Classes:
    ValidationStatus: Outcome of a single phase.
    OverallStatus: Derived status of a complete report.
    ValidationOutcome: Result of one phase.
    ValidationReport: All outcomes of one check attempt.

Example:
    >>> report = ValidationReport(
    ...     test_name="cpu-limits",
    ...     namespace="cpu-limits",
    ...     validations=(ValidationOutcome("vm_discovery", ValidationStatus.PASS),),
    ... )
    >>> report.overall_status
    <OverallStatus.SUCCESS: 'SUCCESS'>
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping


class ValidationStatus(Enum):
    """Outcome of a single validation phase.

    Attributes:
        PASS: The phase verified its condition.
        FAIL: The phase found a violation; the report fails.
        SKIP: The phase could not be evaluated (missing credentials,
            unparseable magnitude, or an earlier failure).
        PARTIAL: A sampled phase where some units failed; never fails
            the report.
    """

    PASS = "PASS"
    FAIL = "FAIL"
    SKIP = "SKIP"
    PARTIAL = "PARTIAL"


class OverallStatus(Enum):
    """Derived status of a validation report."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of one validation phase.

    Attributes:
        phase: Phase name (e.g. ``vm_discovery``).
        status: Phase status.
        message: Human-readable description.
        duration_seconds: Time spent in the phase.
        extra: Additional phase-specific fields written into the report.
    """

    phase: str
    status: ValidationStatus
    message: str = ""
    duration_seconds: float = 0.0
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        """Return True if this phase failed."""
        return self.status == ValidationStatus.FAIL

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary.

        Returns:
            Dictionary with phase, status, message, duration and extras.
        """
        result: dict[str, Any] = {
            "phase": self.phase,
            "status": self.status.value,
            "message": self.message,
            "duration_seconds": round(self.duration_seconds, 3),
        }
        result.update(self.extra)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidationOutcome:
        """Deserialize from a dictionary.

        Args:
            data: Dictionary as produced by to_dict.

        Returns:
            ValidationOutcome instance.
        """
        known = {"phase", "status", "message", "duration_seconds"}
        return cls(
            phase=data["phase"],
            status=ValidationStatus(data["status"]),
            message=data.get("message", ""),
            duration_seconds=float(data.get("duration_seconds", 0.0)),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass(frozen=True)
class ValidationReport:
    """All outcomes of one check attempt.

    The overall status is FAILED if and only if at least one outcome is
    FAIL. SKIP and PARTIAL outcomes never fail the report.

    Attributes:
        test_name: Report name (e.g. ``cpu-limits``).
        namespace: Namespace the check inspected.
        parameters: Check inputs and derived counters.
        validations: Ordered phase outcomes.
        timestamp: ISO-8601 creation time.
    """

    test_name: str
    namespace: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    validations: tuple[ValidationOutcome, ...] = ()
    timestamp: str = field(default_factory=_now_iso)

    @property
    def function(self) -> str:
        """Return the check function name recorded in the report."""
        return "check_" + self.test_name.replace("-", "_")

    @property
    def overall_status(self) -> OverallStatus:
        """Return FAILED if any phase failed, else SUCCESS."""
        if any(v.failed for v in self.validations):
            return OverallStatus.FAILED
        return OverallStatus.SUCCESS

    @property
    def passed(self) -> bool:
        """Return True if the report succeeded."""
        return self.overall_status == OverallStatus.SUCCESS

    @property
    def exit_code(self) -> int:
        """Return 1 for a failed report, 0 otherwise."""
        return 0 if self.passed else 1

    def outcome(self, phase: str) -> ValidationOutcome | None:
        """Return the outcome for a phase, or None if it was not recorded."""
        for validation in self.validations:
            if validation.phase == phase:
                return validation
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the on-disk report format.

        Returns:
            Dictionary with camelCase report keys.
        """
        return {
            "testName": self.test_name,
            "function": self.function,
            "timestamp": self.timestamp,
            "namespace": self.namespace,
            "parameters": dict(self.parameters),
            "overallStatus": self.overall_status.value,
            "exitCode": self.exit_code,
            "validations": [v.to_dict() for v in self.validations],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidationReport:
        """Deserialize from the on-disk report format.

        The overall status is re-derived from the validations rather than
        read back.

        Args:
            data: Dictionary as produced by to_dict.

        Returns:
            ValidationReport instance.
        """
        return cls(
            test_name=data["testName"],
            namespace=data.get("namespace", ""),
            parameters=data.get("parameters", {}),
            validations=tuple(ValidationOutcome.from_dict(v) for v in data.get("validations", [])),
            timestamp=data.get("timestamp", ""),
        )
