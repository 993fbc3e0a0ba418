"""Sampling types for fleet-wide checks.

Classes:
    SampleSelection: Population size and sampling percentage.
    SampleOutcome: Aggregated result of probing a sample.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from vmetest_core.types.validation import ValidationStatus


@dataclass(frozen=True)
class SampleSelection:
    """Population size and the percentage of it to probe.

    Attributes:
        population: Number of units available.
        percentage: Percentage to sample, 0 to 100.
    """

    population: int
    percentage: int

    def __post_init__(self) -> None:
        if self.population < 0:
            raise ValueError(f"population must be non-negative, got {self.population}")
        if not 0 <= self.percentage <= 100:
            raise ValueError(f"percentage must be between 0 and 100, got {self.percentage}")

    @property
    def sample_size(self) -> int:
        """Return max(1, floor(N*p/100)) for non-empty work, else 0."""
        if self.percentage == 0 or self.population == 0:
            return 0
        size = math.floor(self.population * self.percentage / 100)
        return min(self.population, max(1, size))


@dataclass(frozen=True)
class SampleOutcome:
    """Result of probing a sampled subset of units.

    Attributes:
        status: PASS if no unit failed, PARTIAL if any did, SKIP if
            nothing was probed.
        validated: Number of units probed.
        passed: Number of units whose probe succeeded.
        duration_seconds: Time spent probing.
    """

    status: ValidationStatus
    validated: int = 0
    passed: int = 0
    duration_seconds: float = 0.0

    @property
    def failed(self) -> int:
        """Return the number of probed units that failed."""
        return self.validated - self.passed

    @classmethod
    def skipped(cls) -> SampleOutcome:
        """Return an outcome for a sample that was not taken."""
        return cls(status=ValidationStatus.SKIP)

    @classmethod
    def from_counts(
        cls, validated: int, passed: int, duration_seconds: float = 0.0
    ) -> SampleOutcome:
        """Build an outcome from probe counts.

        Args:
            validated: Number of units probed.
            passed: Number that passed.
            duration_seconds: Time spent probing.

        Returns:
            SampleOutcome with PASS when nothing failed, PARTIAL otherwise.
        """
        status = ValidationStatus.PASS if passed == validated else ValidationStatus.PARTIAL
        return cls(status, validated, passed, duration_seconds)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary."""
        return {
            "status": self.status.value,
            "vms_validated": self.validated,
            "vms_passed": self.passed,
            "vms_failed": self.failed,
            "duration_seconds": round(self.duration_seconds, 3),
        }
