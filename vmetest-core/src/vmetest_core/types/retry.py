"""Retry policy and result types.

Classes:
    RetryPolicy: Attempt budget and two-tier wait schedule.
    RetryState: States of the retry state machine.
    RetryResult: Terminal result of a retry run.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry schedule.

    Failed attempts before ``early_wait_attempts`` are followed by a short
    wait, later ones by a long wait. No wait follows the final attempt.

    Attributes:
        max_attempts: Total attempt budget.
        early_wait_seconds: Wait after an early failed attempt.
        early_wait_attempts: Attempt number from which the long wait applies.
        late_wait_seconds: Wait after a later failed attempt.
    """

    max_attempts: int = 130
    early_wait_seconds: float = 5.0
    early_wait_attempts: int = 12
    late_wait_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.early_wait_seconds < 0 or self.late_wait_seconds < 0:
            raise ValueError("wait durations must be non-negative")
        if self.early_wait_attempts < 0:
            raise ValueError("early_wait_attempts must be non-negative")

    @classmethod
    def fixed(cls, max_attempts: int, wait_seconds: float) -> RetryPolicy:
        """Create a policy with a single constant wait.

        Args:
            max_attempts: Total attempt budget.
            wait_seconds: Wait after every failed attempt.

        Returns:
            RetryPolicy instance.
        """
        return cls(
            max_attempts=max_attempts,
            early_wait_seconds=wait_seconds,
            early_wait_attempts=0,
            late_wait_seconds=wait_seconds,
        )

    def wait_after(self, attempt: int) -> float | None:
        """Return the wait after a failed attempt.

        Args:
            attempt: 1-based number of the attempt that failed.

        Returns:
            Seconds to wait, or None if the attempt was the last one.
        """
        if attempt >= self.max_attempts:
            return None
        if attempt < self.early_wait_attempts:
            return self.early_wait_seconds
        return self.late_wait_seconds

    @property
    def worst_case_seconds(self) -> float:
        """Return the total wait if every attempt fails."""
        total = 0.0
        for attempt in range(1, self.max_attempts):
            total += self.wait_after(attempt) or 0.0
        return total


class RetryState(Enum):
    """States of the retry state machine."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RetryResult:
    """Terminal result of a retry run.

    Attributes:
        state: SUCCEEDED or EXHAUSTED.
        attempts: Number of attempts made.
        message: Human-readable description.
    """

    state: RetryState
    attempts: int
    message: str = ""

    @property
    def success(self) -> bool:
        """Return True if a probe attempt succeeded."""
        return self.state == RetryState.SUCCEEDED
