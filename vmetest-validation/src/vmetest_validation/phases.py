"""Phase recording for multi-phase checks."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Iterator

from vmetest_core.types.validation import ValidationOutcome, ValidationStatus

logger = logging.getLogger(__name__)

NOT_EVALUATED = "Not evaluated (earlier phase failed)"
NO_CREDENTIALS = "SSH credentials not provided"


class PhaseContext:
    """Mutable status holder for a phase in progress."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.status = ValidationStatus.SKIP
        self.message = NOT_EVALUATED
        self.extra: dict[str, Any] = {}

    def set(self, status: ValidationStatus, message: str, **extra: Any) -> None:
        """Set the phase result."""
        self.status = status
        self.message = message
        self.extra.update(extra)

    def passed(self, message: str, **extra: Any) -> None:
        """Mark the phase as passed."""
        self.set(ValidationStatus.PASS, message, **extra)

    def failed(self, message: str, **extra: Any) -> None:
        """Mark the phase as failed."""
        self.set(ValidationStatus.FAIL, message, **extra)

    def skipped(self, message: str, **extra: Any) -> None:
        """Mark the phase as skipped."""
        self.set(ValidationStatus.SKIP, message, **extra)


class PhaseRecorder:
    """Collect timed phase outcomes for one check attempt.

    Example:
        >>> recorder = PhaseRecorder("cpu-limits")
        >>> with recorder.phase("vm_discovery") as phase:
        ...     phase.passed("Found 2 VMs")
        >>> recorder.failed
        False
    """

    def __init__(self, check_name: str) -> None:
        self._check_name = check_name
        self._outcomes: list[ValidationOutcome] = []

    @property
    def outcomes(self) -> tuple[ValidationOutcome, ...]:
        """Get the recorded outcomes in order."""
        return tuple(self._outcomes)

    @property
    def failed(self) -> bool:
        """Return True if any recorded phase failed."""
        return any(o.failed for o in self._outcomes)

    def _record(self, outcome: ValidationOutcome) -> None:
        self._outcomes.append(outcome)
        log = logger.warning if outcome.failed else logger.info
        log(
            "[%s] %s %s: %s",
            self._check_name,
            outcome.phase,
            outcome.status.value,
            outcome.message,
        )

    @contextmanager
    def phase(self, name: str) -> Iterator[PhaseContext]:
        """Time a phase and record its outcome on exit.

        A phase left unset is recorded as SKIP.
        """
        context = PhaseContext(name)
        start = time.monotonic()
        try:
            yield context
        finally:
            self._record(
                ValidationOutcome(
                    phase=name,
                    status=context.status,
                    message=context.message,
                    duration_seconds=time.monotonic() - start,
                    extra=dict(context.extra),
                )
            )

    def skip(self, name: str, message: str = NOT_EVALUATED) -> None:
        """Record a phase that was not run."""
        self._record(ValidationOutcome(phase=name, status=ValidationStatus.SKIP, message=message))
