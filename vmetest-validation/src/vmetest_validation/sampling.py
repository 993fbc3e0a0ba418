"""Sampled per-unit validation across a large fleet.

Expensive per-unit probes (remote command execution) are run against a
uniformly drawn subset of the population. Each sampled unit gets its own
bounded retry; the aggregate result is PASS when every sampled unit passed
and PARTIAL otherwise. A sampled check never fails its report.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, Sequence, TypeVar

from vmetest_core.types.retry import RetryPolicy
from vmetest_core.types.sampling import SampleOutcome, SampleSelection

from vmetest_validation.retry import RetryController, Sleeper

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Interval between per-unit probe attempts
DEFAULT_RETRY_INTERVAL = 15.0


def sample_size(population: int, percentage: int) -> int:
    """Return the number of units to probe.

    Args:
        population: Number of units available.
        percentage: Percentage to sample, 0 to 100.

    Returns:
        max(1, floor(population * percentage / 100)) for non-empty work,
        otherwise 0.

    Raises:
        ValueError: If the percentage is outside 0..100.
    """
    return SampleSelection(population, percentage).sample_size


def select_sample(
    population: Sequence[T], percentage: int, rng: random.Random | None = None
) -> list[T]:
    """Draw a uniform sample without replacement.

    Args:
        population: Units to sample from.
        percentage: Percentage to sample, 0 to 100.
        rng: Random source. Defaults to the module-level generator.

    Returns:
        List of distinct sampled units.
    """
    size = sample_size(len(population), percentage)
    if size == 0:
        return []
    return (rng or random).sample(list(population), size)


class SamplingValidator:
    """Probe a sampled subset of units with per-unit retries."""

    def __init__(
        self,
        sleep: Sleeper = asyncio.sleep,
        rng: random.Random | None = None,
        retry_interval_seconds: float = DEFAULT_RETRY_INTERVAL,
    ) -> None:
        """Initialize the validator.

        Args:
            sleep: Coroutine used to wait between per-unit attempts.
            rng: Random source used to draw the sample.
            retry_interval_seconds: Wait between per-unit attempts.
        """
        self._sleep = sleep
        self._rng = rng
        self._retry_interval = retry_interval_seconds

    @property
    def retry_interval_seconds(self) -> float:
        """Get the wait between per-unit attempts."""
        return self._retry_interval

    async def validate(
        self,
        population: Sequence[T],
        percentage: int,
        max_retries: int,
        probe: Callable[[T], Awaitable[bool]],
        credentials_available: bool = True,
    ) -> SampleOutcome:
        """Probe a sample of the population.

        Args:
            population: Units to sample from.
            percentage: Percentage to sample, 0 to 100.
            max_retries: Attempt budget per sampled unit.
            probe: Async callable returning True when a unit passes.
            credentials_available: Whether remote credentials are configured.

        Returns:
            SampleOutcome with SKIP, PASS or PARTIAL status.
        """
        if percentage == 0 or not credentials_available:
            reason = "percentage is 0" if percentage == 0 else "no credentials"
            logger.info("Skipping sampled validation (%s)", reason)
            return SampleOutcome.skipped()

        start = time.monotonic()
        sample = select_sample(population, percentage, self._rng)
        logger.info(
            "Validating %d of %d units (%d%%), up to %d attempts each",
            len(sample),
            len(population),
            percentage,
            max_retries,
        )

        controller = RetryController(
            RetryPolicy.fixed(max(1, max_retries), self._retry_interval),
            sleep=self._sleep,
            name=getattr(probe, "name", "probe"),
        )

        passed = 0
        for unit in sample:
            result = await controller.run(probe, unit)
            if result.success:
                passed += 1
                logger.info("  %s: passed (attempt %d)", unit, result.attempts)
            else:
                logger.warning("  %s: failed after %d attempts", unit, result.attempts)

        outcome = SampleOutcome.from_counts(len(sample), passed, time.monotonic() - start)
        logger.info(
            "Sampled validation %s: %d/%d passed",
            outcome.status.value,
            outcome.passed,
            outcome.validated,
        )
        return outcome
