"""Bounded retry of eventually-consistent checks.

The RetryController turns a flaky probe into a single verdict. The probe is
invoked afresh on every attempt; between failed attempts the controller
waits according to its RetryPolicy. Waiting is delegated to an injectable
sleep coroutine so tests can substitute a fake clock and owners can cancel
the task.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from vmetest_core.types.retry import RetryPolicy, RetryResult, RetryState

logger = logging.getLogger(__name__)

# Type alias for the sleep coroutine
Sleeper = Callable[[float], Awaitable[Any]]

# Type alias for a probe function
ProbeFunction = Callable[..., Awaitable[bool]]


class RetryController:
    """Run a probe until it succeeds or the attempt budget is spent.

    Example:
        >>> controller = RetryController(RetryPolicy(max_attempts=3))
        >>> result = await controller.run(check.execute, target)
        >>> result.success
        True
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Sleeper = asyncio.sleep,
        name: str = "validation",
    ) -> None:
        """Initialize the controller.

        Args:
            policy: Retry policy. Defaults to the standard 130-attempt policy.
            sleep: Coroutine used to wait between attempts.
            name: Name used in log messages.
        """
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._name = name

    @property
    def policy(self) -> RetryPolicy:
        """Get the retry policy."""
        return self._policy

    async def run(self, probe: ProbeFunction, *args: Any, **kwargs: Any) -> RetryResult:
        """Run the probe under the retry policy.

        A probe that raises counts as a failed attempt.

        Args:
            probe: Async callable returning True on success.
            *args: Positional arguments passed to the probe on every attempt.
            **kwargs: Keyword arguments passed to the probe on every attempt.

        Returns:
            RetryResult in state SUCCEEDED or EXHAUSTED.
        """
        state = RetryState.PENDING
        attempt = 0
        max_attempts = self._policy.max_attempts

        while state == RetryState.PENDING:
            attempt += 1
            logger.info("Attempt %d/%d: %s", attempt, max_attempts, self._name)

            if await self._attempt(probe, args, kwargs):
                state = RetryState.SUCCEEDED
                break

            wait = self._policy.wait_after(attempt)
            if wait is None:
                state = RetryState.EXHAUSTED
                break

            logger.info(
                "%s not ready yet (attempt %d/%d failed), waiting %.0fs before retry",
                self._name,
                attempt,
                max_attempts,
                wait,
            )
            await self._sleep(wait)

        if state == RetryState.SUCCEEDED:
            message = f"succeeded on attempt {attempt}/{max_attempts}"
            logger.info("%s completed successfully (%s)", self._name, message)
        else:
            message = "exhausted all attempts"
            logger.error("%s FAILED (%s: %d)", self._name, message, max_attempts)

        return RetryResult(state=state, attempts=attempt, message=message)

    async def _attempt(
        self, probe: ProbeFunction, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> bool:
        try:
            return bool(await probe(*args, **kwargs))
        except asyncio.CancelledError:
            raise
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception("%s attempt raised", self._name)
            return False
