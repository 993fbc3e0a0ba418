"""Tests for the retry controller."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from vmetest_core.types.retry import RetryPolicy, RetryState
from vmetest_validation.retry import RetryController


class TestRetryController:
    """Tests for RetryController."""

    async def test_first_attempt_success(self, sleeper) -> None:
        probe = AsyncMock(return_value=True)
        controller = RetryController(RetryPolicy(max_attempts=5), sleep=sleeper)

        result = await controller.run(probe)

        assert result.state == RetryState.SUCCEEDED
        assert result.attempts == 1
        assert sleeper.calls == []
        probe.assert_awaited_once()

    async def test_succeeds_on_third_attempt(self, sleeper) -> None:
        probe = AsyncMock(side_effect=[False, False, True])
        controller = RetryController(sleep=sleeper)

        result = await controller.run(probe)

        assert result.success
        assert result.attempts == 3
        assert result.message == "succeeded on attempt 3/130"
        assert sleeper.calls == [5.0, 5.0]

    async def test_switches_to_late_wait(self, sleeper) -> None:
        probe = AsyncMock(side_effect=[False] * 14 + [True])
        controller = RetryController(sleep=sleeper)

        result = await controller.run(probe)

        assert result.attempts == 15
        assert sleeper.calls == [5.0] * 11 + [30.0] * 3

    async def test_exhaustion(self, sleeper) -> None:
        probe = AsyncMock(return_value=False)
        controller = RetryController(
            RetryPolicy(max_attempts=3, early_wait_attempts=2), sleep=sleeper
        )

        result = await controller.run(probe)

        assert result.state == RetryState.EXHAUSTED
        assert result.attempts == 3
        assert result.message == "exhausted all attempts"
        # No wait after the final attempt
        assert sleeper.calls == [5.0, 30.0]
        assert probe.await_count == 3

    async def test_default_policy_worst_case(self, sleeper) -> None:
        probe = AsyncMock(return_value=False)
        controller = RetryController(sleep=sleeper)

        result = await controller.run(probe)

        assert result.attempts == 130
        assert sleeper.total == controller.policy.worst_case_seconds

    async def test_raising_probe_counts_as_failure(self, sleeper) -> None:
        probe = AsyncMock(side_effect=[RuntimeError("boom"), True])
        controller = RetryController(sleep=sleeper)

        result = await controller.run(probe)

        assert result.success
        assert result.attempts == 2

    async def test_probe_arguments_passed_on_every_attempt(self, sleeper) -> None:
        probe = AsyncMock(side_effect=[False, True])
        controller = RetryController(sleep=sleeper)

        await controller.run(probe, "target", verbose=True)

        assert probe.await_count == 2
        for call in probe.await_args_list:
            assert call.args == ("target",)
            assert call.kwargs == {"verbose": True}

    async def test_cancellation_propagates(self) -> None:
        probe = AsyncMock(return_value=False)
        controller = RetryController(RetryPolicy.fixed(5, 60.0))

        task = asyncio.create_task(controller.run(probe))
        await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
