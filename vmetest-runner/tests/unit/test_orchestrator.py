"""Tests for the suite orchestrator.

Execution units are replaced by a stand-in script launched as a real child
process. It writes a summary.json the way a unit does, unless told to die
first.
"""

from __future__ import annotations

import logging
import os
import sys
import textwrap
from pathlib import Path

import pytest

from vmetest_core.errors import ConfigurationError, RegistryError
from vmetest_runner.config import Registry, RunnerSettings
from vmetest_runner.hooks import HookContext, Hooks
from vmetest_runner.models import MISSING_EXIT_CODE, NO_SUMMARY, ExecutionStrategy
from vmetest_runner.orchestrator import Orchestrator, ScheduledTest
from vmetest_runner.summary import SuiteStatus, SuiteSummary

TESTS = ["cpu-limits", "disk-hotplug", "per-host-density"]

STAND_IN_UNIT = textwrap.dedent("""\
    import json
    import os
    import sys
    from pathlib import Path

    argv = sys.argv[1:]
    if "--" in argv:
        argv = argv[: argv.index("--")]
    test = argv[0]
    options = dict(zip(argv[1::2], argv[2::2]))
    print(f"unit {test} started")
    sys.stdout.flush()

    if test in os.environ.get("STANDIN_CRASH", "").split(","):
        os._exit(9)

    results = Path(options["--results-base"]) / test / options["--run-id"]
    results.mkdir(parents=True, exist_ok=True)
    exit_code = 2 if test in os.environ.get("STANDIN_FAIL", "").split(",") else 0
    record = {
        "test": test,
        "mode": options["--mode"],
        "exit_code": exit_code,
        "results_path": str(results),
        "kube_burner_log": str(results / "kube-burner.log"),
        "validation_status": "SUCCESS" if exit_code == 0 else "FAILED",
        "validation_files": [],
        "duration_seconds": 1,
        "timestamp": "2025-01-01T00:00:00+00:00",
    }
    (results / "summary.json").write_text(json.dumps(record))
    sys.exit(exit_code)
    """)


class RecordingHooks(Hooks):
    """Hooks recording every cleanup call."""

    def __init__(self, calls: list[str], fail: bool = False) -> None:
        super().__init__()
        self.calls = calls
        self.fail = fail

    async def cleanup(self, context: HookContext) -> None:
        self.calls.append(context.test_name)
        if self.fail:
            raise RuntimeError("cleanup exploded")


@pytest.fixture
def stand_in(tmp_path: Path) -> Path:
    """Write the stand-in execution unit script."""
    path = tmp_path / "stand_in_unit.py"
    path.write_text(STAND_IN_UNIT)
    return path


@pytest.fixture
def cleanups() -> list[str]:
    """Collect cleanup calls."""
    return []


def _orchestrator(
    registry: Registry,
    settings: RunnerSettings,
    stand_in: Path,
    cleanups: list[str],
    crash: str = "",
    fail: str = "",
    cleanup_fails: bool = False,
) -> Orchestrator:
    environ = {**os.environ, "STANDIN_CRASH": crash, "STANDIN_FAIL": fail}
    return Orchestrator(
        registry,
        settings,
        unit_command=(sys.executable, str(stand_in)),
        hooks_factory=lambda name, cluster: RecordingHooks(cleanups, cleanup_fails),
        environ=environ,
    )


class TestConcurrent:
    """Tests for concurrent execution."""

    async def test_reconciles_missing_record(
        self,
        registry: Registry,
        settings: RunnerSettings,
        stand_in: Path,
        cleanups: list[str],
        caplog,
    ) -> None:
        orchestrator = _orchestrator(registry, settings, stand_in, cleanups, crash="disk-hotplug")

        with caplog.at_level(logging.INFO):
            result = await orchestrator.run(TESTS, ExecutionStrategy.CONCURRENT)

        assert [record.test for record in result.records] == TESTS
        cpu, disk, density = result.records
        assert cpu.exit_code == 0 and density.exit_code == 0
        assert disk.exit_code == MISSING_EXIT_CODE
        assert disk.validation_status == NO_SUMMARY
        assert result.missing == ["disk-hotplug"]
        assert result.exit_code == 1

        summary = SuiteSummary.from_records(result.records, "full", result.strategy.value)
        statuses = [row.status for row in summary.rows]
        assert statuses == [SuiteStatus.PASS, SuiteStatus.MISSING, SuiteStatus.PASS]
        assert summary.failed == 1

        errors = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
        assert any("MISSING" in message and "disk-hotplug" in message for message in errors)

    async def test_cleanup_runs_once_per_test(
        self,
        registry: Registry,
        settings: RunnerSettings,
        stand_in: Path,
        cleanups: list[str],
    ) -> None:
        orchestrator = _orchestrator(registry, settings, stand_in, cleanups, crash="disk-hotplug")
        await orchestrator.run(TESTS, ExecutionStrategy.CONCURRENT)

        assert sorted(cleanups) == sorted(TESTS)

    async def test_output_replayed_and_removed(
        self,
        registry: Registry,
        settings: RunnerSettings,
        stand_in: Path,
        cleanups: list[str],
        caplog,
    ) -> None:
        orchestrator = _orchestrator(registry, settings, stand_in, cleanups)

        with caplog.at_level(logging.INFO):
            result = await orchestrator.run(TESTS, ExecutionStrategy.CONCURRENT)

        assert result.exit_code == 0
        for test in TESTS:
            assert f"[{test}] unit {test} started" in caplog.text
        assert list(settings.results_base.glob("*-parallel-*.log")) == []

    async def test_cleanup_failure_does_not_abort(
        self,
        registry: Registry,
        settings: RunnerSettings,
        stand_in: Path,
        cleanups: list[str],
    ) -> None:
        orchestrator = _orchestrator(registry, settings, stand_in, cleanups, cleanup_fails=True)
        result = await orchestrator.run(TESTS, ExecutionStrategy.CONCURRENT)

        assert result.exit_code == 0
        assert len(cleanups) == 3


class TestSequential:
    """Tests for sequential execution."""

    async def test_failure_does_not_stop_queue(
        self,
        registry: Registry,
        settings: RunnerSettings,
        stand_in: Path,
        cleanups: list[str],
    ) -> None:
        orchestrator = _orchestrator(registry, settings, stand_in, cleanups, fail="cpu-limits")
        result = await orchestrator.run(TESTS, ExecutionStrategy.SEQUENTIAL)

        assert [record.exit_code for record in result.records] == [2, 0, 0]
        assert cleanups == TESTS
        assert result.exit_code == 1

    async def test_unparseable_vars_does_not_skip_cleanup(
        self,
        registry: Registry,
        settings: RunnerSettings,
        stand_in: Path,
        cleanups: list[str],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        (settings.workloads_dir / "resource-limits/cpu-limits/vars.yml").write_text(
            "a: [unclosed\n"
        )
        orchestrator = _orchestrator(registry, settings, stand_in, cleanups)

        with caplog.at_level(logging.WARNING):
            result = await orchestrator.run(TESTS, ExecutionStrategy.SEQUENTIAL)

        assert [record.test for record in result.records] == TESTS
        assert cleanups == TESTS
        assert "[cpu-limits] Cannot read" in caplog.text

    async def test_defaults_to_settings_strategy(
        self,
        registry: Registry,
        settings: RunnerSettings,
        stand_in: Path,
        cleanups: list[str],
    ) -> None:
        orchestrator = _orchestrator(registry, settings, stand_in, cleanups)
        result = await orchestrator.run(["cpu-limits", "cpu-limits"])

        assert result.strategy == ExecutionStrategy.SEQUENTIAL
        assert len(result.records) == 1

    async def test_unreadable_record(
        self,
        registry: Registry,
        settings: RunnerSettings,
        stand_in: Path,
        cleanups: list[str],
    ) -> None:
        orchestrator = _orchestrator(registry, settings, stand_in, cleanups)
        test = orchestrator.schedule(["cpu-limits"])[0]
        path = settings.summary_path(test.name, test.run_id)
        path.parent.mkdir(parents=True)
        path.write_text("{not json")

        assert orchestrator.reconcile(test).missing


class TestFailFast:
    """Tests for validation before launch."""

    async def test_unknown_test(
        self,
        registry: Registry,
        settings: RunnerSettings,
        stand_in: Path,
        cleanups: list[str],
    ) -> None:
        orchestrator = _orchestrator(registry, settings, stand_in, cleanups)

        with pytest.raises(RegistryError):
            await orchestrator.run(["cpu-limits", "nope"])
        assert not settings.results_base.exists()
        assert cleanups == []

    async def test_missing_vars_file(
        self,
        registry: Registry,
        settings: RunnerSettings,
        stand_in: Path,
        cleanups: list[str],
    ) -> None:
        (settings.workloads_dir / "hot-plug/disk-hotplug/vars.yaml").unlink()
        orchestrator = _orchestrator(registry, settings, stand_in, cleanups)

        with pytest.raises(ConfigurationError, match="Vars file not found"):
            await orchestrator.run(TESTS)
        assert not settings.results_base.exists()


class TestBuildCommand:
    """Tests for the execution unit command line."""

    def test_command(self, registry: Registry, settings: RunnerSettings) -> None:
        forwarding = RunnerSettings(
            workloads_dir=settings.workloads_dir,
            results_base=settings.results_base,
            engine_args=("--timeout=2h",),
            registry_path=settings.registry_path,
        )
        orchestrator = Orchestrator(registry, forwarding, unit_command=("unit",))
        command = orchestrator.build_command(ScheduledTest(registry.get("cpu-limits"), "run-x"))

        assert command[:4] == ["unit", "cpu-limits", "--run-id", "run-x"]
        assert command[command.index("--mode") + 1] == "full"
        assert command[command.index("--results-base") + 1] == str(settings.results_base)
        assert command[command.index("--registry") + 1] == str(settings.registry_path)
        assert command[-2:] == ["--", "--timeout=2h"]

    def test_unit_log_path(self, registry: Registry, settings: RunnerSettings) -> None:
        orchestrator = Orchestrator(registry, settings)
        path = orchestrator.unit_log_path(ScheduledTest(registry.get("cpu-limits"), "run-x"))

        assert path == settings.results_base / f"cpu-limits-parallel-{os.getpid()}.log"
