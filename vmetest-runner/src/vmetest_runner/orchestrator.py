"""Suite orchestrator.

The orchestrator runs every test as an independent child process (an
execution unit) and never shares memory with it. Each test is assigned a run
id before launch, so the location of its execution record is known up
front. After the children terminate the records are read back from disk;
a test without a readable record becomes a sentinel row counted as a
failure.

Example:
    >>> orchestrator = Orchestrator(load_registry(), settings)
    >>> tests = ["cpu-limits", "memory-limits"]
    >>> result = await orchestrator.run(tests, ExecutionStrategy.CONCURRENT)
    >>> result.exit_code
    0
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Sequence

import yaml

from vmetest_core.interfaces import ClusterClient

from vmetest_runner.config import Registry, RunnerSettings, TestDefinition, load_vars
from vmetest_runner.hooks import HookContext, Hooks, get_hooks
from vmetest_runner.models import ExecutionStrategy, TestExecutionRecord
from vmetest_runner.unit import generate_run_id

logger = logging.getLogger(__name__)

DEFAULT_UNIT_COMMAND: tuple[str, ...] = (sys.executable, "-m", "vmetest_runner.unit")

_UNIT_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _unit_log_level() -> str:
    name = logging.getLevelName(logging.getLogger().getEffectiveLevel())
    return name if name in _UNIT_LOG_LEVELS else "INFO"


@dataclass(frozen=True)
class ScheduledTest:
    """A test with its assigned run id."""

    definition: TestDefinition
    run_id: str

    @property
    def name(self) -> str:
        """Get the test name."""
        return self.definition.name


@dataclass(frozen=True)
class SuiteResult:
    """Reconciled records of a suite run.

    Attributes:
        records: One record per test, in request order.
        strategy: Strategy the suite ran with.
        duration_seconds: Wall-clock duration of the suite.
    """

    records: tuple[TestExecutionRecord, ...]
    strategy: ExecutionStrategy
    duration_seconds: float = 0.0

    @property
    def exit_code(self) -> int:
        """Return 0 if every test exited with 0, otherwise 1."""
        return 0 if all(record.exit_code == 0 for record in self.records) else 1

    @property
    def missing(self) -> list[str]:
        """Get the names of tests without an execution record."""
        return [record.test for record in self.records if record.missing]


class Orchestrator:
    """Run registered tests sequentially or concurrently."""

    def __init__(
        self,
        registry: Registry,
        settings: RunnerSettings,
        cluster: ClusterClient | None = None,
        unit_command: Sequence[str] = DEFAULT_UNIT_COMMAND,
        hooks_factory: Callable[[str, ClusterClient | None], Hooks] = get_hooks,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            registry: Workload registry.
            settings: Runner settings passed on to every unit.
            cluster: Cluster client for cleanup hooks.
            unit_command: Command launching an execution unit.
            hooks_factory: Returns the hooks of a test.
            environ: Environment of the units. Defaults to the process environment.
        """
        self._registry = registry
        self._settings = settings
        self._cluster = cluster
        self._unit_command = tuple(unit_command)
        self._hooks_factory = hooks_factory
        self._environ = dict(os.environ if environ is None else environ)

    def schedule(self, test_names: Sequence[str]) -> list[ScheduledTest]:
        """Resolve test names and assign run ids.

        Duplicate names are run once.

        Raises:
            RegistryError: If a name is not registered.
            ConfigurationError: If a config or vars file is missing.
        """
        definitions = [self._registry.get(name) for name in dict.fromkeys(test_names)]
        for definition in definitions:
            definition.check_files(self._settings.workloads_dir, self._settings.mode)
        return [ScheduledTest(definition, generate_run_id()) for definition in definitions]

    def build_command(self, test: ScheduledTest) -> list[str]:
        """Build the command line of one execution unit."""
        settings = self._settings
        command = [
            *self._unit_command,
            test.name,
            "--run-id",
            test.run_id,
            "--mode",
            settings.mode.value,
            "--workloads-dir",
            str(settings.workloads_dir),
            "--results-base",
            str(settings.results_base),
            "--registry",
            str(settings.registry_path),
            "--engine-binary",
            settings.engine_binary,
            "--log-level",
            _unit_log_level(),
        ]
        if settings.engine_args:
            command += ["--", *settings.engine_args]
        return command

    def unit_log_path(self, test: ScheduledTest) -> Path:
        """Return the temporary output log of a unit."""
        return self._settings.results_base / f"{test.name}-parallel-{os.getpid()}.log"

    async def run(
        self,
        test_names: Sequence[str],
        strategy: ExecutionStrategy | None = None,
    ) -> SuiteResult:
        """Run tests and reconcile their records.

        Args:
            test_names: Registered test names, in run order.
            strategy: Execution strategy. Defaults to the settings' strategy.

        Returns:
            SuiteResult with one record per test.

        Raises:
            ConfigurationError: If a test is unknown or its files are missing;
                nothing is launched in that case.
        """
        strategy = strategy or self._settings.strategy
        scheduled = self.schedule(test_names)
        self._settings.results_base.mkdir(parents=True, exist_ok=True)

        logger.info(
            "Running %d test(s) (%s, mode %s)",
            len(scheduled),
            strategy.value,
            self._settings.mode.value,
        )
        start = time.monotonic()

        if strategy == ExecutionStrategy.SEQUENTIAL:
            for test in scheduled:
                try:
                    await self._execute(test)
                except Exception as exc:  # pylint: disable=broad-exception-caught
                    logger.error("[%s] Execution failed: %s", test.name, exc)
        else:
            results = await asyncio.gather(
                *(self._execute(test) for test in scheduled), return_exceptions=True
            )
            for test, result in zip(scheduled, results):
                if isinstance(result, BaseException):
                    logger.error("[%s] Execution failed: %s", test.name, result)

        records = tuple(self.reconcile(test) for test in scheduled)
        duration = time.monotonic() - start
        return SuiteResult(records=records, strategy=strategy, duration_seconds=duration)

    async def _execute(self, test: ScheduledTest) -> int | None:
        """Run one unit to termination, replay its output and run its cleanup."""
        try:
            return await self._launch(test)
        finally:
            await self._cleanup(test)

    async def _launch(self, test: ScheduledTest) -> int | None:
        command = self.build_command(test)
        log_path = self.unit_log_path(test)
        logger.info("[%s] Starting (run %s)", test.name, test.run_id)
        logger.debug("[%s] Command: %s", test.name, " ".join(command))

        try:
            with open(log_path, "wb") as output:
                try:
                    proc = await asyncio.create_subprocess_exec(
                        *command,
                        stdout=output,
                        stderr=asyncio.subprocess.STDOUT,
                        env=self._environ,
                    )
                except OSError as exc:
                    logger.error("[%s] Cannot launch execution unit: %s", test.name, exc)
                    return None
                logger.info("[%s] Started with PID %d", test.name, proc.pid)
                returncode = await proc.wait()
        finally:
            self._replay(test, log_path)

        if returncode == 0:
            logger.info("[%s] PID %d completed successfully", test.name, proc.pid)
        else:
            logger.info("[%s] PID %d failed with exit code %d", test.name, proc.pid, returncode)
        return returncode

    def _replay(self, test: ScheduledTest, log_path: Path) -> None:
        """Copy a unit's output into the main log and remove the temporary file."""
        try:
            text = log_path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return
        for line in text.splitlines():
            logger.info("[%s] %s", test.name, line)
        log_path.unlink(missing_ok=True)

    async def _cleanup(self, test: ScheduledTest) -> None:
        settings = self._settings
        results_dir = settings.results_dir(test.name, test.run_id)
        rendered = results_dir / test.definition.rendered_vars_name(settings.mode)
        if not rendered.is_file():
            rendered = test.definition.vars_path(settings.workloads_dir, settings.mode)

        try:
            vars_data = load_vars(rendered)
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("[%s] Cannot read %s for cleanup: %s", test.name, rendered, exc)
            vars_data = {}

        context = HookContext(
            test_name=test.name,
            vars_data=vars_data,
            workloads_dir=settings.workloads_dir,
            environ=dict(self._environ),
        )
        try:
            await self._hooks_factory(test.name, self._cluster).cleanup(context)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("[%s] Cleanup failed: %s", test.name, exc)

    def reconcile(self, test: ScheduledTest) -> TestExecutionRecord:
        """Read a test's execution record, or build the missing-record sentinel."""
        path = self._settings.summary_path(test.name, test.run_id)
        record = TestExecutionRecord.load(path)
        if record is None:
            logger.error(
                "[%s] MISSING: no execution record at %s, counting as failure", test.name, path
            )
            return TestExecutionRecord.missing_record(test.name, self._settings.mode.value)

        logger.info(
            "[%s] Loaded results: exit=%d, duration=%ds, validation=%s",
            test.name,
            record.exit_code,
            record.duration_seconds,
            record.validation_status,
        )
        return record
