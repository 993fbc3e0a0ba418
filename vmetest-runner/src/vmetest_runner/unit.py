"""Execution unit: one workload test run.

An execution unit owns a fresh results directory
``<results_base>/<test>/<run_id>/``. It renders the mode-selected vars file
into it, runs the setup hook and the provisioning engine, classifies the
validation reports the run produced and writes ``summary.json``.

The orchestrator runs every unit as a child process:

    python -m vmetest_runner.unit <test> --run-id <id> [options] [-- engine args]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import random
import re
import shutil
import string
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Mapping, Sequence

import yaml

from vmetest_core.errors import ConfigurationError, ProvisioningError
from vmetest_core.interfaces import ClusterClient, ProvisioningEngine
from vmetest_validation.clients import OcClusterClient
from vmetest_validation.report import summarize_results

from vmetest_runner.config import (
    DEFAULT_REGISTRY,
    DEFAULT_RESULTS_BASE,
    Mode,
    RunnerSettings,
    TestDefinition,
    load_registry,
    load_vars,
    parse_mode,
)
from vmetest_runner.engine import KubeBurnerEngine
from vmetest_runner.hooks import HookContext, Hooks, get_hooks
from vmetest_runner.models import SETUP_FAILED, TestExecutionRecord

logger = logging.getLogger(__name__)

ENGINE_LOG = "kube-burner.log"
ENGINE_UUID_LOG_GLOB = "kube-burner-*.log"

# Exit code recorded when the engine binary cannot be launched
ENGINE_NOT_FOUND = 127

_SUFFIX_CHARS = string.ascii_lowercase + string.digits
_TOP_LEVEL_KEY = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*):(.*)$")


def _random_chars(count: int = 4) -> str:
    return "".join(random.choice(_SUFFIX_CHARS) for _ in range(count))


def unique_suffix(now: datetime | None = None) -> str:
    """Return the value substituted for ``TIMESTAMP`` in vars files."""
    now = now or datetime.now()
    return f"{now:%Y%m%d-%H%M%S}-{_random_chars()}"


def generate_run_id(now: datetime | None = None) -> str:
    """Return a unique run id, ``run-YYYYmmdd-HHMMSS-ffffff-xxxx``."""
    now = now or datetime.now()
    return f"run-{now:%Y%m%d-%H%M%S-%f}-{_random_chars()}"


def _yaml_scalar(value: str) -> str:
    """Format an override as a YAML scalar: numbers bare, anything else double-quoted."""
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError:
        parsed = None
    if isinstance(parsed, (int, float)) and not isinstance(parsed, bool):
        return value.strip()
    dumped = yaml.safe_dump(value, default_style='"', allow_unicode=True, width=sys.maxsize)
    return dumped.splitlines()[0]


def render_vars(
    text: str,
    suffix: str,
    results_root: Path,
    run_id: str,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Render a vars file for one run.

    Every ``TIMESTAMP`` placeholder is replaced with ``suffix``. The
    top-level ``resultsPath`` and ``runTimestamp`` keys are rewritten to the
    run's locations. Any other top-level scalar key whose exact name is set
    in ``environ`` takes the environment value: numbers verbatim, anything else as a
    quoted string.

    Args:
        text: Vars file contents.
        suffix: Unique suffix for ``TIMESTAMP``.
        results_root: Value of ``resultsPath`` (the test's results root).
        run_id: Value of ``runTimestamp``.
        environ: Environment overrides.

    Returns:
        Rendered contents.
    """
    environ = environ or {}
    lines = []
    for line in text.splitlines():
        line = line.replace("TIMESTAMP", suffix)
        match = _TOP_LEVEL_KEY.match(line)
        if match:
            key, value = match.group(1), match.group(2)
            if key == "resultsPath":
                line = f"resultsPath: {_yaml_scalar(str(results_root))}"
            elif key == "runTimestamp":
                line = f"runTimestamp: {_yaml_scalar(run_id)}"
            elif value.strip() and environ.get(key):
                line = f"{key}: {_yaml_scalar(environ[key])}"
        lines.append(line)
    return "\n".join(lines) + "\n"


class ExecutionUnit:
    """Run one test into its own results directory.

    Example:
        >>> unit = ExecutionUnit(definition, settings, generate_run_id())
        >>> record = await unit.run()
    """

    def __init__(
        self,
        definition: TestDefinition,
        settings: RunnerSettings,
        run_id: str,
        engine: ProvisioningEngine | None = None,
        hooks: Hooks | None = None,
        cluster: ClusterClient | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the unit.

        Args:
            definition: Test to run.
            settings: Runner settings.
            run_id: Unique run id naming the results directory.
            engine: Provisioning engine. Defaults to kube-burner.
            hooks: Setup hooks. Defaults to the test's registered hooks.
            cluster: Cluster client for the default hooks.
            environ: Environment overrides. Defaults to the process environment.
        """
        self._definition = definition
        self._settings = settings
        self._run_id = run_id
        self._engine = engine or KubeBurnerEngine(settings.engine_binary)
        self._hooks = hooks or get_hooks(definition.name, cluster)
        self._environ = dict(os.environ if environ is None else environ)

    @property
    def results_dir(self) -> Path:
        """Get the run's results directory."""
        return self._settings.results_dir(self._definition.name, self._run_id)

    @property
    def summary_path(self) -> Path:
        """Get the run's execution record path."""
        return self._settings.summary_path(self._definition.name, self._run_id)

    def render(self) -> Path:
        """Render the mode-selected vars file into the results directory."""
        definition = self._definition
        mode = self._settings.mode
        source = definition.vars_path(self._settings.workloads_dir, mode)
        target = self.results_dir / definition.rendered_vars_name(mode)
        text = render_vars(
            source.read_text(encoding="utf-8"),
            unique_suffix(),
            self._settings.results_base / definition.name,
            self._run_id,
            self._environ,
        )
        target.write_text(text, encoding="utf-8")
        return target

    def collect_engine_logs(self) -> list[Path]:
        """Move ``kube-burner-*.log`` files from the test directory into the results directory."""
        test_dir = self._definition.test_dir(self._settings.workloads_dir)
        moved = []
        for path in sorted(test_dir.glob(ENGINE_UUID_LOG_GLOB)):
            if not path.is_file():
                continue
            target = self.results_dir / path.name
            try:
                shutil.move(str(path), str(target))
            except OSError as exc:
                logger.warning("[%s] Cannot move %s: %s", self._definition.name, path, exc)
                continue
            moved.append(target)
        if moved:
            logger.info(
                "[%s] Moved kube-burner UUID logs to results directory", self._definition.name
            )
        return moved

    def _record(
        self, exit_code: int, validation_status: str, files: Sequence[Path], duration: int
    ) -> TestExecutionRecord:
        record = TestExecutionRecord(
            test=self._definition.name,
            mode=self._settings.mode.value,
            exit_code=exit_code,
            results_path=str(self.results_dir),
            kube_burner_log=str(self.results_dir / ENGINE_LOG),
            validation_status=validation_status,
            validation_files=[str(path) for path in files],
            duration_seconds=duration,
        )
        record.save(self.summary_path)
        return record

    async def run(self) -> TestExecutionRecord:
        """Run the test and write its execution record.

        Returns:
            The record written to ``summary.json``.

        Raises:
            ConfigurationError: If the config or vars file is missing.
        """
        definition = self._definition
        settings = self._settings
        name = definition.name
        definition.check_files(settings.workloads_dir, settings.mode)

        self.results_dir.mkdir(parents=True, exist_ok=True)
        rendered = self.render()

        logger.info("[%s] Starting test", name)
        logger.info("[%s] Mode: %s", name, settings.mode.value)
        logger.info("[%s] Config: %s", name, definition.config_path(settings.workloads_dir))
        logger.info("[%s] Vars: %s", name, rendered)
        logger.info("[%s] Results: %s", name, self.results_dir)

        start = time.monotonic()
        context = HookContext(
            test_name=name,
            vars_data=load_vars(rendered),
            workloads_dir=settings.workloads_dir,
            environ=dict(self._environ),
        )
        if not await self._hooks.setup(context):
            logger.error("[%s] Setup failed", name)
            return self._record(1, SETUP_FAILED, (), 0)

        try:
            exit_code = await self._engine.run(
                definition.config_path(settings.workloads_dir),
                rendered,
                definition.test_dir(settings.workloads_dir),
                self.results_dir / ENGINE_LOG,
                extra_args=settings.engine_args,
                env=context.environ,
            )
        except ProvisioningError as exc:
            logger.error("[%s] %s", name, exc)
            exit_code = ENGINE_NOT_FOUND

        self.collect_engine_logs()
        duration = int(round(time.monotonic() - start))

        summary = summarize_results(self.results_dir)
        if exit_code == 0:
            logger.info("[%s] Test completed successfully (%ds)", name, duration)
        else:
            logger.error("[%s] Test failed with exit code %d (%ds)", name, exit_code, duration)
        logger.info("[%s] Validation: %s", name, summary.status)

        return self._record(exit_code, summary.status, summary.files, duration)


def build_parser() -> argparse.ArgumentParser:
    """Build the execution unit argument parser."""
    parser = argparse.ArgumentParser(
        prog="python -m vmetest_runner.unit",
        description="Run one workload test into its own results directory",
    )
    parser.add_argument("test", help="Registered test name")
    parser.add_argument("--run-id", required=True, help="Unique run id")
    parser.add_argument("--mode", default=Mode.FULL.value, help="sanity or full")
    parser.add_argument("--workloads-dir", type=Path, default=Path.cwd(), help="Workloads root")
    parser.add_argument(
        "--results-base", type=Path, default=DEFAULT_RESULTS_BASE, help="Results root"
    )
    parser.add_argument(
        "--registry", type=Path, default=DEFAULT_REGISTRY, help="Workload registry file"
    )
    parser.add_argument("--engine-binary", default="kube-burner", help="kube-burner executable")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Execution unit entry point.

    Arguments after ``--`` are forwarded to the provisioning engine.

    Returns:
        0 if the engine exited with 0, otherwise 1.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    engine_args: list[str] = []
    if "--" in argv:
        index = argv.index("--")
        argv, engine_args = argv[:index], argv[index + 1 :]

    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = RunnerSettings(
            workloads_dir=args.workloads_dir,
            results_base=args.results_base,
            mode=parse_mode(args.mode),
            engine_binary=args.engine_binary,
            engine_args=tuple(engine_args),
            registry_path=args.registry,
        )
        definition = load_registry(args.registry).get(args.test)
        unit = ExecutionUnit(definition, settings, args.run_id, cluster=OcClusterClient())
        record = asyncio.run(unit.run())
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 1

    return 0 if record.exit_code == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
