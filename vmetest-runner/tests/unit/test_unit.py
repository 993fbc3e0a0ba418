"""Tests for the execution unit."""

from __future__ import annotations

import json
import re
from datetime import datetime
from pathlib import Path

import pytest
import yaml

from vmetest_core.errors import ConfigurationError, ProvisioningError
from vmetest_runner.config import Mode, Registry, RunnerSettings
from vmetest_runner.hooks import HookContext, Hooks
from vmetest_runner.models import SETUP_FAILED, TestExecutionRecord
from vmetest_runner.unit import ExecutionUnit, generate_run_id, main, render_vars, unique_suffix

RUN_ID = "run-20250101-120000-000001-abcd"


class FailingSetup(Hooks):
    """Hooks whose setup always fails."""

    async def setup(self, context: HookContext) -> bool:
        return False


class ExportingSetup(Hooks):
    """Hooks exporting a variable to the engine."""

    async def setup(self, context: HookContext) -> bool:
        context.environ["targetNode"] = "worker-1"
        return True


def _report(results_dir: Path, name: str, status: str) -> None:
    report = {"testName": name, "overallStatus": status}
    (results_dir / f"validation-{name}.json").write_text(json.dumps(report))


def _unit(
    registry: Registry, settings: RunnerSettings, engine, name: str = "cpu-limits", **kwargs
) -> ExecutionUnit:
    kwargs.setdefault("hooks", Hooks())
    return ExecutionUnit(registry.get(name), settings, RUN_ID, engine=engine, **kwargs)


class TestRunIds:
    """Tests for run id and suffix generation."""

    def test_run_id_format(self) -> None:
        run_id = generate_run_id(datetime(2025, 1, 2, 3, 4, 5, 6))
        assert re.fullmatch(r"run-20250102-030405-000006-[a-z0-9]{4}", run_id)

    def test_run_ids_unique(self) -> None:
        assert len({generate_run_id() for _ in range(50)}) == 50

    def test_unique_suffix(self) -> None:
        suffix = unique_suffix(datetime(2025, 1, 2, 3, 4, 5))
        assert re.fullmatch(r"20250102-030405-[a-z0-9]{4}", suffix)


class TestRenderVars:
    """Tests for render_vars."""

    TEXT = (
        "namespace: test-TIMESTAMP\n"
        "resultsPath: /old\n"
        "runTimestamp: old\n"
        "nicCount: 3\n"
        "labels:\n"
        "  nicCount: 9\n"
    )

    def test_substitutions(self) -> None:
        text = render_vars(self.TEXT, "sfx", Path("/results/nic"), RUN_ID)
        data = yaml.safe_load(text)

        assert data["namespace"] == "test-sfx"
        assert data["resultsPath"] == "/results/nic"
        assert data["runTimestamp"] == RUN_ID
        assert data["nicCount"] == 3

    def test_environment_overrides_top_level_keys(self) -> None:
        environ = {"nicCount": "20", "labels": "x", "NICCOUNT": "1"}
        text = render_vars(self.TEXT, "sfx", Path("/r"), RUN_ID, environ)
        data = yaml.safe_load(text)

        assert data["nicCount"] == 20
        assert data["labels"] == {"nicCount": 9}

    @pytest.mark.parametrize("value", ["my: class", "yes", "a #comment", "[x", "'quoted'"])
    def test_environment_overrides_stay_strings(self, value: str) -> None:
        text = render_vars(self.TEXT, "sfx", Path("/r"), RUN_ID, {"nicCount": value})
        data = yaml.safe_load(text)

        assert data["nicCount"] == value
        assert data["namespace"] == "test-sfx"

    def test_environment_does_not_override_run_keys(self) -> None:
        text = render_vars(self.TEXT, "sfx", Path("/r"), RUN_ID, {"resultsPath": "/elsewhere"})
        assert yaml.safe_load(text)["resultsPath"] == "/r"


class TestExecutionUnit:
    """Tests for ExecutionUnit.run."""

    async def test_successful_run(
        self, registry: Registry, settings: RunnerSettings, engine
    ) -> None:
        definition = registry.get("cpu-limits")
        workload_dir = settings.workloads_dir / definition.directory

        def produce(results_dir: Path) -> None:
            _report(results_dir, "cpu-limits", "SUCCESS")
            (workload_dir / "kube-burner-1234.log").write_text("uuid log")

        engine.before_exit = produce
        unit = _unit(registry, settings, engine, environ={})
        record = await unit.run()

        results_dir = settings.results_base / "cpu-limits" / RUN_ID
        assert record.exit_code == 0
        assert record.validation_status == "SUCCESS"
        assert record.results_path == str(results_dir)
        assert record.validation_files == [str(results_dir / "validation-cpu-limits.json")]
        assert (results_dir / "kube-burner.log").read_text() == "engine output\n"
        assert (results_dir / "kube-burner-1234.log").exists()
        assert not (workload_dir / "kube-burner-1234.log").exists()

        call = engine.calls[0]
        assert call["cwd"] == settings.workloads_dir / "resource-limits/cpu-limits"
        assert call["user_data"] == results_dir / "vars-cpu-limits-full.yml"
        assert call["config"] == workload_dir / "cpu-limits-test.yml"

        rendered = yaml.safe_load((results_dir / "vars-cpu-limits-full.yml").read_text())
        assert rendered["resultsPath"] == str(settings.results_base / "cpu-limits")
        assert rendered["runTimestamp"] == RUN_ID
        assert "TIMESTAMP" not in rendered["namespace"]

        saved = TestExecutionRecord.load(results_dir / "summary.json")
        assert saved == record

    async def test_engine_failure(
        self, registry: Registry, settings: RunnerSettings, engine
    ) -> None:
        engine.exit_code = 2
        engine.before_exit = lambda results_dir: _report(results_dir, "cpu-limits", "FAILED")

        record = await _unit(registry, settings, engine).run()

        assert record.exit_code == 2
        assert record.validation_status == "FAILED"

    async def test_no_reports(self, registry: Registry, settings: RunnerSettings, engine) -> None:
        record = await _unit(registry, settings, engine).run()

        assert record.validation_status == "N/A"
        assert record.validation_files == []

    async def test_sanity_mode(self, registry: Registry, settings: RunnerSettings, engine) -> None:
        sanity = RunnerSettings(
            workloads_dir=settings.workloads_dir,
            results_base=settings.results_base,
            mode=Mode.SANITY,
        )
        record = await _unit(registry, sanity, engine).run()

        rendered = Path(record.results_path) / "vars-cpu-limits-sanity.yml"
        assert yaml.safe_load(rendered.read_text())["cpuCores"] == 1
        assert record.mode == "sanity"

    async def test_setup_failure(
        self, registry: Registry, settings: RunnerSettings, engine
    ) -> None:
        unit = _unit(registry, settings, engine, hooks=FailingSetup())
        record = await unit.run()

        assert record.exit_code == 1
        assert record.validation_status == SETUP_FAILED
        assert record.duration_seconds == 0
        assert engine.calls == []
        assert unit.summary_path.exists()

    async def test_setup_exports_reach_engine(
        self, registry: Registry, settings: RunnerSettings, engine
    ) -> None:
        unit = _unit(registry, settings, engine, hooks=ExportingSetup(), environ={"A": "1"})
        await unit.run()

        assert engine.calls[0]["env"] == {"A": "1", "targetNode": "worker-1"}

    async def test_engine_args_forwarded(
        self, registry: Registry, settings: RunnerSettings, engine
    ) -> None:
        forwarding = RunnerSettings(
            workloads_dir=settings.workloads_dir,
            results_base=settings.results_base,
            engine_args=("--timeout=2h",),
        )
        await _unit(registry, forwarding, engine).run()

        assert engine.calls[0]["extra_args"] == ("--timeout=2h",)

    async def test_engine_not_found(self, registry: Registry, settings: RunnerSettings) -> None:
        class MissingEngine:
            async def run(self, *args, **kwargs) -> int:
                raise ProvisioningError("Cannot launch kube-burner")

        unit = _unit(registry, settings, MissingEngine())
        record = await unit.run()

        assert record.exit_code == 127
        assert unit.summary_path.exists()

    async def test_missing_vars_file(
        self, registry: Registry, settings: RunnerSettings, engine
    ) -> None:
        sanity = RunnerSettings(
            workloads_dir=settings.workloads_dir,
            results_base=settings.results_base,
            mode=Mode.SANITY,
        )
        unit = _unit(registry, sanity, engine, "disk-hotplug")

        with pytest.raises(ConfigurationError, match="Vars file not found"):
            await unit.run()
        assert not unit.results_dir.exists()


class TestMain:
    """Tests for the execution unit entry point."""

    def test_unknown_test(self, settings: RunnerSettings) -> None:
        code = main(
            [
                "nope",
                "--run-id",
                RUN_ID,
                "--workloads-dir",
                str(settings.workloads_dir),
                "--results-base",
                str(settings.results_base),
                "--registry",
                str(settings.registry_path),
            ]
        )
        assert code == 1

    def test_invalid_mode(self, settings: RunnerSettings) -> None:
        code = main(
            [
                "cpu-limits",
                "--run-id",
                RUN_ID,
                "--mode",
                "quick",
                "--registry",
                str(settings.registry_path),
            ]
        )
        assert code == 1
