"""Test configuration for vmetest-runner.

Provides a small workload registry with matching workload directories on
disk and a fake provisioning engine.
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Mapping, Sequence

import pytest

from vmetest_runner.config import Mode, Registry, RunnerSettings, load_registry

REGISTRY_YAML = textwrap.dedent("""\
    tests:
      - name: cpu-limits
        directory: resource-limits/cpu-limits
        config: cpu-limits-test.yml
        description: CPU limits
      - name: disk-hotplug
        directory: hot-plug/disk-hotplug
        config: disk-hotplug-test.yml
        vars_extension: yaml
      - name: per-host-density
        directory: scale-testing/per-host-density
        config: per-host-density.yml

    order:
      - cpu-limits
      - disk-hotplug
      - per-host-density
    """)

VARS_YAML = textwrap.dedent("""\
    # test vars
    namespace: cpu-limits-TIMESTAMP
    resultsPath: /tmp/somewhere
    runTimestamp: ""
    cpuCores: 2
    labels:
      app: cpu
    """)


class FakeEngine:
    """ProvisioningEngine that records its calls and writes a log."""

    def __init__(self, exit_code: int = 0, output: str = "engine output\n") -> None:
        self.exit_code = exit_code
        self.output = output
        self.calls: list[dict[str, object]] = []
        self.before_exit = None

    async def run(
        self,
        config: Path,
        user_data: Path,
        cwd: Path,
        log_path: Path,
        extra_args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
    ) -> int:
        self.calls.append(
            {
                "config": config,
                "user_data": user_data,
                "cwd": cwd,
                "log_path": log_path,
                "extra_args": tuple(extra_args),
                "env": dict(env or {}),
            }
        )
        Path(log_path).write_text(self.output)
        if self.before_exit is not None:
            self.before_exit(Path(user_data).parent)
        return self.exit_code


@pytest.fixture
def workloads_dir(tmp_path: Path) -> Path:
    """Create workload directories with config and vars files."""
    root = tmp_path / "workloads"
    for directory, config, ext in [
        ("resource-limits/cpu-limits", "cpu-limits-test.yml", "yml"),
        ("hot-plug/disk-hotplug", "disk-hotplug-test.yml", "yaml"),
        ("scale-testing/per-host-density", "per-host-density.yml", "yml"),
    ]:
        test_dir = root / directory
        test_dir.mkdir(parents=True)
        (test_dir / config).write_text("jobs: []\n")
        (test_dir / f"vars.{ext}").write_text(VARS_YAML)
    # cpu-limits also supports sanity mode
    sanity_vars = VARS_YAML.replace("cpuCores: 2", "cpuCores: 1")
    (root / "resource-limits/cpu-limits/vars-sanity.yml").write_text(sanity_vars)
    return root


@pytest.fixture
def registry_file(tmp_path: Path) -> Path:
    """Write the test registry."""
    path = tmp_path / "workloads.yaml"
    path.write_text(REGISTRY_YAML)
    return path


@pytest.fixture
def registry(registry_file: Path) -> Registry:
    """Load the test registry."""
    return load_registry(registry_file)


@pytest.fixture
def settings(workloads_dir: Path, registry_file: Path, tmp_path: Path) -> RunnerSettings:
    """Provide runner settings rooted in tmp_path."""
    return RunnerSettings(
        workloads_dir=workloads_dir,
        results_base=tmp_path / "results",
        mode=Mode.FULL,
        registry_path=registry_file,
    )


@pytest.fixture
def engine() -> FakeEngine:
    """Provide a fake engine exiting with 0."""
    return FakeEngine()
