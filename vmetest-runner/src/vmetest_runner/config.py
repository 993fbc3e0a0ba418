"""Workload registry and runner configuration for vmetest-runner.

The registry ties each test name to a kube-burner workload directory, its
config file and the extension of its vars files. It is loaded once from a
YAML file and never mutated.

Example YAML:
    tests:
      - name: cpu-limits
        directory: resource-limits/cpu-limits
        config: cpu-limits-test.yml
        vars_extension: yml
        description: CPU core limits in the VM spec and guest OS

    order:
      - cpu-limits
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Mapping

import yaml

from vmetest_core.errors import ConfigurationError, RegistryError
from vmetest_core.types.common import parse_bool

from vmetest_runner.models import ExecutionStrategy

# Registry shipped with the package
DEFAULT_REGISTRY = Path(__file__).parent / "workloads.yaml"

# Root of all per-test results directories
DEFAULT_RESULTS_BASE = Path("/tmp/kube-burner-results")

class Mode(str, Enum):
    """Vars file selection.

    Attributes:
        SANITY: Small-scale run using ``vars-sanity.<ext>``.
        FULL: Full-scale run using ``vars.<ext>``.
    """

    SANITY = "sanity"
    FULL = "full"

    @property
    def vars_stem(self) -> str:
        """Return the vars file name without extension."""
        return "vars-sanity" if self == Mode.SANITY else "vars"


def parse_mode(value: str) -> Mode:
    """Parse a mode name.

    Raises:
        ConfigurationError: If the value is not ``sanity`` or ``full``.
    """
    try:
        return Mode(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid mode: {value} (must be 'sanity' or 'full')") from exc


@dataclass(frozen=True)
class TestDefinition:
    """A registered workload.

    Attributes:
        name: Test name used on the command line.
        directory: Workload directory relative to the workloads root.
        config_file: kube-burner config file inside the directory.
        vars_extension: Extension of the vars files (``yml`` or ``yaml``).
        description: Human-readable description.
    """

    __test__ = False

    name: str
    directory: str
    config_file: str
    vars_extension: str = "yml"
    description: str = ""

    def test_dir(self, workloads_dir: Path) -> Path:
        """Return the workload directory."""
        return Path(workloads_dir) / self.directory

    def config_path(self, workloads_dir: Path) -> Path:
        """Return the kube-burner config file path."""
        return self.test_dir(workloads_dir) / self.config_file

    def vars_path(self, workloads_dir: Path, mode: Mode) -> Path:
        """Return the vars file for a mode."""
        return self.test_dir(workloads_dir) / f"{mode.vars_stem}.{self.vars_extension}"

    def rendered_vars_name(self, mode: Mode) -> str:
        """Return the name of the per-run rendered vars file."""
        return f"vars-{self.name}-{mode.value}.{self.vars_extension}"

    def check_files(self, workloads_dir: Path, mode: Mode) -> None:
        """Verify the config and mode-selected vars files exist.

        Raises:
            ConfigurationError: If either file is missing.
        """
        config = self.config_path(workloads_dir)
        if not config.is_file():
            raise ConfigurationError(f"Config file not found: {config}")
        vars_file = self.vars_path(workloads_dir, mode)
        if not vars_file.is_file():
            raise ConfigurationError(
                f"Vars file not found: {vars_file} "
                f"(test '{self.name}' may not support '{mode.value}' mode)"
            )


@dataclass(frozen=True)
class Registry:
    """Immutable set of registered tests.

    Attributes:
        tests: Definitions keyed by test name.
        order: Test names in ``--all`` execution order.
    """

    tests: Mapping[str, TestDefinition]
    order: tuple[str, ...]

    def __contains__(self, name: object) -> bool:
        return name in self.tests

    def __iter__(self) -> Iterator[TestDefinition]:
        return (self.tests[name] for name in self.order)

    def __len__(self) -> int:
        return len(self.order)

    def get(self, name: str) -> TestDefinition:
        """Look up a test by name.

        Raises:
            RegistryError: If the test is not registered.
        """
        try:
            return self.tests[name]
        except KeyError:
            raise RegistryError(name, self.order) from None


def load_registry(path: str | Path | None = None) -> Registry:
    """Load the workload registry from a YAML file.

    Args:
        path: Registry file. Defaults to the packaged ``workloads.yaml``.

    Returns:
        Parsed Registry.

    Raises:
        ConfigurationError: If the file is missing or malformed.
    """
    path = Path(path) if path is not None else DEFAULT_REGISTRY
    if not path.exists():
        raise ConfigurationError(f"Registry not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ConfigurationError("Registry must be a YAML mapping")

    tests_data = data.get("tests", [])
    if not isinstance(tests_data, list):
        raise ConfigurationError("tests must be a list")

    tests: dict[str, TestDefinition] = {}
    for entry in tests_data:
        if not isinstance(entry, dict):
            raise ConfigurationError("Each test must be a mapping")

        name = entry.get("name")
        if not name:
            raise ConfigurationError("Test missing required field: name")
        if name in tests:
            raise ConfigurationError(f"Duplicate test: {name}")
        for key in ("directory", "config"):
            if not entry.get(key):
                raise ConfigurationError(f"Test {name} missing required field: {key}")

        tests[name] = TestDefinition(
            name=name,
            directory=entry["directory"],
            config_file=entry["config"],
            vars_extension=entry.get("vars_extension", "yml"),
            description=entry.get("description", ""),
        )

    order = data.get("order") or list(tests)
    unknown = [name for name in order if name not in tests]
    if unknown:
        raise ConfigurationError(f"order references unknown tests: {', '.join(unknown)}")

    return Registry(tests=tests, order=tuple(order))


@dataclass(frozen=True)
class RunnerSettings:
    """Settings shared by the orchestrator and its execution units.

    Attributes:
        workloads_dir: Root containing the workload directories.
        results_base: Root of the per-test results directories.
        mode: Vars file selection.
        strategy: Sequential or concurrent execution.
        engine_binary: kube-burner executable.
        engine_args: Extra arguments forwarded to every engine run.
        registry_path: Registry file the units load.
    """

    workloads_dir: Path
    results_base: Path = DEFAULT_RESULTS_BASE
    mode: Mode = Mode.FULL
    strategy: ExecutionStrategy = ExecutionStrategy.SEQUENTIAL
    engine_binary: str = "kube-burner"
    engine_args: tuple[str, ...] = ()
    registry_path: Path = DEFAULT_REGISTRY

    def results_dir(self, test_name: str, run_id: str) -> Path:
        """Return the results directory of one run."""
        return self.results_base / test_name / run_id

    def summary_path(self, test_name: str, run_id: str) -> Path:
        """Return the execution record path of one run."""
        return self.results_dir(test_name, run_id) / "summary.json"


def load_vars(path: str | Path) -> dict[str, Any]:
    """Load a vars file, returning an empty mapping if it is absent or not a mapping."""
    path = Path(path)
    if not path.is_file():
        return {}
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def resolve_value(
    key: str, vars_data: Mapping[str, Any], environ: Mapping[str, str], default: Any
) -> Any:
    """Resolve a tunable with precedence environment > vars file > default.

    Keys are matched case-sensitively. Empty values are treated as unset.
    """
    value = environ.get(key)
    if value not in (None, ""):
        return value
    value = vars_data.get(key)
    if value not in (None, ""):
        return value
    return default


def parse_int(key: str, value: Any) -> int:
    """Parse an integer tunable.

    Raises:
        ConfigurationError: If the value is not an integer.
    """
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from exc


@dataclass(frozen=True)
class DensitySettings:
    """Scale settings of the per-host density workload.

    Attributes:
        scale_mode: ``single-node`` or ``multi-node``.
        vms_per_namespace: VMs created in each namespace.
        namespace_count: Number of namespaces.
        percentage_to_validate: Percentage of VMs probed over SSH.
        max_ssh_retries: SSH attempts per sampled VM.
        cleanup: Delete the test namespaces after the run.
        target_node: Node hosting every VM in single-node mode.
    """

    scale_mode: str = "single-node"
    vms_per_namespace: int = 10
    namespace_count: int = 1
    percentage_to_validate: int = 25
    max_ssh_retries: int = 8
    cleanup: bool = True
    target_node: str | None = None

    @property
    def multi_node(self) -> bool:
        """Return True if VMs are spread across all workers."""
        return self.scale_mode == "multi-node"

    @property
    def total_vms(self) -> int:
        """Return the total number of VMs."""
        return self.vms_per_namespace * self.namespace_count

    @classmethod
    def from_sources(
        cls, vars_data: Mapping[str, Any], environ: Mapping[str, str]
    ) -> DensitySettings:
        """Resolve settings from the environment and a vars mapping.

        Raises:
            ConfigurationError: If a value has the wrong type.
        """
        defaults = cls()

        def value(key: str, default: Any) -> Any:
            return resolve_value(key, vars_data, environ, default)

        def integer(key: str, default: int) -> int:
            return parse_int(key, value(key, default))

        return cls(
            scale_mode=str(value("scaleMode", defaults.scale_mode)),
            vms_per_namespace=integer("vmsPerNamespace", defaults.vms_per_namespace),
            namespace_count=integer("namespaceCount", defaults.namespace_count),
            percentage_to_validate=integer(
                "percentage_of_vms_to_validate", defaults.percentage_to_validate
            ),
            max_ssh_retries=integer("max_ssh_retries", defaults.max_ssh_retries),
            cleanup=parse_bool(value("cleanup", defaults.cleanup)),
            target_node=value("targetNode", None),
        )

