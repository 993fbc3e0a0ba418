"""Workload test runner for vmetest.

This package loads the workload registry, runs each test as an isolated
execution unit that drives kube-burner, and reconciles the per-run execution
records into a suite summary.

Key components:
    - Registry: Immutable set of TestDefinitions loaded from YAML.
    - ExecutionUnit (vmetest_runner.unit): One test run into its own results
      directory, launched with ``python -m vmetest_runner.unit``.
    - Orchestrator (vmetest_runner.orchestrator): Sequential or concurrent
      suite execution.
    - SuiteSummary: Tabular suite summary derived from execution records.
"""

from vmetest_runner.config import (
    Mode,
    Registry,
    RunnerSettings,
    TestDefinition,
    load_registry,
)
from vmetest_runner.engine import KubeBurnerEngine
from vmetest_runner.models import ExecutionStrategy, TestExecutionRecord
from vmetest_runner.summary import SuiteStatus, SuiteSummary, format_duration

__all__ = [
    # Configuration
    "Mode",
    "Registry",
    "RunnerSettings",
    "TestDefinition",
    "load_registry",
    # Execution
    "ExecutionStrategy",
    "KubeBurnerEngine",
    "TestExecutionRecord",
    # Summary
    "SuiteStatus",
    "SuiteSummary",
    "format_duration",
    # Version
    "__version__",
]

__version__ = "0.1.0"
