"""Validation engine for VM workloads.

This package implements the retry controller, the sampling validator and the
multi-phase checks that inspect VMs through the cluster control plane and
remote guest commands.

Key components:
    - RetryController: Re-invokes a probe on an early/late wait schedule.
    - SamplingValidator: Probes a random subset of units with bounded retries.
    - Checks: One class per check kind, each producing a ValidationReport.
    - Clients: oc-based cluster client and virtctl-based remote executor.
    - Reports: Writing, scanning and classifying validation report files.
"""

from vmetest_validation.checks import CHECKS, Check, CheckKind, get_check_class
from vmetest_validation.clients import CommandResult, OcClusterClient, VirtctlRemoteExecutor
from vmetest_validation.phases import PhaseRecorder
from vmetest_validation.probes import CommandProbe, SshProbe
from vmetest_validation.report import (
    ValidationSummary,
    classify_reports,
    scan_reports,
    summarize_results,
    write_report,
)
from vmetest_validation.retry import RetryController
from vmetest_validation.sampling import SamplingValidator, sample_size, select_sample

__all__ = [
    # Retry and sampling
    "RetryController",
    "SamplingValidator",
    "sample_size",
    "select_sample",
    # Checks
    "CHECKS",
    "Check",
    "CheckKind",
    "PhaseRecorder",
    "get_check_class",
    # Probes and clients
    "CommandProbe",
    "CommandResult",
    "OcClusterClient",
    "SshProbe",
    "VirtctlRemoteExecutor",
    # Reports
    "ValidationSummary",
    "classify_reports",
    "scan_reports",
    "summarize_results",
    "write_report",
    # Version
    "__version__",
]

__version__ = "0.1.0"
