"""Check base class and registry."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar

from vmetest_core.errors import ClusterQueryError, RemoteCommandError
from vmetest_core.interfaces.cluster import ClusterClient, RemoteExecutor
from vmetest_core.types.common import LabelSelector, Unit
from vmetest_core.types.validation import ValidationReport

from vmetest_validation.phases import NO_CREDENTIALS, PhaseRecorder
from vmetest_validation.report import write_report

logger = logging.getLogger(__name__)

SSH_TEST_COMMAND = "echo SSH_OK"


class CheckKind(Enum):
    """Closed set of checks."""

    VM_RUNNING = "vm_running"
    VM_SHUTDOWN = "vm_shutdown"
    RESIZE = "resize"
    CPU_LIMITS = "cpu_limits"
    MEMORY_LIMITS = "memory_limits"
    DISK_LIMITS = "disk_limits"
    DISK_HOTPLUG = "disk_hotplug"
    NIC_HOTPLUG = "nic_hotplug"
    PERFORMANCE_METRICS = "performance_metrics"
    HIGH_MEMORY = "high_memory"
    LARGE_DISK = "large_disk"


class Check(ABC):
    """Base class for multi-phase cluster checks.

    Subclasses set ``kind`` and ``report_name`` and implement evaluate(),
    recording one outcome per phase. A phase that cannot run because an
    earlier one failed is recorded as SKIP.

    Example:
        class ShutdownCheck(Check):
            kind = CheckKind.VM_SHUTDOWN
            report_name = "vm-shutdown"

            async def evaluate(self, selector, recorder, params):
                vms = await self.discover(selector, recorder)
                ...
    """

    kind: ClassVar[CheckKind]
    report_name: ClassVar[str]

    def __init__(
        self,
        cluster: ClusterClient,
        executor: RemoteExecutor | None = None,
        results_dir: Path | None = None,
    ) -> None:
        """Initialize the check.

        Args:
            cluster: Control-plane client.
            executor: Remote executor, or None when no credentials exist.
            results_dir: Directory receiving the report; None disables writing.
        """
        self._cluster = cluster
        self._executor = executor
        self._results_dir = Path(results_dir) if results_dir is not None else None

    @property
    def has_credentials(self) -> bool:
        """Return True if guest commands can be run."""
        return self._executor is not None

    @abstractmethod
    async def evaluate(
        self, selector: LabelSelector, recorder: PhaseRecorder, params: dict[str, Any]
    ) -> None:
        """Evaluate every phase of the check.

        Args:
            selector: Units under test.
            recorder: Receives the phase outcomes.
            params: Report parameters; subclasses add their counters.
        """

    def parameters(self) -> dict[str, Any]:
        """Return the check's configured expectations for the report."""
        return {}

    async def run(self, selector: LabelSelector) -> ValidationReport:
        """Run the check once and build its report.

        Args:
            selector: Units under test.

        Returns:
            Immutable report of this attempt.
        """
        recorder = PhaseRecorder(self.report_name)
        params: dict[str, Any] = {"label_key": selector.key, "label_value": selector.value}
        params.update(self.parameters())
        params["ssh_validation_enabled"] = self.has_credentials

        start = time.monotonic()
        await self.evaluate(selector, recorder, params)
        params["total_duration_seconds"] = round(time.monotonic() - start, 3)

        return ValidationReport(
            test_name=self.report_name,
            namespace=selector.namespace,
            parameters=params,
            validations=recorder.outcomes,
        )

    async def execute(self, selector: LabelSelector) -> bool:
        """Run the check, persist its report and return the verdict.

        This is the probe function handed to the retry controller. A
        cluster query failure counts as a failed attempt and writes no
        report.
        """
        try:
            report = await self.run(selector)
        except ClusterQueryError as exc:
            logger.error("%s: cluster query failed: %s", self.report_name, exc)
            return False
        if self._results_dir is not None:
            write_report(report, self._results_dir)
        logger.info("%s: %s", self.report_name, report.overall_status.value)
        return report.passed

    async def discover(
        self, selector: LabelSelector, recorder: PhaseRecorder
    ) -> list[dict[str, Any]]:
        """Record the vm_discovery phase and return the matching VM objects."""
        with recorder.phase("vm_discovery") as phase:
            vms = await self._cluster.get_objects("vm", selector)
            if vms:
                phase.passed(f"Found {len(vms)} VMs", vm_count=len(vms))
            else:
                phase.failed("No VMs found")
        return vms

    async def remote(self, unit: Unit, command: str) -> str | None:
        """Run a guest command, returning None on failure."""
        if self._executor is None:
            return None
        try:
            return await self._executor.run(unit, command)
        except RemoteCommandError as exc:
            logger.debug("%s: %s", unit, exc)
            return None

    async def ssh_reachable(self, unit: Unit) -> bool:
        """Return True if the unit answers a trivial SSH command."""
        output = await self.remote(unit, SSH_TEST_COMMAND)
        return bool(output and output.strip())

    def skip_guest_phases(self, recorder: PhaseRecorder, *phases: str) -> bool:
        """Record guest phases as skipped if they cannot run.

        Returns:
            True if the phases were skipped because an earlier phase failed
            or no credentials are available.
        """
        if recorder.failed:
            for name in phases:
                recorder.skip(name)
            return True
        if not self.has_credentials:
            for name in phases:
                recorder.skip(name, NO_CREDENTIALS)
            return True
        return False

    async def check_responsiveness(
        self, vms: list[dict[str, Any]], recorder: PhaseRecorder
    ) -> None:
        """Record the vm_responsiveness phase (uptime on every VM)."""
        with recorder.phase("vm_responsiveness") as phase:
            passed = failed = 0
            for unit in units_of(vms):
                if await self.remote(unit, "uptime") is None:
                    logger.warning("%s: SSH/uptime check failed", unit)
                    failed += 1
                else:
                    passed += 1
            if failed:
                phase.failed(
                    f"{failed}/{len(vms)} VMs not responsive", passed=passed, failed=failed
                )
            else:
                phase.passed(f"All {len(vms)} VMs responsive", passed=passed, failed=0)


def units_of(vms: list[dict[str, Any]]) -> list[Unit]:
    """Convert VM objects to units."""
    return [Unit.from_object(vm) for vm in vms]


def dig(obj: dict[str, Any], *path: str, default: Any = None) -> Any:
    """Return a nested value, or default if any key is missing."""
    current: Any = obj
    for key in path:
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current
