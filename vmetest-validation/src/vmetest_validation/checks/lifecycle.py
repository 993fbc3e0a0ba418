"""VM lifecycle checks: running, shutdown and volume resize."""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Any

from vmetest_core.errors import ClusterQueryError, QuantityError
from vmetest_core.interfaces.cluster import ClusterClient, RemoteExecutor
from vmetest_core.types.common import LabelSelector
from vmetest_core.types.validation import ValidationStatus

from vmetest_validation.checks.base import Check, CheckKind, dig, units_of
from vmetest_validation.phases import NO_CREDENTIALS, PhaseRecorder
from vmetest_validation.probes import SshProbe
from vmetest_validation.quantity import parse_block_devices
from vmetest_validation.sampling import SamplingValidator

logger = logging.getLogger(__name__)


class VmRunningCheck(Check):
    """Verify every VM is ready and a sample of them accepts SSH.

    SSH failures in the sample yield PARTIAL and never fail the report.
    """

    kind = CheckKind.VM_RUNNING
    report_name = "vm-running"

    def __init__(
        self,
        cluster: ClusterClient,
        executor: RemoteExecutor | None = None,
        results_dir: Path | None = None,
        percentage: int = 25,
        max_ssh_retries: int = 8,
        sampler: SamplingValidator | None = None,
    ) -> None:
        super().__init__(cluster, executor, results_dir)
        self._percentage = percentage
        self._max_ssh_retries = max_ssh_retries
        self._sampler = sampler or SamplingValidator()

    async def _node_distribution(self, selector: LabelSelector) -> Counter[str]:
        try:
            vmis = await self._cluster.get_objects("vmi", selector)
        except ClusterQueryError as exc:
            logger.warning("Unable to get node distribution: %s", exc)
            return Counter()
        return Counter(node for node in (dig(vmi, "status", "nodeName") for vmi in vmis) if node)

    async def evaluate(
        self, selector: LabelSelector, recorder: PhaseRecorder, params: dict[str, Any]
    ) -> None:
        vms = await self.discover(selector, recorder)
        params["total_vms"] = len(vms)
        ssh_params: dict[str, Any] = {
            "enabled": self.has_credentials,
            "percentage_configured": self._percentage,
            "max_retries_configured": self._max_ssh_retries,
            "retry_interval_seconds": self._sampler.retry_interval_seconds,
            "vms_validated": 0,
            "vms_passed": 0,
            "vms_failed": 0,
            "duration_seconds": 0,
        }
        params["ssh_validation"] = ssh_params
        if recorder.failed:
            recorder.skip("vm_running_state")
            recorder.skip("ssh_validation")
            return

        with recorder.phase("vm_running_state") as phase:
            running = sum(1 for vm in vms if dig(vm, "status", "ready") is True)
            params["running_vms"] = running
            message = f"{running}/{len(vms)} VMs running"
            if running == len(vms):
                phase.passed(message)
            else:
                phase.failed(message)

        distribution = await self._node_distribution(selector)
        params["nodes_used"] = len(distribution)
        params["node_distribution"] = dict(distribution.most_common())
        for node, count in distribution.most_common():
            logger.info("  %s: %d VMs", node, count)

        if recorder.failed:
            recorder.skip("ssh_validation")
            return

        with recorder.phase("ssh_validation") as phase:
            if self._executor is None:
                phase.skipped(NO_CREDENTIALS)
                return
            if self._percentage == 0:
                phase.skipped("SSH validation disabled (percentage=0)")
                return
            outcome = await self._sampler.validate(
                units_of(vms),
                self._percentage,
                self._max_ssh_retries,
                SshProbe(self._executor),
            )
            ssh_params.update(
                vms_validated=outcome.validated,
                vms_passed=outcome.passed,
                vms_failed=outcome.failed,
                duration_seconds=round(outcome.duration_seconds, 3),
            )
            message = f"{outcome.passed}/{outcome.validated} VMs SSH accessible"
            if outcome.status == ValidationStatus.PARTIAL:
                message += f", {outcome.failed} failed"
            phase.set(outcome.status, message)


class VmShutdownCheck(Check):
    """Verify every VM has been halted."""

    kind = CheckKind.VM_SHUTDOWN
    report_name = "vm-shutdown"

    async def evaluate(
        self, selector: LabelSelector, recorder: PhaseRecorder, params: dict[str, Any]
    ) -> None:
        vms = await self.discover(selector, recorder)
        params["total_vms"] = len(vms)
        if recorder.failed:
            recorder.skip("vm_shutdown_state")
            return

        with recorder.phase("vm_shutdown_state") as phase:
            stopped = sum(1 for vm in vms if dig(vm, "spec", "runStrategy") == "Halted")
            params["stopped_vms"] = stopped
            message = f"{stopped}/{len(vms)} VMs stopped"
            if stopped == len(vms):
                phase.passed(message)
            else:
                phase.failed(message)


class ResizeCheck(Check):
    """Verify root and data volumes report their resized sizes in the guest."""

    kind = CheckKind.RESIZE
    report_name = "resize"

    def __init__(
        self,
        cluster: ClusterClient,
        executor: RemoteExecutor | None,
        expected_root_size: str,
        expected_data_size: str,
        results_dir: Path | None = None,
    ) -> None:
        super().__init__(cluster, executor, results_dir)
        self._expected_root = expected_root_size
        self._expected_data = expected_data_size

    def parameters(self) -> dict[str, Any]:
        return {
            "expected_root_size": self._expected_root,
            "expected_data_size": self._expected_data,
        }

    async def evaluate(
        self, selector: LabelSelector, recorder: PhaseRecorder, params: dict[str, Any]
    ) -> None:
        vms = await self.discover(selector, recorder)
        params["vm_count"] = len(vms)
        if recorder.failed:
            recorder.skip("root_volume_size")
            recorder.skip("data_volume_size")
            return
        if not self.has_credentials:
            recorder.skip("root_volume_size", NO_CREDENTIALS)
            recorder.skip("data_volume_size", NO_CREDENTIALS)
            return

        devices: dict[str, list[dict[str, Any]]] = {}
        with recorder.phase("root_volume_size") as phase:
            for unit in units_of(vms):
                output = await self.remote(unit, "lsblk --json -v --output=NAME,SIZE")
                try:
                    blocks = parse_block_devices(output or "")
                except QuantityError:
                    phase.failed(f"Failed to get block devices for VM {unit.name}")
                    break
                root = next((b.get("size") for b in blocks if b.get("name") == "vda"), None)
                if root != self._expected_root:
                    phase.failed(f"VM {unit.name}: expected {self._expected_root}, got {root}")
                    break
                devices[str(unit.name)] = blocks
            else:
                phase.passed(f"All {len(vms)} VMs have root volume {self._expected_root}")

        if recorder.failed:
            recorder.skip("data_volume_size")
            return

        with recorder.phase("data_volume_size") as phase:
            for name, blocks in devices.items():
                for block in blocks:
                    if block.get("name") != "vda" and block.get("size") != self._expected_data:
                        phase.failed(
                            f"VM {name}: expected {self._expected_data}, got {block.get('size')}"
                        )
                        return
            phase.passed(f"All data volumes are {self._expected_data}")
