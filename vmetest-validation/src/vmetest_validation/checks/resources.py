"""Resource limit checks: CPU, memory and disk.

Each check compares the resources declared on the VM object with the expected
value, then (when credentials are available) confirms the guest OS sees
the same resources and that the stress workload is running.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from vmetest_core.errors import QuantityError
from vmetest_core.interfaces.cluster import ClusterClient, RemoteExecutor
from vmetest_core.types.common import LabelSelector, Unit

from vmetest_validation.checks.base import Check, CheckKind, dig, units_of
from vmetest_validation.phases import NOT_EVALUATED, PhaseRecorder
from vmetest_validation.quantity import (
    disk_size_matches,
    disk_to_gb,
    is_data_disk,
    memory_to_mb,
    parse_block_devices,
    parse_count,
    size_number,
    strip_binary_suffix,
    within_percent,
)

logger = logging.getLogger(__name__)

MEMORY_TOLERANCE_PERCENT = 15
DISK_TOLERANCE_PERCENT = 5

FREE_MEMORY_COMMAND = "free -m | awk 'NR==2{print $2}'"
GUEST_DISKS_COMMAND = "lsblk --json -d -n -o NAME,TYPE,SIZE"

SSH_UNREACHABLE = "SSH connection failed on all VMs"


class CpuLimitsCheck(Check):
    """Verify declared and guest-visible CPU cores and the CPU stress workload."""

    kind = CheckKind.CPU_LIMITS
    report_name = "cpu-limits"

    def __init__(
        self,
        cluster: ClusterClient,
        executor: RemoteExecutor | None,
        expected_cores: int,
        results_dir: Path | None = None,
    ) -> None:
        super().__init__(cluster, executor, results_dir)
        self._expected = expected_cores

    def parameters(self) -> dict[str, Any]:
        return {"expected_cpu_cores": self._expected}

    async def evaluate(
        self, selector: LabelSelector, recorder: PhaseRecorder, params: dict[str, Any]
    ) -> None:
        vms = await self.discover(selector, recorder)
        params["vm_count"] = len(vms)
        if recorder.failed:
            for name in ("vm_spec_cpu_cores", "guest_os_cpu_count", "stress_ng_processes"):
                recorder.skip(name)
            return

        with recorder.phase("vm_spec_cpu_cores") as phase:
            for vm in vms:
                actual = dig(vm, "spec", "template", "spec", "domain", "cpu", "cores")
                if str(actual) != str(self._expected):
                    name = dig(vm, "metadata", "name")
                    phase.failed(f"VM {name}: expected {self._expected} cores, got {actual}")
                    break
            else:
                phase.passed(f"All {len(vms)} VMs have {self._expected} CPU cores in spec")

        if self.skip_guest_phases(recorder, "guest_os_cpu_count", "stress_ng_processes"):
            return
        units = units_of(vms)

        with recorder.phase("guest_os_cpu_count") as phase:
            reachable: list[Unit] = []
            for unit in units:
                if not await self.ssh_reachable(unit):
                    logger.warning("%s: SSH connection failed, skipping guest OS validation", unit)
                    continue
                count = parse_count(await self.remote(unit, "nproc") or "")
                if count == 0:
                    phase.failed(f"VM {unit.name}: could not retrieve CPU count")
                    break
                if count != self._expected:
                    phase.failed(f"VM {unit.name}: expected {self._expected} CPUs, got {count}")
                    break
                reachable.append(unit)
            else:
                if reachable:
                    phase.passed(f"Guest OS shows {self._expected} CPUs on {len(reachable)} VMs")
                else:
                    phase.skipped(SSH_UNREACHABLE)

        if recorder.failed or not reachable:
            recorder.skip(
                "stress_ng_processes", NOT_EVALUATED if recorder.failed else SSH_UNREACHABLE
            )
            return

        with recorder.phase("stress_ng_processes") as phase:
            for unit in reachable:
                count = parse_count(
                    await self.remote(unit, "ps aux | grep -c '[s]tress-ng-cpu'") or ""
                )
                if count != self._expected:
                    phase.failed(
                        f"VM {unit.name}: expected {self._expected} stress-ng-cpu processes, "
                        f"got {count}"
                    )
                    break
            else:
                phase.passed(f"{self._expected} stress-ng-cpu processes running on every VM")


class MemoryLimitsCheck(Check):
    """Verify declared and guest-visible memory and the memory stress workload."""

    kind = CheckKind.MEMORY_LIMITS
    report_name = "memory-limits"

    def __init__(
        self,
        cluster: ClusterClient,
        executor: RemoteExecutor | None,
        expected_memory: str,
        results_dir: Path | None = None,
    ) -> None:
        super().__init__(cluster, executor, results_dir)
        self._expected = expected_memory

    def parameters(self) -> dict[str, Any]:
        return {"expected_memory": self._expected}

    async def evaluate(
        self, selector: LabelSelector, recorder: PhaseRecorder, params: dict[str, Any]
    ) -> None:
        vms = await self.discover(selector, recorder)
        params["vm_count"] = len(vms)
        if recorder.failed:
            for name in ("vm_spec_memory", "guest_os_memory", "stress_ng_processes"):
                recorder.skip(name)
            return

        with recorder.phase("vm_spec_memory") as phase:
            for vm in vms:
                actual = dig(
                    vm, "spec", "template", "spec", "domain", "resources", "requests", "memory"
                )
                if actual != self._expected:
                    name = dig(vm, "metadata", "name")
                    phase.failed(f"VM {name}: expected {self._expected}, got {actual}")
                    break
            else:
                phase.passed(f"All {len(vms)} VMs request {self._expected}")

        if self.skip_guest_phases(recorder, "guest_os_memory", "stress_ng_processes"):
            return
        units = units_of(vms)

        with recorder.phase("guest_os_memory") as phase:
            try:
                expected_mb = memory_to_mb(self._expected)
            except QuantityError as exc:
                phase.skipped(str(exc))
                expected_mb = 0
            if expected_mb:
                checked = 0
                for unit in units:
                    if not await self.ssh_reachable(unit):
                        logger.warning(
                            "%s: SSH connection failed, skipping guest OS validation", unit
                        )
                        continue
                    guest_mb = parse_count(await self.remote(unit, FREE_MEMORY_COMMAND) or "")
                    if guest_mb == 0:
                        phase.failed(f"VM {unit.name}: could not retrieve memory")
                        break
                    if not within_percent(guest_mb, expected_mb, MEMORY_TOLERANCE_PERCENT):
                        phase.failed(
                            f"VM {unit.name}: expected ~{expected_mb}MB, got {guest_mb}MB",
                            expected_mb=expected_mb,
                            tolerance_percent=MEMORY_TOLERANCE_PERCENT,
                        )
                        break
                    checked += 1
                else:
                    if checked:
                        phase.passed(
                            f"Guest OS shows ~{expected_mb}MB on {checked} VMs",
                            expected_mb=expected_mb,
                        )
                    else:
                        phase.skipped(SSH_UNREACHABLE)

        if recorder.failed:
            recorder.skip("stress_ng_processes")
            return

        with recorder.phase("stress_ng_processes") as phase:
            running = 0
            for unit in units:
                if parse_count(await self.remote(unit, "ps aux | grep -c '[s]tress-ng'") or "") > 0:
                    running += 1
            if running:
                phase.passed(f"stress-ng running on {running}/{len(units)} VMs")
            else:
                phase.skipped("No stress-ng processes found")


class DiskLimitsCheck(Check):
    """Verify declared and guest-visible data disk count and size."""

    kind = CheckKind.DISK_LIMITS
    report_name = "disk-limits"

    def __init__(
        self,
        cluster: ClusterClient,
        executor: RemoteExecutor | None,
        expected_count: int,
        expected_size: str,
        results_dir: Path | None = None,
    ) -> None:
        super().__init__(cluster, executor, results_dir)
        self._expected_count = expected_count
        self._expected_size = expected_size

    def parameters(self) -> dict[str, Any]:
        return {
            "expected_disk_count": self._expected_count,
            "expected_disk_size": self._expected_size,
        }

    @staticmethod
    def _data_volumes(vm: dict[str, Any]) -> list[dict[str, Any]]:
        volumes = dig(vm, "spec", "template", "spec", "volumes", default=[]) or []
        return [
            v
            for v in volumes
            if v.get("name") not in ("rootdisk", "cloudinitdisk")
            and (v.get("dataVolume") is not None or v.get("persistentVolumeClaim") is not None)
        ]

    async def evaluate(
        self, selector: LabelSelector, recorder: PhaseRecorder, params: dict[str, Any]
    ) -> None:
        phases = (
            "vm_spec_disk_count",
            "vm_spec_disk_size",
            "guest_os_disk_count",
            "guest_os_disk_size",
        )
        vms = await self.discover(selector, recorder)
        params["vm_count"] = len(vms)
        if recorder.failed:
            for name in phases:
                recorder.skip(name)
            return

        with recorder.phase("vm_spec_disk_count") as phase:
            for vm in vms:
                count = len(self._data_volumes(vm))
                if count != self._expected_count:
                    name = dig(vm, "metadata", "name")
                    phase.failed(
                        f"VM {name}: expected {self._expected_count} data disks, got {count}"
                    )
                    break
            else:
                phase.passed(f"All VMs declare {self._expected_count} data disks")

        if recorder.failed:
            for name in phases[1:]:
                recorder.skip(name)
            return

        with recorder.phase("vm_spec_disk_size") as phase:
            mismatch = None
            for vm in vms:
                for template in dig(vm, "spec", "dataVolumeTemplates", default=[]) or []:
                    template_name = str(dig(template, "metadata", "name", default=""))
                    if not template_name.startswith("datadisk"):
                        continue
                    size = dig(template, "spec", "storage", "resources", "requests", "storage")
                    if size != self._expected_size:
                        name = dig(vm, "metadata", "name")
                        mismatch = f"VM {name}: expected {self._expected_size}, got {size}"
                        break
                if mismatch:
                    break
            if mismatch:
                phase.failed(mismatch)
            else:
                phase.passed(f"All data volumes request {self._expected_size}")

        if self.skip_guest_phases(recorder, *phases[2:]):
            return
        units = units_of(vms)
        guest_disks: dict[str, list[dict[str, Any]]] = {}

        with recorder.phase("guest_os_disk_count") as phase:
            for unit in units:
                if not await self.ssh_reachable(unit):
                    logger.warning("%s: SSH connection failed, skipping guest OS validation", unit)
                    continue
                try:
                    blocks = parse_block_devices(await self.remote(unit, GUEST_DISKS_COMMAND) or "")
                except QuantityError:
                    phase.failed(f"VM {unit.name}: failed to list block devices")
                    break
                disks = [b for b in blocks if is_data_disk(b)]
                if len(disks) != self._expected_count:
                    phase.failed(
                        f"VM {unit.name}: expected {self._expected_count} disks in guest, "
                        f"got {len(disks)}"
                    )
                    break
                guest_disks[str(unit.name)] = disks
            else:
                if guest_disks:
                    phase.passed(
                        f"Guest OS shows {self._expected_count} data disks "
                        f"on {len(guest_disks)} VMs"
                    )
                else:
                    phase.skipped(SSH_UNREACHABLE)

        if recorder.failed or not guest_disks:
            recorder.skip("guest_os_disk_size")
            return

        with recorder.phase("guest_os_disk_size") as phase:
            try:
                expected = strip_binary_suffix(self._expected_size)
            except QuantityError as exc:
                phase.skipped(str(exc))
                return
            for name, disks in guest_disks.items():
                for disk in disks:
                    actual = size_number(str(disk.get("size", "")))
                    if not disk_size_matches(actual, expected, DISK_TOLERANCE_PERCENT):
                        phase.failed(
                            f"VM {name}: disk {disk.get('name')} is {disk.get('size')}, "
                            f"expected ~{expected:g}G",
                            tolerance_percent=DISK_TOLERANCE_PERCENT,
                        )
                        return
            phase.passed(f"All guest data disks are ~{expected:g}G")


class HighMemoryCheck(Check):
    """Verify guest OS memory of high-memory VMs."""

    kind = CheckKind.HIGH_MEMORY
    report_name = "high-memory"

    def __init__(
        self,
        cluster: ClusterClient,
        executor: RemoteExecutor | None,
        expected_memory: str,
        results_dir: Path | None = None,
    ) -> None:
        super().__init__(cluster, executor, results_dir)
        self._expected = expected_memory

    def parameters(self) -> dict[str, Any]:
        return {"expected_memory": self._expected}

    async def evaluate(
        self, selector: LabelSelector, recorder: PhaseRecorder, params: dict[str, Any]
    ) -> None:
        vms = await self.discover(selector, recorder)
        params["vm_count"] = len(vms)
        params["expected_memory_mb"] = 0
        if self.skip_guest_phases(recorder, "vm_responsiveness", "guest_os_memory"):
            return

        await self.check_responsiveness(vms, recorder)
        if recorder.failed:
            recorder.skip("guest_os_memory")
            return

        with recorder.phase("guest_os_memory") as phase:
            try:
                expected_mb = memory_to_mb(self._expected)
            except QuantityError as exc:
                phase.skipped(str(exc))
                return
            params["expected_memory_mb"] = expected_mb
            failed = 0
            guest_mb = 0
            for unit in units_of(vms):
                guest_mb = parse_count(await self.remote(unit, FREE_MEMORY_COMMAND) or "")
                in_range = within_percent(guest_mb, expected_mb, MEMORY_TOLERANCE_PERCENT)
                if guest_mb == 0 or not in_range:
                    logger.warning("%s: guest memory %dMB outside expected range", unit, guest_mb)
                    failed += 1
            if failed:
                phase.failed(
                    f"{failed}/{len(vms)} VMs failed memory check",
                    expected_mb=expected_mb,
                    tolerance_percent=MEMORY_TOLERANCE_PERCENT,
                )
            else:
                phase.passed(
                    f"All VMs show ~{expected_mb}MB", expected_mb=expected_mb, actual_mb=guest_mb
                )


class LargeDiskCheck(Check):
    """Verify guest visibility and size of a large data disk."""

    kind = CheckKind.LARGE_DISK
    report_name = "large-disk"

    def __init__(
        self,
        cluster: ClusterClient,
        executor: RemoteExecutor | None,
        expected_size: str,
        results_dir: Path | None = None,
    ) -> None:
        super().__init__(cluster, executor, results_dir)
        self._expected = expected_size

    def parameters(self) -> dict[str, Any]:
        return {"expected_disk_size": self._expected}

    async def _disk_bytes(self, unit: Unit, device: str) -> int:
        output = await self.remote(unit, f"lsblk -b -d -o SIZE /dev/{device} 2>/dev/null | tail -1")
        size = parse_count(output or "")
        if size == 0:
            # /sys/block/*/size counts 512-byte sectors
            output = await self.remote(unit, f"cat /sys/block/{device}/size 2>/dev/null")
            size = parse_count(output or "") * 512
        return size

    async def evaluate(
        self, selector: LabelSelector, recorder: PhaseRecorder, params: dict[str, Any]
    ) -> None:
        vms = await self.discover(selector, recorder)
        params["vm_count"] = len(vms)
        params["expected_size_gb"] = 0
        if self.skip_guest_phases(recorder, "vm_responsiveness", "disk_visibility", "disk_size"):
            return

        await self.check_responsiveness(vms, recorder)
        if recorder.failed:
            recorder.skip("disk_visibility")
            recorder.skip("disk_size")
            return

        units = units_of(vms)
        devices: dict[str, str] = {}
        with recorder.phase("disk_visibility") as phase:
            for unit in units:
                try:
                    blocks = parse_block_devices(await self.remote(unit, "lsblk --json") or "")
                except QuantityError:
                    logger.warning("%s: failed to get block devices", unit)
                    continue
                disk = next((b for b in blocks if is_data_disk(b, require_size=False)), None)
                if disk is None:
                    logger.warning("%s: no large disk found (only root disk visible)", unit)
                    continue
                devices[str(unit.name)] = str(disk["name"])
            missing = len(units) - len(devices)
            if missing:
                phase.failed(f"{missing}/{len(units)} VMs missing large disk")
            else:
                device = next(iter(devices.values()), "")
                phase.passed("Large disk visible on all VMs", device=device)

        if recorder.failed:
            recorder.skip("disk_size")
            return

        with recorder.phase("disk_size") as phase:
            try:
                expected_gb = disk_to_gb(self._expected)
            except QuantityError as exc:
                phase.skipped(str(exc))
                return
            params["expected_size_gb"] = expected_gb
            tolerance = max(1, expected_gb * DISK_TOLERANCE_PERCENT // 100)
            failed = 0
            for unit in units:
                size_gb = await self._disk_bytes(unit, devices[str(unit.name)]) // 1024**3
                in_range = expected_gb - tolerance <= size_gb <= expected_gb + tolerance
                if size_gb == 0 or not in_range:
                    logger.warning("%s: disk size %dGB outside expected range", unit, size_gb)
                    failed += 1
            if failed:
                phase.failed(
                    f"{failed}/{len(units)} VMs failed size check",
                    expected_gb=expected_gb,
                    tolerance_percent=DISK_TOLERANCE_PERCENT,
                )
            else:
                phase.passed(f"All VMs show ~{expected_gb}GB disk", expected_gb=expected_gb)
