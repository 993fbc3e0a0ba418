"""Hot-plug checks for disks and network interfaces."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from vmetest_core.errors import QuantityError
from vmetest_core.interfaces.cluster import ClusterClient, RemoteExecutor
from vmetest_core.types.common import LabelSelector

from vmetest_validation.checks.base import Check, CheckKind, dig, units_of
from vmetest_validation.checks.resources import DISK_TOLERANCE_PERCENT, GUEST_DISKS_COMMAND
from vmetest_validation.phases import NO_CREDENTIALS, PhaseContext, PhaseRecorder
from vmetest_validation.quantity import (
    disk_size_matches,
    is_data_disk,
    parse_block_devices,
    parse_count,
    size_number,
    strip_binary_suffix,
)

logger = logging.getLogger(__name__)

MOUNT_SCRIPT = "/usr/local/bin/mount-hotplug-disks.sh"

# Label values of the simple and VLAN network policies and attachments
NIC_HOTPLUG_LABEL = "test-type"
NIC_HOTPLUG_VARIANTS = ("nic-hotplug-simple", "nic-hotplug-vlan")
LINK_COUNT_COMMAND = "ip -br link show | grep -E '^(eth|ens|enp)' | wc -l"
ADDRESS_COUNT_COMMAND = r"ip -br addr show | grep -E '192\.168\.' | wc -l"


def _hotplug_volumes(vm: dict[str, Any]) -> list[dict[str, Any]]:
    volumes = dig(vm, "spec", "template", "spec", "volumes", default=[]) or []
    return [v for v in volumes if v.get("name") not in ("rootdisk", "cloudinitdisk")]


class DiskHotplugCheck(Check):
    """Verify hot-plugged disks in the VM spec, their PVCs and the guest OS."""

    kind = CheckKind.DISK_HOTPLUG
    report_name = "disk-hotplug"

    def __init__(
        self,
        cluster: ClusterClient,
        executor: RemoteExecutor | None,
        expected_count: int,
        expected_size: str,
        validate_pvc_by_size: bool = True,
        validate_from_os: bool = True,
        results_dir: Path | None = None,
    ) -> None:
        super().__init__(cluster, executor, results_dir)
        self._expected_count = expected_count
        self._expected_size = expected_size
        self._validate_pvc = validate_pvc_by_size
        self._validate_os = validate_from_os

    def parameters(self) -> dict[str, Any]:
        return {
            "expected_disk_count": self._expected_count,
            "expected_disk_size": self._expected_size,
            "validate_pvc_by_size": self._validate_pvc,
            "validate_hotplug_from_os": self._validate_os,
        }

    async def evaluate(
        self, selector: LabelSelector, recorder: PhaseRecorder, params: dict[str, Any]
    ) -> None:
        phases = (
            "vm_spec_disk_count",
            "vm_spec_pvc_size",
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
                count = len(_hotplug_volumes(vm))
                if count != self._expected_count:
                    name = dig(vm, "metadata", "name")
                    phase.failed(f"VM {name}: expected {self._expected_count} disks, got {count}")
                    break
            else:
                phase.passed("All VMs have correct hot-plugged disk count in spec")

        if recorder.failed:
            for name in phases[1:]:
                recorder.skip(name)
            return

        with recorder.phase("vm_spec_pvc_size") as phase:
            if not self._validate_pvc:
                phase.skipped("PVC size validation disabled")
            else:
                await self._check_pvc_sizes(vms, phase)

        if recorder.failed:
            for name in phases[2:]:
                recorder.skip(name)
            return
        if not self._validate_os:
            for name in phases[2:]:
                recorder.skip(name, "Guest OS validation disabled")
            return
        if not self.has_credentials:
            for name in phases[2:]:
                recorder.skip(name, NO_CREDENTIALS)
            return

        await self._check_guest(vms, recorder, params)

    async def _check_pvc_sizes(self, vms: list[dict[str, Any]], phase: PhaseContext) -> None:
        for vm in vms:
            namespace = dig(vm, "metadata", "namespace")
            for volume in _hotplug_volumes(vm):
                claim = dig(volume, "persistentVolumeClaim", "claimName")
                if claim is None:
                    continue
                pvc = await self._cluster.get_object("pvc", claim, namespace)
                size = dig(pvc or {}, "spec", "resources", "requests", "storage")
                if size and size != self._expected_size:
                    phase.failed(f"PVC {claim}: expected {self._expected_size}, got {size}")
                    return
        phase.passed("PVC size validation passed")

    async def _check_guest(
        self, vms: list[dict[str, Any]], recorder: PhaseRecorder, params: dict[str, Any]
    ) -> None:
        guest_disks: dict[str, list[dict[str, Any]]] = {}
        mounted: dict[str, int] = {}
        with recorder.phase("guest_os_disk_count") as phase:
            for unit in units_of(vms):
                if not await self.ssh_reachable(unit):
                    phase.failed(f"VM {unit.name}: SSH connection failed")
                    break
                await self.remote(
                    unit, f"[ -f {MOUNT_SCRIPT} ] && sudo /bin/bash {MOUNT_SCRIPT} || true"
                )
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

                mounts = await self.remote(unit, "mount | grep '/mnt/disk'")
                mounted[str(unit.name)] = len(mounts.strip().splitlines()) if mounts else 0
                if mounted[str(unit.name)] < self._expected_count:
                    logger.warning(
                        "%s: %d/%d hot-plugged disks mounted",
                        unit,
                        mounted[str(unit.name)],
                        self._expected_count,
                    )
            else:
                phase.passed(f"Guest OS shows {self._expected_count} hot-plugged disks on all VMs")
        params["mounted_disks"] = mounted

        if recorder.failed:
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
                    try:
                        actual = size_number(str(disk.get("size", "")))
                    except QuantityError:
                        actual = 0.0
                    if not disk_size_matches(actual, expected, DISK_TOLERANCE_PERCENT):
                        phase.failed(
                            f"VM {name}: disk {disk.get('name')} is {disk.get('size')}, "
                            f"expected ~{expected:g}G"
                        )
                        return
            phase.passed(f"All hot-plugged disks are ~{expected:g}G")


def _available(obj: dict[str, Any]) -> bool:
    conditions = dig(obj, "status", "conditions", default=[]) or []
    return any(c.get("type") == "Available" and c.get("status") == "True" for c in conditions)


class NicHotplugCheck(Check):
    """Verify network policies, attachments, VM interfaces and guest NICs."""

    kind = CheckKind.NIC_HOTPLUG
    report_name = "nic-hotplug"

    def __init__(
        self,
        cluster: ClusterClient,
        executor: RemoteExecutor | None,
        expected_nics: int,
        validate_guest_os: bool = True,
        results_dir: Path | None = None,
    ) -> None:
        super().__init__(cluster, executor, results_dir)
        self._expected_nics = expected_nics
        self._validate_guest = validate_guest_os

    def parameters(self) -> dict[str, Any]:
        return {
            "expected_nic_count": self._expected_nics,
            "validate_guest_os": self._validate_guest,
        }

    async def _count_by_variant(self, kind: str, namespace: str) -> list[dict[str, Any]]:
        objects: list[dict[str, Any]] = []
        for variant in NIC_HOTPLUG_VARIANTS:
            objects += await self._cluster.get_objects(
                kind, LabelSelector(NIC_HOTPLUG_LABEL, variant, namespace)
            )
        return objects

    async def evaluate(
        self, selector: LabelSelector, recorder: PhaseRecorder, params: dict[str, Any]
    ) -> None:
        phases = ("nncp_validation", "nad_validation", "vm_config", "vm_running", "guest_os")
        expected_policies = self._expected_nics * 2
        expected_interfaces = self._expected_nics + 1

        with recorder.phase("nncp_validation") as phase:
            policies = await self._count_by_variant("nncp", "all")
            ready = sum(1 for p in policies if _available(p))
            if len(policies) != expected_policies:
                phase.failed(f"Expected {expected_policies} NNCPs, found {len(policies)}")
            elif ready != len(policies):
                phase.failed(f"{ready}/{len(policies)} NNCPs are Available")
            else:
                phase.passed(f"All {len(policies)} NNCPs are Ready")

        if recorder.failed:
            for name in phases[1:]:
                recorder.skip(name)
            return

        with recorder.phase("nad_validation") as phase:
            attachments = await self._count_by_variant(
                "network-attachment-definitions", selector.namespace
            )
            if len(attachments) != expected_policies:
                phase.failed(f"Expected {expected_policies} NADs, found {len(attachments)}")
            else:
                phase.passed(f"All {len(attachments)} NADs exist")

        if recorder.failed:
            for name in phases[2:]:
                recorder.skip(name)
            return

        vms: list[dict[str, Any]] = []
        with recorder.phase("vm_config") as phase:
            vms = await self._cluster.get_objects("vm", selector)
            params["vm_count"] = len(vms)
            if not vms:
                phase.failed("No VMs found")
            for vm in vms:
                name = dig(vm, "metadata", "name")
                networks = len(dig(vm, "spec", "template", "spec", "networks", default=[]) or [])
                devices = dig(vm, "spec", "template", "spec", "domain", "devices", default={}) or {}
                interfaces = len(devices.get("interfaces") or [])
                if networks != expected_interfaces:
                    phase.failed(
                        f"VM {name}: expected {expected_interfaces} networks, got {networks}"
                    )
                    break
                if interfaces != expected_interfaces:
                    phase.failed(
                        f"VM {name}: expected {expected_interfaces} interfaces, got {interfaces}"
                    )
                    break
            else:
                if vms:
                    phase.passed(f"All {len(vms)} VMs have correct NIC configuration")

        if recorder.failed:
            for name in phases[3:]:
                recorder.skip(name)
            return

        with recorder.phase("vm_running") as phase:
            for vm in vms:
                status = dig(vm, "status", "printableStatus")
                if status != "Running":
                    phase.failed(f"VM {dig(vm, 'metadata', 'name')} is {status}")
                    break
            else:
                phase.passed("All VMs are running")

        if recorder.failed:
            recorder.skip("guest_os")
            return
        if not self._validate_guest or not self.has_credentials:
            recorder.skip("guest_os", "Guest OS validation skipped (SSH not configured)")
            return

        with recorder.phase("guest_os") as phase:
            for unit in units_of(vms):
                if not await self.ssh_reachable(unit):
                    phase.failed(f"VM {unit.name}: SSH connection failed")
                    break
                count = parse_count(await self.remote(unit, LINK_COUNT_COMMAND) or "")
                if count != expected_interfaces:
                    phase.failed(
                        f"VM {unit.name}: expected {expected_interfaces} interfaces in guest, "
                        f"got {count}"
                    )
                    break
                addresses = parse_count(await self.remote(unit, ADDRESS_COUNT_COMMAND) or "")
                if addresses < self._expected_nics:
                    logger.warning(
                        "%s: only %d/%d interfaces have IP addresses configured",
                        unit,
                        addresses,
                        self._expected_nics,
                    )
            else:
                phase.passed("Guest OS validation completed")
