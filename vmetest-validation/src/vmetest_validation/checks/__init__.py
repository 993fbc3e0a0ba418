"""Cluster checks.

Each CheckKind maps to exactly one Check subclass. Checks evaluate a fixed
sequence of phases against the VMs matching a label selector and produce a
ValidationReport.
"""

from vmetest_validation.checks.base import Check, CheckKind
from vmetest_validation.checks.hotplug import DiskHotplugCheck, NicHotplugCheck
from vmetest_validation.checks.lifecycle import ResizeCheck, VmRunningCheck, VmShutdownCheck
from vmetest_validation.checks.performance import PerformanceMetricsCheck
from vmetest_validation.checks.resources import (
    CpuLimitsCheck,
    DiskLimitsCheck,
    HighMemoryCheck,
    LargeDiskCheck,
    MemoryLimitsCheck,
)

CHECKS: dict[CheckKind, type[Check]] = {
    cls.kind: cls
    for cls in (
        VmRunningCheck,
        VmShutdownCheck,
        ResizeCheck,
        CpuLimitsCheck,
        MemoryLimitsCheck,
        DiskLimitsCheck,
        DiskHotplugCheck,
        NicHotplugCheck,
        PerformanceMetricsCheck,
        HighMemoryCheck,
        LargeDiskCheck,
    )
}


def get_check_class(kind: CheckKind) -> type[Check]:
    """Return the Check subclass for a kind."""
    return CHECKS[kind]


__all__ = [
    "CHECKS",
    "Check",
    "CheckKind",
    "CpuLimitsCheck",
    "DiskHotplugCheck",
    "DiskLimitsCheck",
    "HighMemoryCheck",
    "LargeDiskCheck",
    "MemoryLimitsCheck",
    "NicHotplugCheck",
    "PerformanceMetricsCheck",
    "ResizeCheck",
    "VmRunningCheck",
    "VmShutdownCheck",
    "get_check_class",
]
