"""Responsiveness check for minimal-resource VMs.

Minimal guest images accept password logins only, so this check is run
with a password-mode remote executor.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from vmetest_core.types.common import LabelSelector

from vmetest_validation.checks.base import Check, CheckKind, units_of
from vmetest_validation.phases import PhaseRecorder

logger = logging.getLogger(__name__)

FREE_MEM_PATTERN = re.compile(r"^Mem:\s+(\d+)\s+\S+\s+\S+\s+\S+\s+\S+\s+(\d+)", re.MULTILINE)


class PerformanceMetricsCheck(Check):
    """Verify every VM responds, reports its OS identity and exposes memory."""

    kind = CheckKind.PERFORMANCE_METRICS
    report_name = "performance-metrics"

    async def _count_failures(self, vms: list[dict[str, Any]], command: str) -> int:
        failed = 0
        for unit in units_of(vms):
            output = await self.remote(unit, command)
            if output is None:
                logger.warning("%s: '%s' failed", unit, command)
                failed += 1
                continue
            match = FREE_MEM_PATTERN.search(output)
            if match:
                logger.info("%s: total %sMB, available %sMB", unit, match.group(1), match.group(2))
        return failed

    async def evaluate(
        self, selector: LabelSelector, recorder: PhaseRecorder, params: dict[str, Any]
    ) -> None:
        vms = await self.discover(selector, recorder)
        params["vm_count"] = len(vms)
        if self.skip_guest_phases(recorder, "vm_responsiveness", "os_identity", "memory_check"):
            return

        await self.check_responsiveness(vms, recorder)
        if recorder.failed:
            recorder.skip("os_identity")
            recorder.skip("memory_check")
            return

        with recorder.phase("os_identity") as phase:
            failed = await self._count_failures(vms, "uname -a && whoami")
            if failed:
                phase.failed(f"{failed}/{len(vms)} VMs failed OS check")
            else:
                phase.passed("All VMs OS identity confirmed")

        if recorder.failed:
            recorder.skip("memory_check")
            return

        with recorder.phase("memory_check") as phase:
            failed = await self._count_failures(vms, "free -m | head -2")
            if failed:
                phase.failed(f"{failed}/{len(vms)} VMs failed")
            else:
                phase.passed("All VMs memory accessible")
