"""Tests for the performance metrics check and the check registry."""

import pytest

from vmetest_core.types.validation import ValidationStatus
from vmetest_validation.checks import CHECKS, CheckKind, PerformanceMetricsCheck, get_check_class
from vmetest_validation.phases import NO_CREDENTIALS, NOT_EVALUATED

FREE_OUTPUT = """\
               total        used        free      shared  buff/cache   available
Mem:             475         180          90           1         205         280
"""


class TestPerformanceMetricsCheck:
    """Tests for PerformanceMetricsCheck."""

    async def test_all_phases_pass(self, cluster, executor, selector, vm_factory) -> None:
        cluster.add("vm", vm_factory("a"), vm_factory("b"))
        executor.responses.update(
            {"uname -a && whoami": "Linux a 6.1\nfedora\n", "free -m | head -2": FREE_OUTPUT}
        )

        report = await PerformanceMetricsCheck(cluster, executor).run(selector)

        assert report.passed
        assert report.test_name == "performance-metrics"
        assert [v.phase for v in report.validations] == [
            "vm_discovery",
            "vm_responsiveness",
            "os_identity",
            "memory_check",
        ]

    async def test_os_identity_failure(self, cluster, executor, selector, vm_factory) -> None:
        cluster.add("vm", vm_factory("a"))
        executor.responses["free -m | head -2"] = FREE_OUTPUT

        report = await PerformanceMetricsCheck(cluster, executor).run(selector)

        assert report.outcome("os_identity").message == "1/1 VMs failed OS check"
        assert report.outcome("memory_check").message == NOT_EVALUATED

    async def test_without_credentials(self, cluster, selector, vm_factory) -> None:
        cluster.add("vm", vm_factory("a"))
        report = await PerformanceMetricsCheck(cluster).run(selector)

        assert report.passed
        for phase in ("vm_responsiveness", "os_identity", "memory_check"):
            assert report.outcome(phase).status == ValidationStatus.SKIP
            assert report.outcome(phase).message == NO_CREDENTIALS


class TestCheckRegistry:
    """Tests for the kind to class registry."""

    def test_every_kind_registered(self) -> None:
        assert set(CHECKS) == set(CheckKind)

    @pytest.mark.parametrize("kind", list(CheckKind))
    def test_class_matches_kind(self, kind: CheckKind) -> None:
        assert get_check_class(kind).kind == kind

    def test_report_names_unique(self) -> None:
        names = [cls.report_name for cls in CHECKS.values()]
        assert len(names) == len(set(names))
