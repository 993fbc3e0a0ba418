"""Tests for validation outcome and report types."""

import pytest

from vmetest_core.types.validation import (
    OverallStatus,
    ValidationOutcome,
    ValidationReport,
    ValidationStatus,
)


def _outcome(phase: str, status: ValidationStatus) -> ValidationOutcome:
    return ValidationOutcome(phase=phase, status=status, message=f"{phase} {status.value}")


class TestValidationStatus:
    """Tests for ValidationStatus enum."""

    def test_values(self) -> None:
        assert ValidationStatus.PASS.value == "PASS"
        assert ValidationStatus.FAIL.value == "FAIL"
        assert ValidationStatus.SKIP.value == "SKIP"
        assert ValidationStatus.PARTIAL.value == "PARTIAL"

    def test_from_string(self) -> None:
        assert ValidationStatus("PARTIAL") == ValidationStatus.PARTIAL


class TestValidationOutcome:
    """Tests for ValidationOutcome."""

    def test_to_dict_merges_extra(self) -> None:
        outcome = ValidationOutcome(
            phase="guest_os_memory",
            status=ValidationStatus.PASS,
            message="ok",
            duration_seconds=1.23456,
            extra={"expected_mb": 4096},
        )
        data = outcome.to_dict()
        assert data == {
            "phase": "guest_os_memory",
            "status": "PASS",
            "message": "ok",
            "duration_seconds": 1.235,
            "expected_mb": 4096,
        }

    def test_from_dict_keeps_extra(self) -> None:
        outcome = ValidationOutcome.from_dict(
            {"phase": "p", "status": "SKIP", "message": "m", "duration_seconds": 2, "device": "vdb"}
        )
        assert outcome.status == ValidationStatus.SKIP
        assert outcome.duration_seconds == 2.0
        assert outcome.extra == {"device": "vdb"}

    def test_is_immutable(self) -> None:
        outcome = _outcome("p", ValidationStatus.PASS)
        with pytest.raises(AttributeError):
            outcome.status = ValidationStatus.FAIL  # type: ignore[misc]


class TestValidationReport:
    """Tests for ValidationReport status derivation."""

    def test_empty_report_succeeds(self) -> None:
        report = ValidationReport(test_name="vm-running", namespace="ns")
        assert report.overall_status == OverallStatus.SUCCESS
        assert report.exit_code == 0

    def test_any_fail_fails_report(self) -> None:
        report = ValidationReport(
            test_name="cpu-limits",
            namespace="ns",
            validations=(
                _outcome("vm_discovery", ValidationStatus.PASS),
                _outcome("vm_spec_cpu_cores", ValidationStatus.FAIL),
                _outcome("guest_os_cpu_count", ValidationStatus.SKIP),
            ),
        )
        assert report.overall_status == OverallStatus.FAILED
        assert report.exit_code == 1
        assert not report.passed

    @pytest.mark.parametrize("status", [ValidationStatus.SKIP, ValidationStatus.PARTIAL])
    def test_skip_and_partial_never_fail(self, status: ValidationStatus) -> None:
        report = ValidationReport(
            test_name="vm-running",
            namespace="ns",
            validations=(
                _outcome("vm_discovery", ValidationStatus.PASS),
                _outcome("ssh_validation", status),
            ),
        )
        assert report.overall_status == OverallStatus.SUCCESS

    def test_function_name(self) -> None:
        report = ValidationReport(test_name="nic-hotplug", namespace="ns")
        assert report.function == "check_nic_hotplug"

    def test_to_dict_schema(self) -> None:
        report = ValidationReport(
            test_name="disk-limits",
            namespace="disk-ns",
            parameters={"vm_count": 2},
            validations=(_outcome("vm_discovery", ValidationStatus.FAIL),),
            timestamp="2024-01-01T00:00:00+00:00",
        )
        data = report.to_dict()
        assert list(data) == [
            "testName",
            "function",
            "timestamp",
            "namespace",
            "parameters",
            "overallStatus",
            "exitCode",
            "validations",
        ]
        assert data["overallStatus"] == "FAILED"
        assert data["exitCode"] == 1
        assert data["function"] == "check_disk_limits"
        assert data["validations"][0]["phase"] == "vm_discovery"

    def test_from_dict_rederives_status(self) -> None:
        report = ValidationReport.from_dict(
            {
                "testName": "resize",
                "namespace": "ns",
                "overallStatus": "SUCCESS",
                "validations": [{"phase": "root_volume_size", "status": "FAIL"}],
            }
        )
        assert report.overall_status == OverallStatus.FAILED

    def test_outcome_lookup(self) -> None:
        report = ValidationReport(
            test_name="t", namespace="ns", validations=(_outcome("a", ValidationStatus.PASS),)
        )
        assert report.outcome("a") is not None
        assert report.outcome("missing") is None
