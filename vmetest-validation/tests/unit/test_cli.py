"""Tests for the vmetest-check command line."""

import argparse
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from vmetest_core.types.retry import RetryResult, RetryState
from vmetest_validation.checks import CpuLimitsCheck, DiskHotplugCheck, VmRunningCheck
from vmetest_validation.cli import bool_arg, build_check, build_parser, main

COMMON = ["--label-key", "app", "--label-value", "cpu", "--namespace", "cpu-ns"]


class TestParser:
    """Tests for argument parsing."""

    def test_bool_arg(self) -> None:
        assert bool_arg("true") is True
        assert bool_arg("No") is False
        assert bool_arg("off") is False
        with pytest.raises(argparse.ArgumentTypeError, match="Invalid boolean"):
            bool_arg("maybe")

    def test_bool_option_rejects_garbage(self, capsys) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(
                ["nic_hotplug", *COMMON, "--expected-nics", "2", "--validate-guest-os", "maybe"]
            )
        assert "Invalid boolean" in capsys.readouterr().err

    def test_defaults(self) -> None:
        args = build_parser().parse_args(["vm_running", *COMMON])

        assert args.kind == "vm_running"
        assert args.percentage == 25
        assert args.max_ssh_retries == 8
        assert args.max_attempts == 130
        assert args.short_wait == 5.0
        assert args.long_wait == 30.0

    def test_missing_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["cpu_limits", *COMMON])

    def test_no_command(self, capsys) -> None:
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out


class TestBuildCheck:
    """Tests for build_check."""

    def test_cpu_limits(self, cluster, tmp_path: Path) -> None:
        args = build_parser().parse_args(
            ["cpu_limits", *COMMON, "--expected-cores", "4", "--results-dir", str(tmp_path)]
        )
        check = build_check(args, cluster, None)

        assert isinstance(check, CpuLimitsCheck)
        assert check.parameters() == {"expected_cpu_cores": 4}

    def test_vm_running(self, cluster, executor) -> None:
        args = build_parser().parse_args(["vm_running", *COMMON, "--percentage", "10"])
        check = build_check(args, cluster, executor)

        assert isinstance(check, VmRunningCheck)
        assert check.has_credentials

    def test_disk_hotplug_toggles(self, cluster) -> None:
        args = build_parser().parse_args(
            [
                "disk_hotplug",
                *COMMON,
                "--expected-count",
                "2",
                "--expected-size",
                "10Gi",
                "--validate-pvc-by-size",
                "false",
            ]
        )
        check = build_check(args, cluster, None)

        assert isinstance(check, DiskHotplugCheck)
        assert check.parameters()["validate_pvc_by_size"] is False
        assert check.parameters()["validate_hotplug_from_os"] is True


class TestMain:
    """Tests for main exit codes."""

    @pytest.mark.parametrize(
        "result,expected",
        [
            (RetryResult(RetryState.SUCCEEDED, 1), 0),
            (RetryResult(RetryState.EXHAUSTED, 130), 1),
        ],
    )
    def test_exit_code(self, result: RetryResult, expected: int, tmp_path: Path) -> None:
        run_mock = AsyncMock(return_value=result)
        with patch("vmetest_validation.cli.RetryController.run", run_mock) as run:
            code = main(["vm_shutdown", *COMMON, "--results-dir", str(tmp_path)])

        assert code == expected
        selector = run.await_args.args[1]
        assert selector.label == "app=cpu"
        assert selector.namespace == "cpu-ns"
