"""Command-line interface for vmetest-validation.

Runs one check under the retry controller and exits 0 when it succeeds,
1 when every attempt failed.

Usage:
    # Wait for all VMs to be ready, SSH-probing 25% of them
    vmetest-check vm_running --label-key app --label-value density \\
        --namespace all --private-key ~/.ssh/id_rsa --user fedora --percentage 25

    # Validate CPU limits
    vmetest-check cpu_limits --label-key app --label-value cpu --namespace cpu-limits \\
        --expected-cores 4 --private-key ~/.ssh/id_rsa --user fedora \\
        --results-dir /tmp/kube-burner-results/cpu-limits/run-1
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

from vmetest_core.errors import ConfigurationError
from vmetest_core.types.common import LabelSelector, parse_bool
from vmetest_core.types.retry import RetryPolicy

from vmetest_validation.checks import (
    Check,
    CheckKind,
    CpuLimitsCheck,
    DiskHotplugCheck,
    DiskLimitsCheck,
    HighMemoryCheck,
    LargeDiskCheck,
    MemoryLimitsCheck,
    NicHotplugCheck,
    PerformanceMetricsCheck,
    ResizeCheck,
    VmRunningCheck,
    VmShutdownCheck,
)
from vmetest_validation.clients import OcClusterClient, VirtctlRemoteExecutor, supports_local_ssh
from vmetest_validation.retry import RetryController

logger = logging.getLogger(__name__)

DEFAULT_RESULTS_DIR = "/tmp/kube-burner-validations"


def setup_logging(level: str) -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def bool_arg(value: str) -> bool:
    """Argparse type for boolean options."""
    try:
        return parse_bool(value)
    except ConfigurationError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_check(
    args: argparse.Namespace, cluster: OcClusterClient, executor: VirtctlRemoteExecutor | None
) -> Check:
    """Construct the check selected on the command line."""
    kind = CheckKind(args.kind)
    results_dir = Path(args.results_dir) if args.results_dir else None

    if kind == CheckKind.VM_RUNNING:
        return VmRunningCheck(
            cluster,
            executor,
            results_dir,
            percentage=args.percentage,
            max_ssh_retries=args.max_ssh_retries,
        )
    if kind == CheckKind.VM_SHUTDOWN:
        return VmShutdownCheck(cluster, None, results_dir)
    if kind == CheckKind.RESIZE:
        return ResizeCheck(
            cluster, executor, args.expected_root_size, args.expected_data_size, results_dir
        )
    if kind == CheckKind.CPU_LIMITS:
        return CpuLimitsCheck(cluster, executor, args.expected_cores, results_dir)
    if kind == CheckKind.MEMORY_LIMITS:
        return MemoryLimitsCheck(cluster, executor, args.expected_memory, results_dir)
    if kind == CheckKind.DISK_LIMITS:
        return DiskLimitsCheck(
            cluster, executor, args.expected_count, args.expected_size, results_dir
        )
    if kind == CheckKind.DISK_HOTPLUG:
        return DiskHotplugCheck(
            cluster,
            executor,
            args.expected_count,
            args.expected_size,
            validate_pvc_by_size=args.validate_pvc_by_size,
            validate_from_os=args.validate_from_os,
            results_dir=results_dir,
        )
    if kind == CheckKind.NIC_HOTPLUG:
        return NicHotplugCheck(
            cluster,
            executor,
            args.expected_nics,
            validate_guest_os=args.validate_guest_os,
            results_dir=results_dir,
        )
    if kind == CheckKind.PERFORMANCE_METRICS:
        return PerformanceMetricsCheck(cluster, executor, results_dir)
    if kind == CheckKind.HIGH_MEMORY:
        return HighMemoryCheck(cluster, executor, args.expected_memory, results_dir)
    return LargeDiskCheck(cluster, executor, args.expected_size, results_dir)


async def run_check(args: argparse.Namespace) -> int:
    """Run the selected check under the retry controller."""
    cluster = OcClusterClient()
    executor = None
    if args.user and (args.private_key or args.password):
        executor = VirtctlRemoteExecutor(
            user=args.user,
            identity_file=args.private_key if not args.password else None,
            password=args.password,
            connect_timeout=args.connect_timeout,
            local_ssh=await supports_local_ssh(),
        )

    check = build_check(args, cluster, executor)
    policy = RetryPolicy(
        max_attempts=args.max_attempts,
        early_wait_seconds=args.short_wait,
        early_wait_attempts=args.max_short_waits,
        late_wait_seconds=args.long_wait,
    )
    controller = RetryController(policy, name=f"check_{args.kind}")
    selector = LabelSelector(args.label_key, args.label_value, args.namespace)

    result = await controller.run(check.execute, selector)
    return 0 if result.success else 1


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--label-key", required=True, help="VM label key")
    common.add_argument("--label-value", required=True, help="VM label value")
    common.add_argument("--namespace", required=True, help="Namespace, or 'all' for cluster-wide")
    common.add_argument(
        "--results-dir", default=DEFAULT_RESULTS_DIR, help="Directory for the validation report"
    )
    common.add_argument("--user", default="", help="Guest SSH user")
    common.add_argument("--private-key", default="", help="SSH private key (key authentication)")
    common.add_argument("--password", default="", help="SSH password (password authentication)")
    common.add_argument("--connect-timeout", type=int, default=30, help="SSH connect timeout (s)")
    common.add_argument("--max-attempts", type=int, default=130, help="Retry attempts")
    common.add_argument("--max-short-waits", type=int, default=12, help="Short-wait attempts")
    common.add_argument("--short-wait", type=float, default=5.0, help="Short wait in seconds")
    common.add_argument("--long-wait", type=float, default=30.0, help="Long wait in seconds")

    parser = argparse.ArgumentParser(
        description="Validate VM workloads on a virtualization cluster",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    subparsers = parser.add_subparsers(dest="kind", help="Check to run")

    running = subparsers.add_parser("vm_running", parents=[common], help="VMs ready, sampled SSH")
    running.add_argument("--percentage", type=int, default=25, help="Percent of VMs to probe")
    running.add_argument("--max-ssh-retries", type=int, default=8, help="SSH attempts per VM")

    subparsers.add_parser("vm_shutdown", parents=[common], help="All VMs halted")

    resize = subparsers.add_parser("resize", parents=[common], help="Volume resize in guest")
    resize.add_argument("--expected-root-size", required=True)
    resize.add_argument("--expected-data-size", required=True)

    cpu = subparsers.add_parser("cpu_limits", parents=[common], help="VM CPU cores")
    cpu.add_argument("--expected-cores", type=int, required=True)

    memory = subparsers.add_parser("memory_limits", parents=[common], help="VM memory")
    memory.add_argument("--expected-memory", required=True)

    disk = subparsers.add_parser("disk_limits", parents=[common], help="VM data disks")
    disk.add_argument("--expected-count", type=int, required=True)
    disk.add_argument("--expected-size", required=True)

    disk_hotplug = subparsers.add_parser("disk_hotplug", parents=[common], help="Hot-plugged disks")
    disk_hotplug.add_argument("--expected-count", type=int, required=True)
    disk_hotplug.add_argument("--expected-size", required=True)
    disk_hotplug.add_argument("--validate-pvc-by-size", type=bool_arg, default=True)
    disk_hotplug.add_argument("--validate-from-os", type=bool_arg, default=True)

    nic_hotplug = subparsers.add_parser("nic_hotplug", parents=[common], help="Hot-plugged NICs")
    nic_hotplug.add_argument("--expected-nics", type=int, required=True)
    nic_hotplug.add_argument("--validate-guest-os", type=bool_arg, default=True)

    subparsers.add_parser("performance_metrics", parents=[common], help="VM responsiveness")

    high_memory = subparsers.add_parser(
        "high_memory", parents=[common], help="Guest memory of large VMs"
    )
    high_memory.add_argument("--expected-memory", required=True)

    large_disk = subparsers.add_parser(
        "large_disk", parents=[common], help="Large disk visible in guest"
    )
    large_disk.add_argument("--expected-size", required=True)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.kind is None:
        parser.print_help()
        return 1

    setup_logging(args.log_level)
    return asyncio.run(run_check(args))


if __name__ == "__main__":
    sys.exit(main())
