"""Per-test setup and cleanup hooks.

Setup runs inside the execution unit after the vars file is rendered and
before the provisioning engine starts; a False return marks the run as
``SETUP_FAILED``. Setup may export variables into the context environment,
which becomes the engine's environment. Cleanup runs once in the
orchestrator after the unit terminates.

Tests without an entry in HOOKS get the no-op base hooks.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, MutableMapping

from vmetest_core.errors import ClusterQueryError, ConfigurationError
from vmetest_core.interfaces import ClusterClient
from vmetest_core.types.common import ALL_NAMESPACES, LabelSelector
from vmetest_validation.clients import run_command

from vmetest_runner.config import DensitySettings, resolve_value

logger = logging.getLogger(__name__)

WORKER_SELECTOR = LabelSelector("node-role.kubernetes.io/worker", "", ALL_NAMESPACES)
DENSITY_NAMESPACE_SELECTOR = LabelSelector(
    "kube-burner.io/test-name", "per-host-density", ALL_NAMESPACES
)

# Interface auto-detection script, relative to the workloads root
DETECT_INTERFACE_SCRIPT = Path("config/scripts/detect-available-interface.sh")

DEFAULT_NIC_COUNT = 25
MANUAL_INTERFACE_HINT = "[nic-hotplug] Please set baseInterface manually: baseInterface=ens2f0"


@dataclass
class HookContext:
    """State shared with a hook.

    Attributes:
        test_name: Test being run.
        vars_data: Rendered vars mapping.
        workloads_dir: Root containing the workload directories.
        environ: Environment of the engine process; setup may add to it.
    """

    test_name: str
    vars_data: Mapping[str, Any]
    workloads_dir: Path
    environ: MutableMapping[str, str] = field(default_factory=dict)


class Hooks:
    """No-op hooks, and the base class of test-specific hooks."""

    def __init__(self, cluster: ClusterClient | None = None) -> None:
        self._cluster = cluster

    async def setup(self, context: HookContext) -> bool:
        """Prepare a test run.

        Returns:
            False if the run must not start.
        """
        return True

    async def cleanup(self, context: HookContext) -> None:
        """Release what a test run left behind."""
        return None


class PerHostDensityHooks(Hooks):
    """Pin single-node density runs to a worker and delete their namespaces."""

    async def _first_worker(self) -> str | None:
        if self._cluster is None:
            return None
        try:
            nodes = await self._cluster.get_objects("nodes", WORKER_SELECTOR)
        except ClusterQueryError as exc:
            logger.warning("[per-host-density] Cannot list worker nodes: %s", exc)
            return None
        names = [node.get("metadata", {}).get("name") for node in nodes]
        names = [name for name in names if name]
        return names[0] if names else None

    async def _worker_count(self) -> int | None:
        if self._cluster is None:
            return None
        try:
            return len(await self._cluster.get_objects("nodes", WORKER_SELECTOR))
        except ClusterQueryError:
            return None

    async def setup(self, context: HookContext) -> bool:
        try:
            settings = DensitySettings.from_sources(context.vars_data, context.environ)
        except ConfigurationError as exc:
            logger.error("[per-host-density] %s", exc)
            return False

        target_node = settings.target_node
        if not settings.multi_node and not target_node:
            target_node = await self._first_worker()
            if target_node:
                context.environ["targetNode"] = target_node
                logger.info("[per-host-density] Auto-selected targetNode: %s", target_node)

        logger.info("Scale Configuration:")
        logger.info("  scaleMode=%s", settings.scale_mode)
        logger.info("  namespaceCount=%d", settings.namespace_count)
        logger.info("  vmsPerNamespace=%d", settings.vms_per_namespace)
        logger.info("  totalVMs=%d", settings.total_vms)
        if settings.multi_node:
            count = await self._worker_count()
            logger.info("  workerNodes=%s", count if count is not None else "unknown")
        else:
            logger.info("  targetNode=%s", target_node or "not set")
        logger.info("Validation Configuration:")
        logger.info("  percentage_of_vms_to_validate=%d%%", settings.percentage_to_validate)
        logger.info("  max_ssh_retries=%d", settings.max_ssh_retries)
        return True

    async def cleanup(self, context: HookContext) -> None:
        try:
            settings = DensitySettings.from_sources(context.vars_data, context.environ)
        except ConfigurationError as exc:
            logger.error("[per-host-density] Cleanup skipped: %s", exc)
            return

        if not settings.cleanup:
            logger.info("[per-host-density] Cleanup disabled - namespaces preserved")
            return
        if self._cluster is None:
            logger.warning("[per-host-density] No cluster client - namespaces preserved")
            return

        logger.info("[per-host-density] Cleanup enabled - deleting test namespaces...")
        try:
            await self._cluster.delete_objects("namespace", DENSITY_NAMESPACE_SELECTOR, wait=False)
        except ClusterQueryError as exc:
            logger.warning("[per-host-density] Namespace deletion failed: %s", exc)
            return
        logger.info("[per-host-density] Initiated deletion of namespaces (running in background)")


class NicHotplugHooks(Hooks):
    """Resolve the bridge base interface before a NIC hot-plug run."""

    async def _detect_interface(self, script: Path) -> str | None:
        try:
            result = await run_command([str(script)], timeout=120.0)
        except (OSError, asyncio.TimeoutError) as exc:
            logger.error("[nic-hotplug] Interface detection failed: %s", exc)
            return None
        detected = result.stdout.strip() if result.ok else ""
        return detected or None

    async def setup(self, context: HookContext) -> bool:
        base_interface = context.environ.get("baseInterface")
        if not base_interface:
            script = Path(context.workloads_dir) / DETECT_INTERFACE_SCRIPT
            if not (script.is_file() and os.access(script, os.X_OK)):
                logger.error(
                    "[nic-hotplug] %s not found or not executable", DETECT_INTERFACE_SCRIPT.name
                )
                logger.error(MANUAL_INTERFACE_HINT)
                return False

            logger.info("[nic-hotplug] Auto-detecting baseInterface...")
            base_interface = await self._detect_interface(script)
            if not base_interface:
                logger.error("[nic-hotplug] Failed to auto-detect baseInterface")
                logger.error(MANUAL_INTERFACE_HINT)
                return False
            context.environ["baseInterface"] = base_interface
            logger.info("[nic-hotplug] Auto-detected baseInterface: %s", base_interface)

        nic_count = resolve_value("nicCount", context.vars_data, context.environ, DEFAULT_NIC_COUNT)
        logger.info("NIC Configuration:")
        logger.info("  baseInterface=%s", base_interface)
        logger.info("  nicCount=%s", nic_count)
        return True


HOOKS: dict[str, type[Hooks]] = {
    "per-host-density": PerHostDensityHooks,
    "nic-hotplug": NicHotplugHooks,
}


def get_hooks(test_name: str, cluster: ClusterClient | None = None) -> Hooks:
    """Return the hooks of a test, or no-op hooks."""
    return HOOKS.get(test_name, Hooks)(cluster)
