"""Root conftest.py for the vmetest monorepo.

This provides shared pytest configuration and fixtures across all packages:
a fake cluster client, a fake remote executor and a recording sleep
coroutine used in place of the real clock.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

import pytest

if TYPE_CHECKING:
    from _pytest.config import Config


# Add all package src directories to path for imports
PROJECT_ROOT = Path(__file__).parent
for pkg_dir in PROJECT_ROOT.glob("vmetest-*/src"):
    if str(pkg_dir) not in sys.path:
        sys.path.insert(0, str(pkg_dir))

# pylint: disable=wrong-import-position
from vmetest_core.errors import ClusterQueryError, RemoteCommandError  # noqa: E402
from vmetest_core.types.common import LabelSelector, Unit  # noqa: E402


def pytest_configure(config: Config) -> None:
    """Register custom markers.

    Args:
        config: pytest configuration object.
    """
    config.addinivalue_line(
        "markers",
        "integration: Integration test requiring a live cluster",
    )
    config.addinivalue_line(
        "markers",
        "slow: Slow-running test",
    )


def pytest_report_header(config: Config) -> list[str]:
    """Add project info to pytest header.

    Args:
        config: pytest configuration object.

    Returns:
        List of header lines.
    """
    lines = ["vmetest monorepo test suite"]
    if config.option.cov_source:
        lines.append("Coverage: enabled")
    return lines


class FakeClusterClient:
    """In-memory ClusterClient.

    Objects are stored per kind and filtered by the selector label when
    listed. Setting ``error`` makes every query raise it.
    """

    def __init__(self) -> None:
        self.objects: dict[str, list[dict[str, Any]]] = {}
        self.named: dict[tuple[str, str], dict[str, Any]] = {}
        self.deleted: list[tuple[str, LabelSelector]] = []
        self.queries: list[tuple[str, LabelSelector | None]] = []
        self.error: ClusterQueryError | None = None

    def add(self, kind: str, *objs: dict[str, Any]) -> None:
        """Add objects of a kind."""
        self.objects.setdefault(kind, []).extend(objs)

    async def get_objects(
        self,
        kind: str,
        selector: LabelSelector | None = None,
        namespace: str | None = None,
    ) -> list[dict[str, Any]]:
        self.queries.append((kind, selector))
        if self.error is not None:
            raise self.error
        items = self.objects.get(kind, [])
        if selector is None:
            return list(items)
        matched = []
        for obj in items:
            metadata = obj.get("metadata", {})
            if metadata.get("labels", {}).get(selector.key) != selector.value:
                continue
            if selector.cluster_wide or metadata.get("namespace") == selector.namespace:
                matched.append(obj)
        return matched

    async def get_object(
        self, kind: str, name: str, namespace: str | None = None
    ) -> dict[str, Any] | None:
        if self.error is not None:
            raise self.error
        return self.named.get((kind, name))

    async def delete_objects(self, kind: str, selector: LabelSelector, wait: bool = False) -> None:
        self.deleted.append((kind, selector))


class FakeRemoteExecutor:
    """In-memory RemoteExecutor.

    Responses are looked up per unit first, then by exact command, then by
    substring. Units listed in ``unreachable`` raise RemoteCommandError for
    every command, as do commands without a response.
    """

    def __init__(self, responses: dict[str, str] | None = None) -> None:
        self.responses: dict[str, str] = {
            "echo SSH_OK": "SSH_OK\n",
            "hostname && echo SSH_OK": "vm\nSSH_OK\n",
            "uptime": " 10:00:00 up 5 min,  1 user,  load average: 0.00, 0.00, 0.00\n",
        }
        self.responses.update(responses or {})
        self.per_unit: dict[tuple[str, str], str] = {}
        self.unreachable: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    async def run(self, unit: Unit, command: str) -> str:
        self.calls.append((str(unit.name), command))
        if str(unit.name) in self.unreachable:
            raise RemoteCommandError(f"{unit}: command exited with 255")
        for key, output in self.per_unit.items():
            if key[0] == str(unit.name) and key[1] in command:
                return output
        if command in self.responses:
            return self.responses[command]
        for key, output in self.responses.items():
            if key in command:
                return output
        raise RemoteCommandError(f"{unit}: command exited with 127")


class SleepRecorder:
    """Sleep coroutine that records requested waits without waiting."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        """Return the total requested wait."""
        return sum(self.calls)


def make_vm(
    name: str,
    namespace: str = "ns",
    labels: dict[str, str] | None = None,
    spec: dict[str, Any] | None = None,
    status: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a minimal VM object."""
    return {
        "metadata": {"name": name, "namespace": namespace, "labels": labels or {"app": "test"}},
        "spec": spec or {},
        "status": status or {},
    }


@pytest.fixture
def cluster() -> FakeClusterClient:
    """Provide an empty fake cluster."""
    return FakeClusterClient()


@pytest.fixture
def executor() -> FakeRemoteExecutor:
    """Provide a fake remote executor answering the SSH probes."""
    return FakeRemoteExecutor()


@pytest.fixture
def sleeper() -> SleepRecorder:
    """Provide a recording sleep coroutine."""
    return SleepRecorder()


@pytest.fixture
def vm_factory() -> Callable[..., dict[str, Any]]:
    """Provide the VM object builder."""
    return make_vm


@pytest.fixture
def selector() -> LabelSelector:
    """Provide the selector matching VMs built by vm_factory."""
    return LabelSelector("app", "test", "ns")
