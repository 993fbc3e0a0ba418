"""Cluster control-plane and remote execution interfaces.

Protocols:
    ClusterClient: Query and delete objects on the cluster.
    RemoteExecutor: Run a shell command inside a workload unit.
"""

# pylint: disable=unnecessary-ellipsis  # Ellipsis required for Protocol method stubs

from __future__ import annotations

from typing import Any, Protocol

from vmetest_core.types.common import LabelSelector, Unit


class ClusterClient(Protocol):
    """Protocol for cluster control-plane access.

    Objects are returned as decoded JSON dictionaries. Implementations raise
    ClusterQueryError when the control plane cannot be queried.
    """

    async def get_objects(
        self, kind: str, selector: LabelSelector | None = None, namespace: str | None = None
    ) -> list[dict[str, Any]]:
        """List objects of a kind.

        Args:
            kind: Resource kind (e.g. ``vm``, ``vmi``, ``nncp``).
            selector: Optional label selector; its namespace scopes the query.
            namespace: Namespace to query when no selector is given; None
                means the kind is cluster-scoped.

        Returns:
            List of object dictionaries (the ``items`` of the list).
        """
        ...

    async def get_object(
        self, kind: str, name: str, namespace: str | None = None
    ) -> dict[str, Any] | None:
        """Fetch a single object.

        Args:
            kind: Resource kind.
            name: Object name.
            namespace: Namespace, or None for cluster-scoped kinds.

        Returns:
            Object dictionary, or None if it does not exist.
        """
        ...

    async def delete_objects(self, kind: str, selector: LabelSelector, wait: bool = False) -> None:
        """Delete every object matching a selector.

        Args:
            kind: Resource kind.
            selector: Label selector.
            wait: Whether to wait for deletion to complete.
        """
        ...


class RemoteExecutor(Protocol):
    """Protocol for running commands inside workload units.

    Implementations use a bounded connection timeout and raise
    RemoteCommandError on any failure, including a non-zero exit status.
    """

    async def run(self, unit: Unit, command: str) -> str:
        """Run a command on a unit.

        Args:
            unit: Target unit.
            command: Shell command line.

        Returns:
            Captured standard output.
        """
        ...
