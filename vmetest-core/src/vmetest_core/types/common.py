"""Common types used across vmetest modules.

Type Aliases:
    UnitId: Identifies a workload unit (virtual machine) by name.
    TestName: Identifies a registered workload test.

Classes:
    Unit: A workload unit with its namespace and scheduling node.
    LabelSelector: A single-label query against the cluster.

Functions:
    parse_bool: Parse a string boolean tunable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NewType

from vmetest_core.errors import ConfigurationError

UnitId = NewType("UnitId", str)
"""Type alias for workload unit (VM) names."""

TestName = NewType("TestName", str)
"""Type alias for registered workload test names."""

ALL_NAMESPACES = "all"
"""Namespace value meaning the query spans every namespace."""


@dataclass(frozen=True)
class Unit:
    """A workload unit addressed by name and namespace.

    Attributes:
        name: Unit (VM) name.
        namespace: Namespace the unit lives in.
        node: Node the unit is scheduled on, if known.
    """

    name: UnitId
    namespace: str
    node: str | None = None

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> Unit:
        """Create a unit from a cluster object dictionary.

        The node is taken from ``status.nodeName`` when present.

        Args:
            obj: Cluster object with ``metadata.name`` and ``metadata.namespace``.

        Returns:
            Unit instance.
        """
        metadata = obj.get("metadata", {})
        status = obj.get("status", {}) or {}
        return cls(
            name=UnitId(metadata.get("name", "")),
            namespace=metadata.get("namespace", ""),
            node=status.get("nodeName"),
        )


@dataclass(frozen=True)
class LabelSelector:
    """Label query scoped to a namespace.

    Attributes:
        key: Label key.
        value: Label value.
        namespace: Namespace to query, or ``"all"`` for cluster-wide.
    """

    key: str
    value: str
    namespace: str = ALL_NAMESPACES

    @property
    def cluster_wide(self) -> bool:
        """Return True if the selector spans every namespace."""
        return self.namespace == ALL_NAMESPACES

    @property
    def label(self) -> str:
        """Return the selector in ``key=value`` form."""
        return f"{self.key}={self.value}"

    def with_namespace(self, namespace: str) -> LabelSelector:
        """Return a copy of the selector scoped to another namespace."""
        return LabelSelector(self.key, self.value, namespace)


_TRUE = frozenset({"true", "yes", "1", "on"})
_FALSE = frozenset({"false", "no", "0", "off"})


def parse_bool(value: Any) -> bool:
    """Parse a boolean tunable (true/false, yes/no, 1/0, on/off).

    Raises:
        ConfigurationError: If the value is not a recognized boolean.
    """
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(f"Invalid boolean: {value!r}")
