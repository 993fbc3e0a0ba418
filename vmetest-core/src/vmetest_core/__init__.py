"""Core library for VM workload validation.

This package provides the data types, interfaces and error types shared by
the vmetest validation and runner packages. It has no third-party
dependencies.

Key components:
    - Types: Units and label selectors, validation outcomes and reports,
      sampling and retry types.
    - Interfaces: Protocol-based definitions for the cluster client, remote
      executor, probes and the provisioning engine.
    - Errors: Hierarchy of exception types for various failure modes.

Example:
    >>> from vmetest_core import RetryPolicy
    >>> RetryPolicy().wait_after(1)
    5.0
"""

from vmetest_core.errors import (
    ClusterQueryError,
    ConfigurationError,
    ProvisioningError,
    QuantityError,
    RegistryError,
    RemoteCommandError,
    VmetestError,
)
from vmetest_core.interfaces import ClusterClient, Probe, ProvisioningEngine, RemoteExecutor
from vmetest_core.types import (
    ALL_NAMESPACES,
    LabelSelector,
    OverallStatus,
    RetryPolicy,
    RetryResult,
    RetryState,
    SampleOutcome,
    SampleSelection,
    TestName,
    Unit,
    UnitId,
    ValidationOutcome,
    ValidationReport,
    ValidationStatus,
)

__all__ = [
    # Errors
    "ClusterQueryError",
    "ConfigurationError",
    "ProvisioningError",
    "QuantityError",
    "RegistryError",
    "RemoteCommandError",
    "VmetestError",
    # Interfaces
    "ClusterClient",
    "Probe",
    "ProvisioningEngine",
    "RemoteExecutor",
    # Types
    "ALL_NAMESPACES",
    "LabelSelector",
    "OverallStatus",
    "RetryPolicy",
    "RetryResult",
    "RetryState",
    "SampleOutcome",
    "SampleSelection",
    "TestName",
    "Unit",
    "UnitId",
    "ValidationOutcome",
    "ValidationReport",
    "ValidationStatus",
    # Version
    "__version__",
]

__version__ = "0.1.0"
