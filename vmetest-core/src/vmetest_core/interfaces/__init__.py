"""Protocol-based interface definitions for vmetest.

These interfaces decouple the validation and orchestration logic from the
cluster client, remote command client and provisioning engine, allowing
fakes to be substituted in tests.

Interface Categories:
    Cluster: ClusterClient, RemoteExecutor - control plane and guest access
    Probe: Probe, ProvisioningEngine - per-unit checks and workload execution
"""

from vmetest_core.interfaces.cluster import ClusterClient, RemoteExecutor
from vmetest_core.interfaces.probe import Probe, ProvisioningEngine

__all__ = [
    "ClusterClient",
    "Probe",
    "ProvisioningEngine",
    "RemoteExecutor",
]
