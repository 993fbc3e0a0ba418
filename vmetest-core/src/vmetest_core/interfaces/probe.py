"""Probe and provisioning engine interfaces.

Protocols:
    Probe: Per-unit boolean check used by the sampling validator.
    ProvisioningEngine: External engine that runs a workload config.
"""

# pylint: disable=unnecessary-ellipsis  # Ellipsis required for Protocol method stubs

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Protocol, Sequence

from vmetest_core.types.common import Unit


class Probe(Protocol):
    """Protocol for a per-unit check.

    A probe reports failure as a False return value. It is invoked afresh on
    every attempt and must not cache results between calls.
    """

    @property
    def name(self) -> str:
        """Get the probe name used in logs."""
        ...

    async def __call__(self, unit: Unit) -> bool:
        """Probe a unit.

        Args:
            unit: Unit to probe.

        Returns:
            True if the unit passed.
        """
        ...


class ProvisioningEngine(Protocol):
    """Protocol for the external provisioning engine."""

    async def run(
        self,
        config: Path,
        user_data: Path,
        cwd: Path,
        log_path: Path,
        extra_args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
    ) -> int:
        """Run a workload configuration to completion.

        Args:
            config: Workload config file.
            user_data: Rendered vars file passed to the engine.
            cwd: Working directory (the workload directory).
            log_path: File receiving a copy of the engine output.
            extra_args: Additional command-line arguments.
            env: Environment for the engine process; None inherits ours.

        Returns:
            Engine exit code.
        """
        ...
