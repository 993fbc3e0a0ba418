"""Per-unit probes.

A probe runs one remote command against one unit and reports the result as
a boolean. Remote failures are logged and returned as False so that callers
can retry without exception handling.
"""

from __future__ import annotations

import logging

from vmetest_core.errors import RemoteCommandError
from vmetest_core.interfaces.cluster import RemoteExecutor
from vmetest_core.types.common import Unit

logger = logging.getLogger(__name__)

SSH_OK_MARKER = "SSH_OK"


class CommandProbe:
    """Probe that passes when a remote command succeeds.

    If ``expect`` is given the command output must also contain it.
    """

    def __init__(
        self,
        executor: RemoteExecutor,
        command: str,
        expect: str | None = None,
        name: str | None = None,
    ) -> None:
        self._executor = executor
        self._command = command
        self._expect = expect
        self._name = name or command

    @property
    def name(self) -> str:
        """Get the probe name."""
        return self._name

    async def __call__(self, unit: Unit) -> bool:
        try:
            output = await self._executor.run(unit, self._command)
        except RemoteCommandError as exc:
            logger.debug("%s on %s failed: %s", self._name, unit, exc)
            return False
        if self._expect is not None and self._expect not in output:
            logger.debug("%s on %s: %r not in output", self._name, unit, self._expect)
            return False
        return True


class SshProbe(CommandProbe):
    """Probe that verifies a unit accepts SSH connections."""

    def __init__(self, executor: RemoteExecutor) -> None:
        super().__init__(
            executor, f"hostname && echo {SSH_OK_MARKER}", expect=SSH_OK_MARKER, name="ssh"
        )
