"""Command-line backed cluster and remote execution clients.

OcClusterClient queries the control plane with ``oc`` (or ``kubectl``) and
decodes its JSON output. VirtctlRemoteExecutor runs commands inside VMs over
``virtctl ssh``, using either key-based or password-based (``sshpass``)
authentication.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Sequence

from vmetest_core.errors import ClusterQueryError, RemoteCommandError
from vmetest_core.types.common import LabelSelector, Unit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Result of a local subprocess."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        """Return True if the command exited with status 0."""
        return self.returncode == 0


async def run_command(args: Sequence[str], timeout: float | None = None) -> CommandResult:
    """Run a local command and capture its output.

    Args:
        args: Program and arguments.
        timeout: Optional limit in seconds; the process is killed on expiry.

    Returns:
        CommandResult with decoded output.

    Raises:
        FileNotFoundError: If the program does not exist.
        asyncio.TimeoutError: If the timeout expires.
    """
    logger.debug("Running: %s", " ".join(args))
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    return CommandResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )


class OcClusterClient:
    """Cluster client backed by the ``oc`` command line."""

    def __init__(self, binary: str = "oc", timeout: float | None = 120.0) -> None:
        """Initialize the client.

        Args:
            binary: Control-plane CLI (``oc`` or ``kubectl``).
            timeout: Per-command timeout in seconds.
        """
        self._binary = binary
        self._timeout = timeout

    async def _run(self, args: list[str]) -> CommandResult:
        try:
            return await run_command([self._binary, *args], self._timeout)
        except FileNotFoundError as exc:
            raise ClusterQueryError(f"{self._binary} not found") from exc
        except asyncio.TimeoutError as exc:
            raise ClusterQueryError(f"{self._binary} {' '.join(args)} timed out") from exc

    @staticmethod
    def _decode(result: CommandResult) -> Any:
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise ClusterQueryError(f"Invalid JSON from cluster: {exc}") from exc

    async def get_objects(
        self,
        kind: str,
        selector: LabelSelector | None = None,
        namespace: str | None = None,
    ) -> list[dict[str, Any]]:
        """List objects of a kind, scoped by selector or namespace."""
        args = ["get", kind]
        scope = selector.namespace if selector is not None else namespace
        if scope is not None:
            args += ["-A"] if scope == "all" else ["-n", scope]
        if selector is not None:
            args += ["-l", selector.label]
        args += ["-o", "json"]

        result = await self._run(args)
        if not result.ok:
            raise ClusterQueryError(f"Failed to get {kind}: {result.stderr.strip()}")
        return list(self._decode(result).get("items", []))

    async def get_object(
        self, kind: str, name: str, namespace: str | None = None
    ) -> dict[str, Any] | None:
        """Fetch one object, returning None if it does not exist."""
        args = ["get", kind, name]
        if namespace is not None:
            args += ["-n", namespace]
        args += ["-o", "json"]

        result = await self._run(args)
        if not result.ok:
            if "NotFound" in result.stderr:
                return None
            raise ClusterQueryError(f"Failed to get {kind}/{name}: {result.stderr.strip()}")
        return dict(self._decode(result))

    async def delete_objects(self, kind: str, selector: LabelSelector, wait: bool = False) -> None:
        """Delete objects matching a selector.

        A cluster-wide selector issues the delete without a namespace flag,
        which suits cluster-scoped kinds such as namespaces.
        """
        args = ["delete", kind, "-l", selector.label, f"--wait={'true' if wait else 'false'}"]
        if not selector.cluster_wide:
            args += ["-n", selector.namespace]

        result = await self._run(args)
        if not result.ok:
            raise ClusterQueryError(
                f"Failed to delete {kind} ({selector.label}): {result.stderr.strip()}"
            )
        logger.info("Deleted %s matching %s", kind, selector.label)


class VirtctlRemoteExecutor:
    """Remote executor using ``virtctl ssh``.

    Key mode passes an identity file and forces public-key authentication
    in batch mode. Password mode wraps the call in ``sshpass``.
    """

    def __init__(
        self,
        user: str,
        identity_file: str | None = None,
        password: str | None = None,
        connect_timeout: int = 30,
        command_timeout: float | None = 300.0,
        local_ssh: bool = False,
        binary: str = "virtctl",
    ) -> None:
        """Initialize the executor.

        Args:
            user: Guest user name.
            identity_file: Private key path for key mode.
            password: Password for password mode.
            connect_timeout: SSH connection timeout in seconds.
            command_timeout: Overall limit for one remote command.
            local_ssh: Pass ``--local-ssh`` to virtctl.
            binary: virtctl executable.

        Raises:
            ValueError: If neither or both of identity_file and password are set.
        """
        if (identity_file is None) == (password is None):
            raise ValueError("Exactly one of identity_file or password is required")
        self._user = user
        self._identity_file = identity_file
        self._password = password
        self._connect_timeout = connect_timeout
        self._command_timeout = command_timeout
        self._local_ssh = local_ssh
        self._binary = binary

    @property
    def password_mode(self) -> bool:
        """Return True if password authentication is used."""
        return self._password is not None

    def build_args(self, unit: Unit, command: str) -> list[str]:
        """Build the full argument list for a remote command."""
        ssh_opts = ["StrictHostKeyChecking=no", "UserKnownHostsFile=/dev/null"]
        if not self.password_mode:
            ssh_opts += [
                "BatchMode=yes",
                "PasswordAuthentication=no",
                "PreferredAuthentications=publickey",
            ]
        ssh_opts.append(f"ConnectTimeout={self._connect_timeout}")

        args: list[str] = []
        if self.password_mode:
            args += ["sshpass", "-p", str(self._password)]
        args += [self._binary, "ssh"]
        if self._local_ssh:
            args.append("--local-ssh")
        args += [f"--local-ssh-opts=-o {opt}" for opt in ssh_opts]
        args += ["-n", unit.namespace]
        if self._identity_file is not None:
            args += ["-i", self._identity_file]
        args += ["-c", command, "--username", self._user, str(unit.name)]
        return args

    async def run(self, unit: Unit, command: str) -> str:
        """Run a command on a unit and return its standard output."""
        try:
            result = await run_command(self.build_args(unit, command), self._command_timeout)
        except FileNotFoundError as exc:
            raise RemoteCommandError(f"{exc.filename or self._binary} not found") from exc
        except asyncio.TimeoutError as exc:
            raise RemoteCommandError(f"{unit}: command timed out") from exc
        if not result.ok:
            raise RemoteCommandError(f"{unit}: command exited with {result.returncode}")
        return result.stdout


async def supports_local_ssh(binary: str = "virtctl") -> bool:
    """Return True if ``virtctl ssh`` accepts ``--local-ssh``."""
    try:
        result = await run_command([binary, "ssh", "--help"], timeout=30)
    except (FileNotFoundError, asyncio.TimeoutError):
        return False
    return "--local-ssh " in result.stdout
