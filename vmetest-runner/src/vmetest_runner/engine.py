"""kube-burner provisioning engine client."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Mapping, Sequence, TextIO

from vmetest_core.errors import ProvisioningError

logger = logging.getLogger(__name__)


class KubeBurnerEngine:
    """Run ``kube-burner init`` and tee its output to a log file.

    Example:
        >>> engine = KubeBurnerEngine()
        >>> code = await engine.run(config, vars_file, workload_dir, results / "kube-burner.log")
    """

    def __init__(self, binary: str = "kube-burner", stream: TextIO | None = None) -> None:
        """Initialize the engine client.

        Args:
            binary: kube-burner executable.
            stream: Stream receiving the live output. Defaults to stdout.
        """
        self._binary = binary
        self._stream = stream

    def build_args(
        self, config: Path, user_data: Path, extra_args: Sequence[str] = ()
    ) -> list[str]:
        """Build the engine command line."""
        return [self._binary, "init", f"--config={config}", f"--user-data={user_data}", *extra_args]

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

        Standard output and standard error are merged, written to the
        stream as they arrive and copied to ``log_path``.

        Raises:
            ProvisioningError: If the engine cannot be launched.
        """
        args = self.build_args(config, user_data, extra_args)
        logger.info("Running: %s (in %s)", " ".join(args), cwd)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(cwd),
                env=dict(env) if env is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise ProvisioningError(f"Cannot launch {self._binary}: {exc}") from exc

        stream = self._stream or sys.stdout
        assert proc.stdout is not None
        with open(log_path, "w", encoding="utf-8") as log:
            while True:
                line = await proc.stdout.readline()
                if not line:
                    break
                text = line.decode(errors="replace")
                stream.write(text)
                log.write(text)
            stream.flush()

        returncode = await proc.wait()
        logger.info("%s exited with %d", self._binary, returncode)
        return returncode
