"""Process supervisor: run a shell command with a deadline.

The child runs in its own session so the whole process group can be
signalled. On deadline the group receives SIGTERM, then SIGKILL once the
grace period has passed without it exiting.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import time
from collections.abc import Mapping
from dataclasses import dataclass

from hookwork.hooks.events import EventContext
from hookwork.types.config import SupervisorConfig
from hookwork.types.hooks import DEFAULT_TIMEOUT_MS

logger = logging.getLogger(__name__)

_POSIX = os.name == "posix"


class SupervisorError(Exception):
    """Base class for supervisor failures."""


class ProcessTimeoutError(SupervisorError):
    """The command outlived its deadline and was killed."""

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Command timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class ProcessSpawnError(SupervisorError):
    """The shell could not be started (missing cwd, no shell, ...)."""


@dataclass(frozen=True, slots=True)
class ProcessOutput:
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int


def build_environment(
    context: EventContext,
    prefix: str = "HOOK",
    *,
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Process environment plus ``<prefix>_EVENT`` and friends for *context*."""
    env = dict(os.environ if base is None else base)
    env[f"{prefix}_EVENT"] = context.event
    env[f"{prefix}_PROJECT_PATH"] = context.project_path or ""
    env[f"{prefix}_TIMESTAMP"] = context.timestamp
    env[f"{prefix}_DATA"] = json.dumps(context.data_dict(), default=str)
    return env


class ProcessSupervisor:
    """Runs shell commands and enforces the two-stage timeout."""

    def __init__(self, config: SupervisorConfig | None = None) -> None:
        self._config = config or SupervisorConfig()

    @property
    def kill_grace_seconds(self) -> float:
        return self._config.kill_grace_seconds

    async def run(
        self,
        command: str,
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> ProcessOutput:
        """Run *command* through the shell and collect its output.

        Raises ``ProcessTimeoutError`` when the deadline passes and
        ``ProcessSpawnError`` when the process cannot be started. A non-zero
        exit code is not an error here; callers decide what it means.
        """
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd or None,
                env=dict(env) if env is not None else None,
                executable=self._config.shell,
                start_new_session=_POSIX,
            )
        except OSError as exc:
            raise ProcessSpawnError(f"Failed to start process: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=timeout_ms / 1000,
            )
        except TimeoutError:
            logger.warning("Command timed out after %dms, terminating pid %d", timeout_ms, proc.pid)
            await self._terminate(proc)
            raise ProcessTimeoutError(timeout_ms) from None

        return ProcessOutput(
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace").strip() if stdout else "",
            stderr=stderr.decode("utf-8", errors="replace").strip() if stderr else "",
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM the group, wait out the grace period, then SIGKILL."""
        self._signal(proc, signal.SIGTERM)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._config.kill_grace_seconds)
            return
        except TimeoutError:
            logger.warning(
                "pid %d ignored SIGTERM for %.1fs, sending SIGKILL",
                proc.pid, self._config.kill_grace_seconds,
            )
        self._signal(proc, signal.SIGKILL if _POSIX else signal.SIGTERM)
        await proc.wait()

    @staticmethod
    def _signal(proc: asyncio.subprocess.Process, sig: int) -> None:
        try:
            if _POSIX:
                os.killpg(proc.pid, sig)
            elif sig == signal.SIGTERM and proc.returncode is None:
                proc.kill()
        except ProcessLookupError:
            pass
