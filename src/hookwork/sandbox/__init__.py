"""Subprocess supervision."""

from hookwork.sandbox.supervisor import (
    ProcessOutput,
    ProcessSpawnError,
    ProcessSupervisor,
    ProcessTimeoutError,
    SupervisorError,
    build_environment,
)

__all__ = [
    "ProcessOutput",
    "ProcessSpawnError",
    "ProcessSupervisor",
    "ProcessTimeoutError",
    "SupervisorError",
    "build_environment",
]
