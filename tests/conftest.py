"""Test fixtures including MockSupervisor for deterministic command execution."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from hookwork.audit.auditor import ExecutionAuditor
from hookwork.core.engine import AutomationEngine
from hookwork.sandbox.supervisor import ProcessOutput
from hookwork.storage.sql import SqlAutomationStore
from hookwork.types.config import AuditConfig, EngineConfig
from hookwork.types.hooks import AutomationRule

TEST_ENVIRON = {"PATH": "/usr/bin:/bin", "HOME": "/home/tester", "API_TOKEN": "s3cret"}


def ok(stdout: str = "", stderr: str = "", duration_ms: int = 5) -> ProcessOutput:
    return ProcessOutput(exit_code=0, stdout=stdout, stderr=stderr, duration_ms=duration_ms)


def fail(code: int = 1, stderr: str = "", stdout: str = "") -> ProcessOutput:
    return ProcessOutput(exit_code=code, stdout=stdout, stderr=stderr, duration_ms=5)


class MockSupervisor:
    """A scripted stand-in for ProcessSupervisor.

    Each call to ``run`` pops the next scripted outcome: a ProcessOutput is
    returned, an exception is raised, a callable is called with the command.
    When the script is exhausted ``default`` is returned.

    Usage:
        supervisor = MockSupervisor([ok("built"), fail(2, "boom")])
    """

    kill_grace_seconds = 0.1

    def __init__(
        self,
        outputs: list[ProcessOutput | BaseException | Callable[[str], ProcessOutput]] | None = None,
        *,
        default: ProcessOutput | None = None,
    ) -> None:
        self._outputs = list(outputs or [])
        self._default = default or ok()
        self.calls: list[dict[str, Any]] = []

    def script(self, *outputs: ProcessOutput | BaseException | Callable[[str], ProcessOutput]) -> None:
        self._outputs.extend(outputs)

    @property
    def commands(self) -> list[str]:
        return [c["command"] for c in self.calls]

    async def run(
        self,
        command: str,
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout_ms: int = 30_000,
    ) -> ProcessOutput:
        self.calls.append(
            {"command": command, "cwd": cwd, "env": dict(env or {}), "timeout_ms": timeout_ms}
        )
        item = self._outputs.pop(0) if self._outputs else self._default
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(command)
        return item


def make_rule(**overrides: Any) -> AutomationRule:
    fields: dict[str, Any] = {
        "id": "rule-1",
        "name": "Echo",
        "event": "FileChange",
        "command": "echo hi",
    }
    fields.update(overrides)
    return AutomationRule(**fields)


@pytest.fixture
def store():
    s = SqlAutomationStore.open(":memory:")
    yield s
    s.close()


@pytest.fixture
def supervisor() -> MockSupervisor:
    return MockSupervisor()


@pytest.fixture
def auditor(store) -> ExecutionAuditor:
    return ExecutionAuditor(store, AuditConfig())


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def engine(store, supervisor, sleeps) -> AutomationEngine:
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    return AutomationEngine(
        store,
        EngineConfig(db_path=":memory:"),
        supervisor=supervisor,
        environ=TEST_ENVIRON,
        sleep=fake_sleep,
    )
