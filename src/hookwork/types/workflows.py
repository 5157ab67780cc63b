"""Workflow types: ordered multi-step automations."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from hookwork.types.hooks import DEFAULT_TIMEOUT_MS, ConditionKind, clamp_timeout


class StepType(Enum):
    HOOK = "hook"
    COMMAND = "command"


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key; accepts camelCase and snake_case spellings."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True, slots=True)
class Trigger:
    """Event + condition that starts a workflow."""

    event: str
    condition: str = ConditionKind.ALWAYS.value
    condition_params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Trigger:
        params = _pick(data, "conditionParams", "condition_params", default={})
        return cls(
            event=str(data.get("event") or ""),
            condition=str(data.get("condition") or ConditionKind.ALWAYS.value),
            condition_params=dict(params) if isinstance(params, Mapping) else {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "condition": self.condition,
            "conditionParams": dict(self.condition_params),
        }


@dataclass(frozen=True, slots=True)
class WorkflowSettings:
    parallel: bool = False
    stop_on_error: bool = True
    timeout: int = DEFAULT_TIMEOUT_MS  # default step timeout, ms

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> WorkflowSettings:
        data = data or {}
        return cls(
            parallel=bool(data.get("parallel", False)),
            stop_on_error=_pick(data, "stopOnError", "stop_on_error", default=True) is not False,
            timeout=clamp_timeout(data.get("timeout")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "parallel": self.parallel,
            "stopOnError": self.stop_on_error,
            "timeout": self.timeout,
        }


@dataclass(frozen=True, slots=True)
class WorkflowStep:
    """One step. ``id`` is unique only within its workflow."""

    id: str
    name: str = ""
    type: StepType = StepType.COMMAND
    command: str = ""
    hook_id: str | None = None
    timeout: int | None = None  # None: fall back to the workflow setting
    retries: int = 0
    continue_on_error: bool = False

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], index: int = 0) -> WorkflowStep:
        raw_type = data.get("type") or StepType.COMMAND.value
        try:
            step_type = StepType(raw_type)
        except ValueError:
            step_type = StepType.COMMAND
        hook_id = _pick(data, "hookId", "hook_id")
        if hook_id is not None and "type" not in data:
            step_type = StepType.HOOK
        timeout = data.get("timeout")
        retries = data.get("retries") or 0
        return cls(
            id=str(data.get("id") or f"step-{index + 1}"),
            name=str(data.get("name") or f"Step {index + 1}"),
            type=step_type,
            command=str(data.get("command") or ""),
            hook_id=str(hook_id) if hook_id is not None else None,
            timeout=clamp_timeout(timeout) if timeout is not None else None,
            retries=max(0, int(retries)),
            continue_on_error=bool(_pick(data, "continueOnError", "continue_on_error", default=False)),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "command": self.command,
            "retries": self.retries,
            "continueOnError": self.continue_on_error,
        }
        if self.hook_id is not None:
            out["hookId"] = self.hook_id
        if self.timeout is not None:
            out["timeout"] = self.timeout
        return out


@dataclass(frozen=True, slots=True)
class Workflow:
    id: str
    name: str
    trigger: Trigger
    steps: tuple[WorkflowStep, ...]
    settings: WorkflowSettings = field(default_factory=WorkflowSettings)
    description: str = ""
    enabled: bool = True
    project_path: str | None = None

    @property
    def event(self) -> str:
        return self.trigger.event

    @property
    def condition(self) -> str:
        return self.trigger.condition

    @property
    def condition_params(self) -> dict[str, Any]:
        return self.trigger.condition_params

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, workflow_id: str | None = None) -> Workflow:
        trigger = data.get("trigger")
        steps = data.get("steps") or []
        return cls(
            id=workflow_id or str(data.get("id") or "preview"),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            trigger=Trigger.from_dict(trigger if isinstance(trigger, Mapping) else {}),
            steps=tuple(
                WorkflowStep.from_dict(s, i) for i, s in enumerate(steps) if isinstance(s, Mapping)
            ),
            settings=WorkflowSettings.from_dict(data.get("settings")),
            enabled=bool(data.get("enabled", True)),
            project_path=_pick(data, "project_path", "projectPath"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "trigger": self.trigger.to_dict(),
            "steps": [s.to_dict() for s in self.steps],
            "settings": self.settings.to_dict(),
            "enabled": self.enabled,
            "project_path": self.project_path,
        }


@dataclass(frozen=True, slots=True)
class StepResult:
    step_id: str
    step_name: str
    success: bool
    output: str = ""
    error: str | None = None
    execution_time_ms: int = 0
    attempts: int = 1
    continue_on_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "stepId": self.step_id,
            "stepName": self.step_name,
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "executionTime": self.execution_time_ms,
            "attempts": self.attempts,
            "continueOnError": self.continue_on_error,
        }


@dataclass(slots=True)
class WorkflowResult:
    workflow_id: str
    workflow_name: str
    success: bool = False
    execution_time_ms: int = 0
    step_results: list[StepResult] = field(default_factory=list)
    skipped_steps: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflowId": self.workflow_id,
            "workflowName": self.workflow_name,
            "success": self.success,
            "executionTime": self.execution_time_ms,
            "stepResults": [r.to_dict() for r in self.step_results],
            "skippedSteps": list(self.skipped_steps),
            "error": self.error,
        }
