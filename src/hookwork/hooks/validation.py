"""Write-time validation for rule and workflow definitions.

Everything here raises ``RuleValidationError`` synchronously; nothing that
passes should be able to fail for configuration reasons at dispatch time.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from hookwork.hooks.expressions import ExpressionError, compile_expression
from hookwork.types.hooks import (
    DEFAULT_TIMEOUT_MS,
    ConditionKind,
    HookEvent,
    RuleValidationError,
    clamp_timeout,
)
from hookwork.types.workflows import StepType, Workflow

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})$")

VALID_EVENTS = tuple(e.value for e in HookEvent)
VALID_CONDITIONS = tuple(c.value for c in ConditionKind)


def _first(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return default


def condition_errors(condition: str, params: Any) -> list[str]:
    """Problems with a condition/params pair; empty when it is usable."""
    if condition not in VALID_CONDITIONS:
        return [f"Invalid condition type: {condition}"]
    if not isinstance(params, Mapping):
        return ["conditionParams must be an object"]

    errors: list[str] = []
    required = {
        ConditionKind.FILE_TYPE.value: "extension",
        ConditionKind.TOOL_NAME.value: "tool",
        ConditionKind.PROJECT_PATH.value: "path",
        ConditionKind.CUSTOM.value: "code",
    }.get(condition)
    if required and not params.get(required):
        errors.append(f"Condition '{condition}' requires conditionParams.{required}")

    if condition == ConditionKind.TIME_RANGE.value:
        for key in ("start_time", "end_time"):
            value = params.get(key)
            if value is None:
                continue
            m = _CLOCK_RE.match(str(value))
            if m is None or int(m.group(1)) > 23 or int(m.group(2)) > 59:
                errors.append(f"conditionParams.{key} must be HH:MM, got {value!r}")

    if condition == ConditionKind.CUSTOM.value and params.get("code"):
        try:
            compile_expression(str(params["code"]))
        except ExpressionError as exc:
            errors.append(f"Invalid custom condition: {exc}")
    return errors


def validate_rule_config(config: Mapping[str, Any]) -> dict[str, Any]:
    """Validate a hook definition and return its normalised fields.

    Accepts the UI's camelCase keys (``conditionParams``, ``projectPath``)
    and snake_case. The timeout is clamped into range.
    """
    if not isinstance(config, Mapping):
        raise RuleValidationError("Hook configuration must be an object")

    errors: list[str] = []
    for key in ("name", "event", "command"):
        if not config.get(key):
            errors.append(f"Missing required field: {key}")

    event = config.get("event")
    if event and event not in VALID_EVENTS:
        errors.append(f"Invalid event type: {event}")

    condition = str(config.get("condition") or ConditionKind.ALWAYS.value)
    params = _first(config, "conditionParams", "condition_params", default={})
    if params is None:
        params = {}
    errors.extend(condition_errors(condition, params))

    timeout = DEFAULT_TIMEOUT_MS
    try:
        timeout = clamp_timeout(config.get("timeout"))
    except RuleValidationError as exc:
        errors.append(str(exc))

    if errors:
        raise RuleValidationError(f"Invalid hook configuration: {'; '.join(errors)}", errors)

    project_path = _first(config, "project_path", "projectPath")
    return {
        "name": str(config["name"]),
        "description": str(config.get("description") or ""),
        "event": str(event),
        "condition": condition,
        "condition_params": dict(params),
        "command": str(config["command"]),
        "timeout": timeout,
        "enabled": bool(config.get("enabled", True)),
        "project_path": str(project_path) if project_path else None,
    }


def validate_workflow_config(
    config: Mapping[str, Any], *, workflow_id: str | None = None,
) -> Workflow:
    """Validate a workflow definition and build the Workflow."""
    if not isinstance(config, Mapping):
        raise RuleValidationError("Workflow configuration must be an object")

    errors: list[str] = []
    if not config.get("name"):
        errors.append("Missing required field: name")

    trigger = config.get("trigger")
    if not isinstance(trigger, Mapping):
        errors.append("Missing required field: trigger")
    else:
        event = trigger.get("event")
        if not event:
            errors.append("Missing required field: trigger.event")
        elif event not in VALID_EVENTS:
            errors.append(f"Invalid event type: {event}")
        params = _first(trigger, "conditionParams", "condition_params", default={})
        errors.extend(
            condition_errors(
                str(trigger.get("condition") or ConditionKind.ALWAYS.value),
                {} if params is None else params,
            )
        )

    steps = config.get("steps")
    if not isinstance(steps, list) or not steps:
        errors.append("Missing required field: steps")
        steps = []

    seen: set[str] = set()
    for i, step in enumerate(steps):
        label = f"steps[{i}]"
        if not isinstance(step, Mapping):
            errors.append(f"{label} must be an object")
            continue
        step_id = str(step.get("id") or f"step-{i + 1}")
        if step_id in seen:
            errors.append(f"{label}: duplicate step id {step_id!r}")
        seen.add(step_id)

        step_type = step.get("type")
        hook_id = _first(step, "hookId", "hook_id")
        if step_type is not None and step_type not in (StepType.HOOK.value, StepType.COMMAND.value):
            errors.append(f"{label}: invalid step type {step_type!r}")
        elif step_type == StepType.HOOK.value or (step_type is None and hook_id):
            if not hook_id:
                errors.append(f"{label}: hook steps require hookId")
        elif not step.get("command"):
            errors.append(f"{label}: command steps require command")

        retries = step.get("retries")
        if retries is not None and (
            isinstance(retries, bool) or not isinstance(retries, int) or retries < 0
        ):
            errors.append(f"{label}: retries must be a non-negative integer")
        if step.get("timeout") is not None:
            try:
                clamp_timeout(step["timeout"])
            except RuleValidationError as exc:
                errors.append(f"{label}: {exc}")

    settings = config.get("settings")
    if settings is not None and not isinstance(settings, Mapping):
        errors.append("settings must be an object")
    elif settings and settings.get("timeout") is not None:
        try:
            clamp_timeout(settings["timeout"])
        except RuleValidationError as exc:
            errors.append(f"settings: {exc}")

    if errors:
        raise RuleValidationError(f"Invalid workflow configuration: {'; '.join(errors)}", errors)
    return Workflow.from_dict(config, workflow_id=workflow_id)
