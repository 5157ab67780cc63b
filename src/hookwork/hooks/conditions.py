"""Trigger-condition evaluators for hooks and workflows.

``evaluate`` never raises: a condition that cannot be evaluated (bad
parameters, a broken custom expression) is logged and treated as not met.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol

from hookwork.hooks.events import EventContext
from hookwork.hooks.expressions import ExpressionError, compile_expression
from hookwork.types.hooks import ConditionKind
from hookwork.types.payloads import FileChangePayload, ToolUsePayload

logger = logging.getLogger(__name__)


class Conditional(Protocol):
    """Anything guarded by a condition: rules and workflows both qualify."""

    @property
    def condition(self) -> str: ...

    @property
    def condition_params(self) -> dict[str, Any]: ...


def evaluate(target: Conditional, context: EventContext, *, now: datetime | None = None) -> bool:
    """Return True when *target*'s condition holds for *context*."""
    condition = target.condition or ConditionKind.ALWAYS.value
    evaluator = _EVALUATORS.get(condition)
    if evaluator is None:
        # Rows written before write-time validation existed may carry
        # anything here; they keep their old always-run behaviour.
        logger.warning("Unknown condition %r, treating as always", condition)
        return True
    params = target.condition_params if isinstance(target.condition_params, dict) else {}
    try:
        return bool(evaluator(params, context, now))
    except Exception:
        logger.warning("Condition %r failed to evaluate", condition, exc_info=True)
        return False


def _always(params: dict[str, Any], ctx: EventContext, now: datetime | None) -> bool:
    return True


def _payload_file_path(ctx: EventContext) -> Any:
    match ctx.payload:
        case FileChangePayload(file_path=file_path):
            return file_path
        case _:
            # Any event may carry a filePath (tool edits, errors).
            return ctx.data.get("filePath")


def _payload_tool(ctx: EventContext) -> Any:
    match ctx.payload:
        case ToolUsePayload(tool=tool):
            return tool
        case _:
            return ctx.data.get("tool")


def _file_type(params: dict[str, Any], ctx: EventContext, now: datetime | None) -> bool:
    file_path = _payload_file_path(ctx)
    extension = params.get("extension")
    if not file_path or not extension:
        return False
    _, ext = os.path.splitext(os.path.basename(str(file_path)))
    return ext[1:] == str(extension)


def _tool_name(params: dict[str, Any], ctx: EventContext, now: datetime | None) -> bool:
    tool = _payload_tool(ctx)
    wanted = params.get("tool")
    if not tool or not wanted:
        return False
    return tool == wanted


def _project_path(params: dict[str, Any], ctx: EventContext, now: datetime | None) -> bool:
    wanted = params.get("path")
    if not ctx.project_path or not wanted:
        return False
    return str(wanted) in ctx.project_path


def parse_clock(value: Any) -> int:
    """``"HH:MM"`` to ``HH*100+MM``. Missing or unparsable parts count as 0."""
    parts = str(value or "00:00").split(":")

    def _part(i: int) -> int:
        try:
            return int(parts[i].strip())
        except (IndexError, ValueError):
            return 0

    return _part(0) * 100 + _part(1)


def _time_range(params: dict[str, Any], ctx: EventContext, now: datetime | None) -> bool:
    current = now or datetime.now()
    clock = current.hour * 100 + current.minute
    start = parse_clock(params.get("start_time"))
    end = parse_clock(params.get("end_time"))
    if start <= end:
        return start <= clock <= end
    # Overnight window, e.g. 22:00-06:00
    return clock >= start or clock <= end


def _custom(params: dict[str, Any], ctx: EventContext, now: datetime | None) -> bool:
    code = params.get("code")
    if not code:
        return False
    try:
        expr = compile_expression(str(code))
        return expr.test(
            {
                "event": ctx.event,
                "data": ctx.data_dict(),
                "projectPath": ctx.project_path,
                "timestamp": ctx.timestamp,
            }
        )
    except ExpressionError as exc:
        logger.warning("Custom condition rejected: %s", exc)
        return False


_EVALUATORS: dict[str, Callable[[dict[str, Any], EventContext, datetime | None], bool]] = {
    ConditionKind.ALWAYS.value: _always,
    ConditionKind.FILE_TYPE.value: _file_type,
    ConditionKind.TOOL_NAME.value: _tool_name,
    ConditionKind.PROJECT_PATH.value: _project_path,
    ConditionKind.TIME_RANGE.value: _time_range,
    ConditionKind.CUSTOM.value: _custom,
}
