"""Hook types for the hookwork automation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from hookwork.types.audit import ExecutionStatistics

MIN_TIMEOUT_MS = 1_000
MAX_TIMEOUT_MS = 300_000
DEFAULT_TIMEOUT_MS = 30_000


class HookEvent(Enum):
    """Events that can trigger hooks and workflows.

    The catalogue is closed: adding a member is a deliberate API change.
    """

    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    PRE_CHAT_MESSAGE = "PreChatMessage"
    POST_CHAT_MESSAGE = "PostChatMessage"
    FILE_CHANGE = "FileChange"
    GIT_COMMIT = "GitCommit"
    PROJECT_LOAD = "ProjectLoad"
    SESSION_START = "SessionStart"
    SESSION_END = "SessionEnd"
    ERROR = "Error"


class ConditionKind(Enum):
    """Trigger predicates a rule can be guarded by."""

    ALWAYS = "always"
    FILE_TYPE = "file_type"
    TOOL_NAME = "tool_name"
    PROJECT_PATH = "project_path"
    TIME_RANGE = "time_range"
    CUSTOM = "custom"


class RuleValidationError(ValueError):
    """A rule or workflow definition was rejected at write time."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors) if errors else [message]


def clamp_timeout(value: Any, default: int = DEFAULT_TIMEOUT_MS) -> int:
    """Clamp a millisecond timeout into ``[MIN_TIMEOUT_MS, MAX_TIMEOUT_MS]``.

    ``None`` selects *default*. Raises ``RuleValidationError`` for values
    that are not numbers.
    """
    if value is None:
        value = default
    if isinstance(value, bool):
        raise RuleValidationError(f"Invalid timeout: {value!r}")
    try:
        ms = int(float(value))
    except (TypeError, ValueError):
        raise RuleValidationError(f"Invalid timeout: {value!r}") from None
    return min(max(ms, MIN_TIMEOUT_MS), MAX_TIMEOUT_MS)


@dataclass(frozen=True, slots=True)
class AutomationRule:
    """A persisted hook: one event, one trigger condition, one command."""

    id: str
    name: str
    event: str
    command: str
    description: str = ""
    condition: str = ConditionKind.ALWAYS.value
    condition_params: dict[str, Any] = field(default_factory=dict)
    timeout: int = DEFAULT_TIMEOUT_MS  # milliseconds
    enabled: bool = True
    project_path: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "event": self.event,
            "condition": self.condition,
            "conditionParams": dict(self.condition_params),
            "command": self.command,
            "timeout": self.timeout,
            "enabled": self.enabled,
            "project_path": self.project_path,
            "status": "active" if self.enabled else "disabled",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Outcome of one rule attempt."""

    rule_id: str
    rule_name: str
    success: bool
    output: str = ""
    error: str | None = None
    execution_time_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hookId": self.rule_id,
            "hookName": self.rule_name,
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "executionTime": self.execution_time_ms,
        }


@dataclass(frozen=True, slots=True)
class RulePage:
    """One page of a rule listing with all-time execution figures per rule."""

    rules: list[AutomationRule]
    statistics: dict[str, ExecutionStatistics]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + self.limit < self.total

    def to_dict(self) -> dict[str, Any]:
        hooks = []
        for rule in self.rules:
            entry = rule.to_dict()
            stats = self.statistics.get(rule.id)
            entry["execution_count"] = stats.execution_count if stats else 0
            entry["avg_duration"] = stats.avg_duration if stats else None
            entry["success_count"] = stats.success_count if stats else 0
            last = stats.last_execution if stats else None
            entry["last_execution"] = last.isoformat() if last else None
            hooks.append(entry)
        return {
            "hooks": hooks,
            "pagination": {
                "total": self.total,
                "limit": self.limit,
                "offset": self.offset,
                "hasMore": self.has_more,
            },
        }
