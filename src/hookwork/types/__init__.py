"""Type definitions for hookwork."""

from hookwork.types.audit import (
    ExecutionStatistics,
    LogEntry,
    LogEventType,
    LogSource,
    LogStatus,
)
from hookwork.types.config import AuditConfig, EngineConfig, SupervisorConfig
from hookwork.types.hooks import (
    AutomationRule,
    ConditionKind,
    ExecutionResult,
    HookEvent,
    RulePage,
    RuleValidationError,
)
from hookwork.types.payloads import EventPayload, RawPayload, parse_payload
from hookwork.types.workflows import (
    StepResult,
    StepType,
    Trigger,
    Workflow,
    WorkflowResult,
    WorkflowSettings,
    WorkflowStep,
)

__all__ = [
    "AuditConfig",
    "AutomationRule",
    "ConditionKind",
    "EngineConfig",
    "EventPayload",
    "ExecutionResult",
    "ExecutionStatistics",
    "HookEvent",
    "LogEntry",
    "LogEventType",
    "LogSource",
    "LogStatus",
    "RawPayload",
    "RulePage",
    "RuleValidationError",
    "StepResult",
    "StepType",
    "SupervisorConfig",
    "Trigger",
    "Workflow",
    "WorkflowResult",
    "WorkflowSettings",
    "WorkflowStep",
    "parse_payload",
]
