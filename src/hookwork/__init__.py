"""hookwork -- event-driven hook and workflow automation engine.

Usage:
    import asyncio
    import hookwork

    async def main():
        engine = hookwork.AutomationEngine.from_config()
        await engine.start()
        await engine.create_rule({
            "name": "Lint",
            "event": "FileChange",
            "condition": "file_type",
            "conditionParams": {"extension": "py"},
            "command": 'ruff check "${data.filePath}"',
        })
        for result in await engine.process_event("FileChange", {"filePath": "app.py"}):
            print(result.rule_name, result.success)

    asyncio.run(main())
"""

from hookwork.core.config import load_config
from hookwork.core.engine import AutomationEngine
from hookwork.hooks.dispatcher import RuleNotFoundError
from hookwork.hooks.events import EventContext, build_event_context
from hookwork.hooks.templates import TemplateLibrary
from hookwork.types.audit import ExecutionStatistics, LogEntry
from hookwork.types.config import AuditConfig, EngineConfig, SupervisorConfig
from hookwork.types.hooks import (
    AutomationRule,
    ConditionKind,
    ExecutionResult,
    HookEvent,
    RuleValidationError,
)
from hookwork.types.workflows import Workflow, WorkflowResult
from hookwork.workflows.processor import WorkflowNotFoundError

__version__ = "0.1.0"

__all__ = [
    # Core API
    "AutomationEngine",
    "load_config",
    # Events
    "EventContext",
    "HookEvent",
    "build_event_context",
    # Rules
    "AutomationRule",
    "ConditionKind",
    "ExecutionResult",
    "RuleNotFoundError",
    "RuleValidationError",
    "TemplateLibrary",
    # Workflows
    "Workflow",
    "WorkflowNotFoundError",
    "WorkflowResult",
    # Audit
    "ExecutionStatistics",
    "LogEntry",
    # Configuration
    "AuditConfig",
    "EngineConfig",
    "SupervisorConfig",
]
