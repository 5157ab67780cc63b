"""Event dispatcher: fan an event out to the rules registered for it."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from hookwork.audit.auditor import ExecutionAuditor
from hookwork.hooks.conditions import evaluate
from hookwork.hooks.events import EventContext, build_event_context
from hookwork.hooks.interpolate import interpolate
from hookwork.hooks.registry import RuleRegistry
from hookwork.sandbox.supervisor import ProcessSupervisor, SupervisorError, build_environment
from hookwork.storage.repositories import AutomationStore
from hookwork.types.audit import LogEventType
from hookwork.types.hooks import AutomationRule, ExecutionResult, HookEvent

logger = logging.getLogger(__name__)

CONDITION_NOT_MET = "Hook condition not met"


class RuleNotFoundError(KeyError):
    """No rule with the given id exists in the registry or the store."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(rule_id)
        self.rule_id = rule_id

    def __str__(self) -> str:
        return f"Hook not found: {self.rule_id}"


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class EventDispatcher:
    """Runs matching rules for an event, strictly one after another."""

    def __init__(
        self,
        registry: RuleRegistry,
        supervisor: ProcessSupervisor,
        auditor: ExecutionAuditor,
        store: AutomationStore | None = None,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._registry = registry
        self._supervisor = supervisor
        self._auditor = auditor
        self._store = store
        self._environ = environ

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    # -- Matching ---------------------------------------------------------

    @staticmethod
    def in_scope(rule_path: str | None, context: EventContext) -> bool:
        """A scoped rule only skips events scoped to a different project."""
        if not rule_path or not context.project_path:
            return True
        return rule_path == context.project_path

    # -- Dispatch ---------------------------------------------------------

    async def process_event(
        self,
        event_type: HookEvent | str,
        data: Mapping[str, Any] | None = None,
        project_path: str | Path | None = None,
    ) -> list[ExecutionResult]:
        """Run every enabled, in-scope rule whose condition holds.

        Never raises. A rule that blows up yields a failed result and the
        remaining rules still run.
        """
        name = event_type.value if isinstance(event_type, HookEvent) else str(event_type)
        candidates = self._registry.rules_for(name)
        if not candidates:
            return []

        context = build_event_context(name, data, project_path)
        results: list[ExecutionResult] = []
        for rule in candidates:
            if not rule.enabled or not self.in_scope(rule.project_path, context):
                continue
            if not evaluate(rule, context):
                logger.debug("Rule %s skipped: condition not met", rule.id)
                continue

            start = time.monotonic()
            try:
                result = await self.execute_rule(rule, context)
            except Exception as exc:
                logger.exception("Rule %s (%s) raised during execution", rule.id, rule.name)
                result = ExecutionResult(
                    rule_id=rule.id,
                    rule_name=rule.name,
                    success=False,
                    error=f"{type(exc).__name__}: {exc}",
                    execution_time_ms=_elapsed_ms(start),
                )
            results.append(result)
            await self._auditor.record(
                rule.id,
                LogEventType.EXECUTION,
                result.success,
                result.execution_time_ms,
                {
                    "event": context.event,
                    "output": self._auditor.preview(result.output),
                    "command": rule.command,
                    "timestamp": context.timestamp,
                },
                context.project_path,
                error_message=result.error,
            )
        return results

    async def execute_rule(self, rule: AutomationRule, context: EventContext) -> ExecutionResult:
        """Interpolate and run *rule*'s command. Supervisor failures become a failed result."""
        command = interpolate(rule.command, context, environ=self._environ)
        env = build_environment(context, "HOOK", base=self._environ)
        start = time.monotonic()
        try:
            output = await self._supervisor.run(
                command,
                cwd=context.project_path or os.getcwd(),
                env=env,
                timeout_ms=rule.timeout,
            )
        except SupervisorError as exc:
            return ExecutionResult(
                rule_id=rule.id,
                rule_name=rule.name,
                success=False,
                error=str(exc),
                execution_time_ms=_elapsed_ms(start),
            )
        return ExecutionResult(
            rule_id=rule.id,
            rule_name=rule.name,
            success=output.exit_code == 0,
            output=output.stdout,
            error=output.stderr or None,
            execution_time_ms=_elapsed_ms(start),
        )

    # -- Single-rule paths ------------------------------------------------

    async def find_rule(self, rule_id: str) -> AutomationRule:
        """Registry first, then the store so disabled rules can be found too."""
        rule = self._registry.get(rule_id)
        if rule is None and self._store is not None:
            rule = await asyncio.to_thread(self._store.select_rule_by_id, rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule

    async def run_single(self, rule: AutomationRule, context: EventContext) -> ExecutionResult:
        """Condition check plus execution for one rule, without an audit row."""
        if not evaluate(rule, context):
            return ExecutionResult(
                rule_id=rule.id,
                rule_name=rule.name,
                success=False,
                output="Condition evaluation failed",
                error=CONDITION_NOT_MET,
                execution_time_ms=0,
            )
        start = time.monotonic()
        try:
            return await self.execute_rule(rule, context)
        except Exception as exc:
            logger.exception("Rule %s (%s) raised during execution", rule.id, rule.name)
            return ExecutionResult(
                rule_id=rule.id,
                rule_name=rule.name,
                success=False,
                error=f"{type(exc).__name__}: {exc}",
                execution_time_ms=_elapsed_ms(start),
            )

    async def test_rule(
        self,
        rule_id: str,
        *,
        data: Mapping[str, Any] | None = None,
        event: HookEvent | str | None = None,
        project_path: str | Path | None = None,
    ) -> ExecutionResult:
        """Run one rule against mock data and record a ``test`` row.

        Raises ``RuleNotFoundError`` for unknown ids.
        """
        rule = await self.find_rule(rule_id)
        context = build_event_context(
            event or rule.event, data or {}, project_path or rule.project_path,
        )
        result = await self.run_single(rule, context)
        await self._auditor.record(
            rule.id,
            LogEventType.TEST,
            result.success,
            result.execution_time_ms,
            {
                "testMode": True,
                "mockData": json.loads(json.dumps(context.data_dict(), default=str)),
                "output": self._auditor.preview(result.output),
                "error": result.error,
            },
            context.project_path,
            error_message=result.error,
        )
        return result
