"""Engine: wires store + registry + supervisor + auditor into a running automation engine."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import replace
from pathlib import Path
from typing import Any

from hookwork.audit.auditor import ExecutionAuditor
from hookwork.core.config import load_config
from hookwork.hooks.dispatcher import EventDispatcher, RuleNotFoundError
from hookwork.hooks.events import EventContext, available_events, build_event_context
from hookwork.hooks.registry import RuleRegistry
from hookwork.hooks.validation import validate_rule_config, validate_workflow_config
from hookwork.sandbox.supervisor import ProcessSupervisor
from hookwork.storage.repositories import AutomationStore
from hookwork.storage.sql import SqlAutomationStore
from hookwork.types.audit import ExecutionStatistics, LogEntry, LogEventType, LogSource
from hookwork.types.config import EngineConfig
from hookwork.types.hooks import AutomationRule, ExecutionResult, HookEvent, RulePage
from hookwork.types.workflows import Workflow, WorkflowResult
from hookwork.workflows.orchestrator import WorkflowOrchestrator
from hookwork.workflows.processor import WorkflowNotFoundError, WorkflowProcessor

logger = logging.getLogger(__name__)

_RULE_ALIASES = {"condition_params": "conditionParams", "projectPath": "project_path"}


def _new_id() -> str:
    return uuid.uuid4().hex


def _rule_config(rule: AutomationRule) -> dict[str, Any]:
    return {
        "name": rule.name,
        "description": rule.description,
        "event": rule.event,
        "condition": rule.condition,
        "conditionParams": dict(rule.condition_params),
        "command": rule.command,
        "timeout": rule.timeout,
        "enabled": rule.enabled,
        "project_path": rule.project_path,
    }


class AutomationEngine:
    """The surface an API layer or the CLI talks to.

    The store is the source of truth. Create/update/delete persist first and
    then bring the in-memory registries in line.
    """

    def __init__(
        self,
        store: AutomationStore,
        config: EngineConfig | None = None,
        *,
        supervisor: ProcessSupervisor | None = None,
        environ: Mapping[str, str] | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._config = config or EngineConfig()
        self._store = store
        self._registry = RuleRegistry()
        self._supervisor = supervisor or ProcessSupervisor(self._config.supervisor)
        self._auditor = ExecutionAuditor(store, self._config.audit)
        self._dispatcher = EventDispatcher(
            self._registry, self._supervisor, self._auditor, store, environ=environ,
        )
        self._orchestrator = WorkflowOrchestrator(
            self._dispatcher,
            self._supervisor,
            retry_base_delay=self._config.retry_base_delay,
            environ=environ,
            sleep=sleep,
        )
        self._workflows = WorkflowProcessor(self._orchestrator, self._auditor, store)

    @classmethod
    def from_config(cls, config: EngineConfig | None = None, **kwargs: Any) -> AutomationEngine:
        """Open the configured SQL store and build an engine on it."""
        config = config or load_config()
        store = SqlAutomationStore.open(config.db_path, url=config.database_url)
        return cls(store, config, **kwargs)

    # -- Properties -------------------------------------------------------

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def store(self) -> AutomationStore:
        return self._store

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    @property
    def auditor(self) -> ExecutionAuditor:
        return self._auditor

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    @property
    def workflows(self) -> WorkflowProcessor:
        return self._workflows

    # -- Lifecycle --------------------------------------------------------

    async def start(self) -> tuple[int, int]:
        """Rebuild both registries from the store. Store errors propagate."""
        rules = await asyncio.to_thread(self._registry.rebuild, self._store)
        workflows = await asyncio.to_thread(self._workflows.rebuild)
        return rules, workflows

    def close(self) -> None:
        close = getattr(self._store, "close", None)
        if close is not None:
            close()

    def register_rule(self, rule: AutomationRule) -> None:
        self._registry.register(rule)

    def unregister_rule(self, rule_id: str) -> bool:
        return self._registry.unregister(rule_id)

    # -- Events -----------------------------------------------------------

    async def process_event(
        self,
        event_type: HookEvent | str,
        data: Mapping[str, Any] | None = None,
        project_path: str | Path | None = None,
    ) -> list[ExecutionResult]:
        return await self._dispatcher.process_event(event_type, data, project_path)

    async def process_workflow_event(
        self,
        event_type: HookEvent | str,
        data: Mapping[str, Any] | None = None,
        project_path: str | Path | None = None,
    ) -> list[WorkflowResult]:
        return await self._workflows.process_event(event_type, data, project_path)

    async def test_rule(
        self,
        rule_id: str,
        *,
        data: Mapping[str, Any] | None = None,
        event: HookEvent | str | None = None,
        project_path: str | Path | None = None,
    ) -> ExecutionResult:
        return await self._dispatcher.test_rule(
            rule_id, data=data, event=event, project_path=project_path,
        )

    async def run_workflow(
        self,
        workflow: Workflow,
        context: EventContext | None = None,
        *,
        data: Mapping[str, Any] | None = None,
        project_path: str | Path | None = None,
    ) -> WorkflowResult:
        if context is None:
            context = build_event_context(
                workflow.trigger.event, data, project_path or workflow.project_path,
            )
        return await self._orchestrator.run_workflow(workflow, context)

    async def test_workflow(
        self,
        workflow: Workflow | Mapping[str, Any] | str,
        *,
        data: Mapping[str, Any] | None = None,
        event: HookEvent | str | None = None,
        project_path: str | Path | None = None,
    ) -> WorkflowResult:
        """Test a stored workflow (by id), a Workflow, or an unsaved definition."""
        if isinstance(workflow, Mapping):
            workflow = validate_workflow_config(
                {"name": "Test Workflow", **workflow}, workflow_id=f"test-{_new_id()[:8]}",
            )
        return await self._workflows.test_workflow(
            workflow, data=data, event=event, project_path=project_path,
        )

    def get_available_events(self) -> dict[str, dict[str, Any]]:
        return available_events()

    def get_hook_count_by_event(self) -> dict[str, int]:
        return self._registry.counts_by_event()

    # -- Audit ------------------------------------------------------------

    async def statistics(self, window_days: int | None = None) -> list[ExecutionStatistics]:
        return await self._auditor.statistics(window_days)

    async def workflow_statistics(self, window_days: int | None = None) -> list[ExecutionStatistics]:
        return await self._auditor.workflow_statistics(window_days)

    async def cleanup(self, retention_days: int | None = None) -> int:
        return await self._auditor.cleanup(retention_days)

    async def logs(
        self,
        target_id: str | None = None,
        *,
        source: LogSource | None = None,
        event_type: LogEventType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LogEntry]:
        return await self._auditor.logs(
            target_id, source=source, event_type=event_type, limit=limit, offset=offset,
        )

    # -- Rule CRUD --------------------------------------------------------

    async def create_rule(self, config: Mapping[str, Any]) -> AutomationRule:
        """Validate, persist, register (when enabled) and log a new rule."""
        fields = validate_rule_config(config)
        rule = AutomationRule(id=_new_id(), **fields)
        rule = await asyncio.to_thread(self._store.insert_rule, rule)
        if rule.enabled:
            self._registry.register(rule)
        await self._auditor.record_creation(rule.id, event=rule.event, enabled=rule.enabled)
        logger.info("Created hook %s (%s) for %s", rule.id, rule.name, rule.event)
        return rule

    async def update_rule(self, rule_id: str, updates: Mapping[str, Any]) -> AutomationRule:
        existing = await asyncio.to_thread(self._store.select_rule_by_id, rule_id)
        if existing is None:
            raise RuleNotFoundError(rule_id)

        changes = {_RULE_ALIASES.get(k, k): v for k, v in updates.items()}
        fields = validate_rule_config({**_rule_config(existing), **changes})
        updated = await asyncio.to_thread(self._store.update_rule, replace(existing, **fields))
        if updated is None:
            raise RuleNotFoundError(rule_id)

        if updated.enabled:
            self._registry.register(updated)
        else:
            self._registry.unregister(rule_id)
        await self._auditor.record_update(
            rule_id, fields=[k for k in changes if k not in ("updated_at", "id")],
        )
        return updated

    async def delete_rule(self, rule_id: str) -> AutomationRule:
        existing = await asyncio.to_thread(self._store.select_rule_by_id, rule_id)
        if existing is None:
            raise RuleNotFoundError(rule_id)
        self._registry.unregister(rule_id)
        await asyncio.to_thread(self._store.delete_rule, rule_id)
        await self._auditor.record_deletion(rule_id, name=existing.name)
        logger.info("Deleted hook %s (%s)", rule_id, existing.name)
        return existing

    async def get_rule(self, rule_id: str) -> AutomationRule | None:
        return await asyncio.to_thread(self._store.select_rule_by_id, rule_id)

    async def list_rules(self, **filters: Any) -> list[AutomationRule]:
        return await asyncio.to_thread(lambda: self._store.list_rules(**filters))

    async def count_rules(self, **filters: Any) -> int:
        return await asyncio.to_thread(lambda: self._store.count_rules(**filters))

    async def rule_page(self, *, limit: int = 50, offset: int = 0, **filters: Any) -> RulePage:
        """A page of ``list_rules`` with the filtered total and per-rule execution figures."""

        def _load() -> RulePage:
            rules = self._store.list_rules(limit=limit, offset=offset, **filters)
            return RulePage(
                rules=rules,
                statistics=self._store.rule_statistics([r.id for r in rules]),
                total=self._store.count_rules(**filters),
                limit=limit,
                offset=offset,
            )

        return await asyncio.to_thread(_load)

    # -- Workflow CRUD ----------------------------------------------------

    async def create_workflow(self, config: Mapping[str, Any]) -> Workflow:
        workflow = validate_workflow_config(config, workflow_id=_new_id())
        workflow = await asyncio.to_thread(self._store.insert_workflow, workflow)
        if workflow.enabled:
            self._workflows.register(workflow)
        await self._auditor.record_creation(
            workflow.id, event=workflow.event, enabled=workflow.enabled, source=LogSource.WORKFLOW,
        )
        logger.info("Created workflow %s (%s) for %s", workflow.id, workflow.name, workflow.event)
        return workflow

    async def update_workflow(self, workflow_id: str, updates: Mapping[str, Any]) -> Workflow:
        existing = await asyncio.to_thread(self._store.select_workflow_by_id, workflow_id)
        if existing is None:
            raise WorkflowNotFoundError(workflow_id)
        merged = {**existing.to_dict(), **updates}
        workflow = validate_workflow_config(merged, workflow_id=workflow_id)
        updated = await asyncio.to_thread(self._store.update_workflow, workflow)
        if updated is None:
            raise WorkflowNotFoundError(workflow_id)
        if updated.enabled:
            self._workflows.register(updated)
        else:
            self._workflows.unregister(workflow_id)
        await self._auditor.record_update(
            workflow_id, fields=list(updates), source=LogSource.WORKFLOW,
        )
        return updated

    async def delete_workflow(self, workflow_id: str) -> Workflow:
        existing = await asyncio.to_thread(self._store.select_workflow_by_id, workflow_id)
        if existing is None:
            raise WorkflowNotFoundError(workflow_id)
        self._workflows.unregister(workflow_id)
        await asyncio.to_thread(self._store.delete_workflow, workflow_id)
        await self._auditor.record_deletion(
            workflow_id, name=existing.name, source=LogSource.WORKFLOW,
        )
        return existing

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        return await asyncio.to_thread(self._store.select_workflow_by_id, workflow_id)

    async def list_workflows(self, **filters: Any) -> list[Workflow]:
        return await asyncio.to_thread(lambda: self._store.list_workflows(**filters))
