"""Event-triggered workflows: registry, dispatch and testing."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from hookwork.audit.auditor import ExecutionAuditor
from hookwork.hooks.conditions import evaluate
from hookwork.hooks.dispatcher import EventDispatcher
from hookwork.hooks.events import build_event_context
from hookwork.hooks.registry import Registry
from hookwork.storage.repositories import AutomationStore
from hookwork.types.audit import LogEventType, LogSource
from hookwork.types.hooks import HookEvent
from hookwork.types.workflows import Workflow, WorkflowResult
from hookwork.workflows.orchestrator import WorkflowOrchestrator

logger = logging.getLogger(__name__)

TRIGGER_NOT_MET = "Workflow trigger condition not met"


class WorkflowNotFoundError(KeyError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(workflow_id)
        self.workflow_id = workflow_id

    def __str__(self) -> str:
        return f"Workflow not found: {self.workflow_id}"


def _step_summary(result: WorkflowResult) -> list[dict[str, Any]]:
    return [
        {
            "stepId": r.step_id,
            "stepName": r.step_name,
            "success": r.success,
            "executionTime": r.execution_time_ms,
            "error": r.error,
        }
        for r in result.step_results
    ]


class WorkflowProcessor:
    """Runs the enabled workflows whose trigger matches an event."""

    def __init__(
        self,
        orchestrator: WorkflowOrchestrator,
        auditor: ExecutionAuditor,
        store: AutomationStore | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._auditor = auditor
        self._store = store
        self._registry: Registry[Workflow] = Registry()

    @property
    def registry(self) -> Registry[Workflow]:
        return self._registry

    @property
    def orchestrator(self) -> WorkflowOrchestrator:
        return self._orchestrator

    def register(self, workflow: Workflow) -> None:
        self._registry.register(workflow)

    def unregister(self, workflow_id: str) -> bool:
        return self._registry.unregister(workflow_id)

    def rebuild(self) -> int:
        """Reload enabled workflows from the store. Store errors propagate."""
        if self._store is None:
            return len(self._registry)
        count = self._registry.replace_all(self._store.select_enabled_workflows())
        logger.info("Loaded %d enabled workflow(s)", count)
        return count

    async def process_event(
        self,
        event_type: HookEvent | str,
        data: Mapping[str, Any] | None = None,
        project_path: str | Path | None = None,
    ) -> list[WorkflowResult]:
        name = event_type.value if isinstance(event_type, HookEvent) else str(event_type)
        candidates = self._registry.rules_for(name)
        if not candidates:
            return []

        context = build_event_context(name, data, project_path)
        results: list[WorkflowResult] = []
        for workflow in candidates:
            if not workflow.enabled or not EventDispatcher.in_scope(workflow.project_path, context):
                continue
            if not evaluate(workflow, context):
                continue
            result = await self._orchestrator.run_workflow(workflow, context)
            results.append(result)
            await self._auditor.record(
                workflow.id,
                LogEventType.EXECUTION,
                result.success,
                result.execution_time_ms,
                {
                    "event": context.event,
                    "stepResults": _step_summary(result),
                    "skippedSteps": list(result.skipped_steps),
                    "timestamp": context.timestamp,
                },
                context.project_path,
                source=LogSource.WORKFLOW,
                error_message=result.error,
            )
        return results

    async def find_workflow(self, workflow_id: str) -> Workflow:
        workflow = self._registry.get(workflow_id)
        if workflow is None and self._store is not None:
            workflow = await asyncio.to_thread(self._store.select_workflow_by_id, workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    async def test_workflow(
        self,
        workflow: Workflow | str,
        *,
        data: Mapping[str, Any] | None = None,
        event: HookEvent | str | None = None,
        project_path: str | Path | None = None,
    ) -> WorkflowResult:
        """Run a workflow against mock data.

        A string is looked up (registry, then store) and the run is recorded
        as a ``test`` row. An unsaved Workflow object is run without a row.
        """
        stored = isinstance(workflow, str)
        if isinstance(workflow, str):
            workflow = await self.find_workflow(workflow)

        context = build_event_context(
            event or workflow.trigger.event, data or {}, project_path or workflow.project_path,
        )
        if not evaluate(workflow, context):
            result = WorkflowResult(
                workflow_id=workflow.id,
                workflow_name=workflow.name,
                success=False,
                error=TRIGGER_NOT_MET,
            )
        else:
            result = await self._orchestrator.run_workflow(workflow, context)

        if stored:
            await self._auditor.record(
                workflow.id,
                LogEventType.TEST,
                result.success,
                result.execution_time_ms,
                {
                    "testMode": True,
                    "mockData": context.data_dict(),
                    "stepResults": _step_summary(result),
                    "error": result.error,
                },
                context.project_path,
                source=LogSource.WORKFLOW,
                error_message=result.error,
            )
        return result
