"""Workflow orchestrator: run a workflow's steps and aggregate the outcome.

Step failures are data. ``run_workflow`` only returns; nothing a step does
(including raising) escapes as an exception.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass

from hookwork.hooks.dispatcher import EventDispatcher, RuleNotFoundError
from hookwork.hooks.events import EventContext
from hookwork.hooks.interpolate import interpolate
from hookwork.sandbox.supervisor import ProcessSupervisor, SupervisorError, build_environment
from hookwork.types.workflows import StepResult, StepType, Workflow, WorkflowResult, WorkflowStep

logger = logging.getLogger(__name__)

MAX_RETRY_DELAY = 10.0  # seconds


def retry_delay(attempt: int, base: float = 1.0) -> float:
    """Backoff before retry number *attempt* (1-based): base * 2**(attempt-1), capped."""
    return min(base * 2 ** (attempt - 1), MAX_RETRY_DELAY)


@dataclass(frozen=True, slots=True)
class _Attempt:
    success: bool
    output: str = ""
    error: str | None = None


class WorkflowOrchestrator:
    """Executes workflow steps sequentially or in parallel."""

    def __init__(
        self,
        dispatcher: EventDispatcher,
        supervisor: ProcessSupervisor,
        *,
        retry_base_delay: float = 1.0,
        environ: Mapping[str, str] | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._dispatcher = dispatcher
        self._supervisor = supervisor
        self._retry_base_delay = retry_base_delay
        self._environ = environ
        self._sleep = sleep

    async def run_workflow(self, workflow: Workflow, context: EventContext) -> WorkflowResult:
        start = time.monotonic()
        result = WorkflowResult(workflow_id=workflow.id, workflow_name=workflow.name)
        settings = workflow.settings

        if settings.parallel:
            # Siblings are never cancelled; every step reports.
            result.step_results = list(
                await asyncio.gather(*(self.run_step(s, workflow, context) for s in workflow.steps))
            )
        else:
            for i, step in enumerate(workflow.steps):
                step_result = await self.run_step(step, workflow, context)
                result.step_results.append(step_result)
                if not step_result.success and settings.stop_on_error and not step.continue_on_error:
                    result.skipped_steps = [s.id for s in workflow.steps[i + 1:]]
                    if result.skipped_steps:
                        logger.info(
                            "Workflow %s stopped at step %s, skipping %d step(s)",
                            workflow.id, step.id, len(result.skipped_steps),
                        )
                    break

        failed = next(
            (r for r in result.step_results if not r.success and not r.continue_on_error), None,
        )
        result.success = failed is None and not result.skipped_steps
        if failed is not None:
            result.error = f'Step "{failed.step_name}" failed: {failed.error}'
        result.execution_time_ms = int((time.monotonic() - start) * 1000)
        return result

    async def run_step(
        self, step: WorkflowStep, workflow: Workflow, context: EventContext,
    ) -> StepResult:
        """Run one step, retrying failed attempts with exponential backoff."""
        start = time.monotonic()
        attempts = 0
        outcome = _Attempt(False, error="Step execution failed")
        while attempts <= step.retries:
            if attempts:
                await self._sleep(retry_delay(attempts, self._retry_base_delay))
            attempts += 1
            try:
                outcome = await self._attempt(step, workflow, context)
            except Exception as exc:
                logger.exception("Step %s of workflow %s raised", step.id, workflow.id)
                outcome = _Attempt(False, error=f"{type(exc).__name__}: {exc}")
            if outcome.success:
                break
            logger.debug("Step %s attempt %d failed: %s", step.id, attempts, outcome.error)

        return StepResult(
            step_id=step.id,
            step_name=step.display_name,
            success=outcome.success,
            output=outcome.output,
            error=None if outcome.success else (outcome.error or "Step execution failed"),
            execution_time_ms=int((time.monotonic() - start) * 1000),
            attempts=attempts,
            continue_on_error=step.continue_on_error,
        )

    async def _attempt(
        self, step: WorkflowStep, workflow: Workflow, context: EventContext,
    ) -> _Attempt:
        if step.type is StepType.HOOK and step.hook_id:
            return await self._hook_step(step.hook_id, context)
        return await self._command_step(step, workflow, context)

    async def _hook_step(self, hook_id: str, context: EventContext) -> _Attempt:
        try:
            rule = await self._dispatcher.find_rule(hook_id)
        except RuleNotFoundError as exc:
            return _Attempt(False, error=f"Hook execution failed: {exc}")
        outcome = await self._dispatcher.run_single(rule, context)
        return _Attempt(outcome.success, outcome.output, outcome.error)

    async def _command_step(
        self, step: WorkflowStep, workflow: Workflow, context: EventContext,
    ) -> _Attempt:
        if not step.command:
            return _Attempt(False, error="Step has no command")
        command = interpolate(step.command, context, environ=self._environ)
        try:
            output = await self._supervisor.run(
                command,
                cwd=context.project_path or os.getcwd(),
                env=build_environment(context, "WORKFLOW", base=self._environ),
                timeout_ms=step.timeout or workflow.settings.timeout,
            )
        except SupervisorError as exc:
            return _Attempt(False, error=str(exc))
        if output.exit_code == 0:
            return _Attempt(True, output.stdout, output.stderr or None)
        return _Attempt(
            False, output.stdout, output.stderr or f"Command exited with code {output.exit_code}",
        )
