"""Rich-powered terminal output for the CLI."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from hookwork.hooks.templates import HookTemplate, TemplateCategory
from hookwork.types.audit import ExecutionStatistics, LogEntry
from hookwork.types.hooks import ExecutionResult, RulePage
from hookwork.types.workflows import Workflow, WorkflowResult

STYLE_OK = "bold #34d399"       # green
STYLE_FAIL = "bold #f87171"     # red
STYLE_MUTED = "#7c7c8a"
STYLE_ACCENT = "bold #a78bfa"   # violet
STYLE_ERROR_BODY = "#f87171"


def _mark(success: bool) -> str:
    return f"[{STYLE_OK}]ok[/]" if success else f"[{STYLE_FAIL}]FAIL[/]"


def _ms(value: float | int | None) -> str:
    if value is None:
        return "-"
    return f"{value:,.0f}ms"


class Printer:
    """Formats engine objects as tables and status lines."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    @property
    def console(self) -> Console:
        return self._console

    def info(self, message: str) -> None:
        self._console.print(message, highlight=False, markup=False)

    def json(self, data: Any) -> None:
        self._console.print_json(json.dumps(data, default=str))

    # -- catalogue ----------------------------------------------------------

    def events(self, events: Mapping[str, Mapping[str, Any]], counts: Mapping[str, int]) -> None:
        table = Table(title="Events", title_style=STYLE_ACCENT)
        table.add_column("Event", style="bold")
        table.add_column("Description")
        table.add_column("Payload", style=STYLE_MUTED)
        table.add_column("Hooks", justify="right")
        for name, spec in events.items():
            table.add_row(
                name,
                spec.get("description", ""),
                ", ".join(spec.get("dataFormat", {})),
                str(counts.get(name, 0)),
            )
        self._console.print(table)

    def rules(self, page: RulePage) -> None:
        if not page.rules:
            self.info("No hooks found.")
            return
        shown = f"{page.offset + 1}-{page.offset + len(page.rules)} of {page.total}"
        table = Table(title="Hooks", title_style=STYLE_ACCENT, caption=shown)
        table.add_column("ID", style=STYLE_MUTED, no_wrap=True)
        table.add_column("Name", style="bold")
        table.add_column("Event")
        table.add_column("Condition")
        table.add_column("Enabled")
        table.add_column("Runs", justify="right")
        table.add_column("Command", overflow="fold")
        for rule in page.rules:
            stats = page.statistics.get(rule.id)
            table.add_row(
                rule.id,
                escape(rule.name),
                rule.event,
                rule.condition,
                "yes" if rule.enabled else "no",
                str(stats.execution_count if stats else 0),
                escape(rule.command),
            )
        self._console.print(table)

    def workflows(self, workflows: Iterable[Workflow]) -> None:
        workflows = list(workflows)
        if not workflows:
            self.info("No workflows found.")
            return
        table = Table(title="Workflows", title_style=STYLE_ACCENT)
        table.add_column("ID", style=STYLE_MUTED, no_wrap=True)
        table.add_column("Name", style="bold")
        table.add_column("Event")
        table.add_column("Steps", justify="right")
        table.add_column("Mode")
        table.add_column("Enabled")
        for wf in workflows:
            table.add_row(
                wf.id,
                escape(wf.name),
                wf.event,
                str(len(wf.steps)),
                "parallel" if wf.settings.parallel else "sequential",
                "yes" if wf.enabled else "no",
            )
        self._console.print(table)

    def templates(self, templates: Iterable[HookTemplate]) -> None:
        table = Table(title="Templates", title_style=STYLE_ACCENT)
        table.add_column("ID", style=STYLE_MUTED, no_wrap=True)
        table.add_column("Name", style="bold")
        table.add_column("Event")
        table.add_column("Tags", style=STYLE_MUTED)
        for t in templates:
            table.add_row(t.id, t.name, t.event, ", ".join(t.tags))
        self._console.print(table)

    def categories(self, categories: Iterable[TemplateCategory]) -> None:
        table = Table(title="Template categories", title_style=STYLE_ACCENT)
        table.add_column("Key", style="bold")
        table.add_column("Name")
        table.add_column("Templates", justify="right")
        for c in categories:
            table.add_row(c.key, c.name, str(c.count))
        self._console.print(table)

    def template(self, template: HookTemplate) -> None:
        self._console.print(f"[{STYLE_ACCENT}]{escape(template.name)}[/]  [{STYLE_MUTED}]{template.id}[/]")
        self._console.print(template.description, highlight=False)
        self._console.print(f"Event:     {template.event}", highlight=False)
        condition = template.condition
        if template.condition_params:
            condition += f" {json.dumps(template.condition_params)}"
        self._console.print(f"Condition: {condition}", highlight=False)
        self._console.print(f"Timeout:   {_ms(template.timeout)}", highlight=False)
        self._console.print(f"Command:   {template.command}", highlight=False, markup=False)
        for var in template.variables:
            self._console.print(
                f"  ${var.get('name')}: {var.get('description', '')}", highlight=False, markup=False,
            )

    # -- results ------------------------------------------------------------

    def execution_results(self, results: Iterable[ExecutionResult]) -> None:
        results = list(results)
        if not results:
            self.info("No hooks matched.")
            return
        for r in results:
            self._console.print(
                f"{_mark(r.success)} [bold]{escape(r.rule_name)}[/] [{STYLE_MUTED}]{_ms(r.execution_time_ms)}[/]",
                highlight=False,
            )
            if r.output:
                self._console.print(r.output.rstrip(), highlight=False, markup=False)
            if r.error:
                self._console.print(f"[{STYLE_ERROR_BODY}]{escape(r.error.rstrip())}[/]", highlight=False)

    def workflow_results(self, results: Iterable[WorkflowResult]) -> None:
        results = list(results)
        if not results:
            self.info("No workflows matched.")
            return
        for r in results:
            self._console.print(
                f"{_mark(r.success)} [bold]{escape(r.workflow_name)}[/] [{STYLE_MUTED}]{_ms(r.execution_time_ms)}[/]",
                highlight=False,
            )
            for step in r.step_results:
                line = f"  {_mark(step.success)} {escape(step.step_name)}"
                if step.attempts > 1:
                    line += f" [{STYLE_MUTED}]({step.attempts} attempts)[/]"
                self._console.print(line, highlight=False)
                if step.error:
                    self._console.print(f"    [{STYLE_ERROR_BODY}]{escape(step.error.rstrip())}[/]", highlight=False)
            for skipped in r.skipped_steps:
                self._console.print(f"  [{STYLE_MUTED}]skipped {escape(skipped)}[/]", highlight=False)
            if r.error:
                self._console.print(f"  [{STYLE_ERROR_BODY}]{escape(r.error)}[/]", highlight=False)

    def statistics(self, stats: Iterable[ExecutionStatistics], *, title: str) -> None:
        stats = list(stats)
        if not stats:
            self.info("No executions recorded.")
            return
        table = Table(title=title, title_style=STYLE_ACCENT)
        table.add_column("Name", style="bold")
        table.add_column("Event")
        table.add_column("Runs", justify="right")
        table.add_column("Success", justify="right")
        table.add_column("Avg", justify="right")
        table.add_column("Last run", style=STYLE_MUTED)
        for s in stats:
            last = s.last_execution.strftime("%Y-%m-%d %H:%M") if s.last_execution else "-"
            table.add_row(
                escape(s.name),
                s.event,
                str(s.execution_count),
                f"{s.success_rate:.0%}",
                _ms(s.avg_duration),
                last,
            )
        self._console.print(table)

    def logs(self, entries: Iterable[LogEntry]) -> None:
        entries = list(entries)
        if not entries:
            self.info("No log entries.")
            return
        table = Table(title="Execution log", title_style=STYLE_ACCENT)
        table.add_column("When", style=STYLE_MUTED, no_wrap=True)
        table.add_column("Source")
        table.add_column("Target", no_wrap=True)
        table.add_column("Type")
        table.add_column("Status")
        table.add_column("Time", justify="right")
        table.add_column("Error", overflow="fold")
        for e in entries:
            table.add_row(
                e.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                e.source.value,
                e.target_id,
                e.event_type.value,
                e.status.value,
                _ms(e.execution_time),
                escape(e.error_message or ""),
            )
        self._console.print(table)
