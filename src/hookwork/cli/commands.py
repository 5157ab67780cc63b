"""CLI subcommands for hookwork (events, hooks, trigger, stats, workflows, templates)."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import click
import yaml

from hookwork.cli.output import Printer
from hookwork.core.config import load_config
from hookwork.core.engine import AutomationEngine
from hookwork.hooks.dispatcher import RuleNotFoundError
from hookwork.hooks.templates import TemplateLibrary, TemplateNotFoundError
from hookwork.hooks.validation import VALID_CONDITIONS, VALID_EVENTS
from hookwork.types.audit import LogEventType, LogSource
from hookwork.types.hooks import RuleValidationError
from hookwork.workflows.processor import WorkflowNotFoundError

T = TypeVar("T")

_USER_ERRORS = (
    RuleValidationError,
    RuleNotFoundError,
    WorkflowNotFoundError,
    TemplateNotFoundError,
)


def _with_engine(ctx: click.Context, fn: Callable[[AutomationEngine], Awaitable[T]]) -> T:
    """Run *fn* against a started engine.

    An engine placed in ``ctx.obj["engine"]`` is reused and left open;
    otherwise one is built from configuration and closed afterwards.
    """
    obj = ctx.find_root().obj or {}
    shared = obj.get("engine")

    async def runner() -> T:
        engine = shared
        if engine is None:
            config = load_config(obj.get("cwd"), db_path=obj.get("db_path"))
            engine = AutomationEngine.from_config(config)
        try:
            await engine.start()
            return await fn(engine)
        finally:
            if shared is None:
                engine.close()

    try:
        return asyncio.run(runner())
    except _USER_ERRORS as e:
        raise click.ClickException(str(e)) from e


def _parse_data(data: str | None, data_file: str | None) -> dict[str, Any]:
    if data and data_file:
        raise click.UsageError("Use either --data or --data-file, not both")
    raw = data
    if data_file:
        raw = Path(data_file).read_text(encoding="utf-8")
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--data") from e
    if not isinstance(parsed, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--data")
    return parsed


def _parse_params(params: tuple[str, ...]) -> dict[str, str]:
    out: dict[str, str] = {}
    for item in params:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--param")
        out[key] = value
    return out


def _load_definition(path: str) -> dict[str, Any]:
    """Read a workflow definition (YAML or JSON) from *path*."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise click.BadParameter(f"{path} does not contain a mapping", param_hint="FILE")
    return data


_data_options = [
    click.option("--data", default=None, help="Event data as a JSON object"),
    click.option("--data-file", type=click.Path(exists=True, dir_okay=False), default=None,
                 help="Read event data from a JSON file"),
    click.option("--project", "project_path", default=None, help="Project path of the event"),
]


def data_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    for option in reversed(_data_options):
        fn = option(fn)
    return fn


# -- events -----------------------------------------------------------------


@click.command()
@click.pass_context
def events_cmd(ctx: click.Context) -> None:
    """List events hooks can subscribe to."""

    async def run(engine: AutomationEngine) -> None:
        Printer().events(engine.get_available_events(), engine.get_hook_count_by_event())

    _with_engine(ctx, run)


# -- hooks ------------------------------------------------------------------


@click.group()
def hooks_cmd() -> None:
    """Manage hooks."""


@hooks_cmd.command("list")
@click.option("--event", type=click.Choice(VALID_EVENTS), default=None, help="Filter by event")
@click.option("--enabled/--disabled", "enabled", default=None, help="Filter by state")
@click.option("--project", "project_path", default=None, help="Project scope")
@click.option("--search", default=None, help="Match name or description")
@click.option("--limit", "-n", default=50, help="Max hooks to show")
@click.option("--offset", default=0, help="Skip this many hooks")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def hooks_list(
    ctx: click.Context,
    event: str | None,
    enabled: bool | None,
    project_path: str | None,
    search: str | None,
    limit: int,
    offset: int,
    as_json: bool,
) -> None:
    """List stored hooks with their execution counts."""

    async def run(engine: AutomationEngine) -> None:
        page = await engine.rule_page(
            event=event,
            enabled=enabled,
            project_path=project_path,
            search=search,
            limit=limit,
            offset=offset,
        )
        if as_json:
            Printer().json(page.to_dict())
        else:
            Printer().rules(page)

    _with_engine(ctx, run)


@hooks_cmd.command("show")
@click.argument("rule_id")
@click.pass_context
def hooks_show(ctx: click.Context, rule_id: str) -> None:
    """Show one hook as JSON."""

    async def run(engine: AutomationEngine) -> None:
        rule = await engine.get_rule(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        Printer().json(rule.to_dict())

    _with_engine(ctx, run)


@hooks_cmd.command("add")
@click.option("--name", required=True)
@click.option("--event", required=True, type=click.Choice(VALID_EVENTS))
@click.option("--command", "command", required=True, help="Shell command template")
@click.option("--description", default="")
@click.option("--condition", type=click.Choice(VALID_CONDITIONS), default="always")
@click.option("--param", "params", multiple=True, help="Condition parameter KEY=VALUE")
@click.option("--timeout", type=int, default=None, help="Timeout in ms")
@click.option("--project", "project_path", default=None, help="Only run for this project")
@click.option("--disabled", is_flag=True, help="Create the hook disabled")
@click.pass_context
def hooks_add(
    ctx: click.Context,
    name: str,
    event: str,
    command: str,
    description: str,
    condition: str,
    params: tuple[str, ...],
    timeout: int | None,
    project_path: str | None,
    disabled: bool,
) -> None:
    """Create a hook."""
    config = {
        "name": name,
        "description": description,
        "event": event,
        "condition": condition,
        "conditionParams": _parse_params(params),
        "command": command,
        "timeout": timeout,
        "enabled": not disabled,
        "project_path": project_path,
    }

    async def run(engine: AutomationEngine) -> None:
        rule = await engine.create_rule(config)
        Printer().info(f"Created hook {rule.id} ({rule.name})")

    _with_engine(ctx, run)


@hooks_cmd.command("update")
@click.argument("rule_id")
@click.option("--name", default=None)
@click.option("--event", type=click.Choice(VALID_EVENTS), default=None)
@click.option("--command", "command", default=None)
@click.option("--description", default=None)
@click.option("--condition", type=click.Choice(VALID_CONDITIONS), default=None)
@click.option("--param", "params", multiple=True, help="Condition parameter KEY=VALUE")
@click.option("--timeout", type=int, default=None)
@click.option("--enable/--disable", "enabled", default=None)
@click.pass_context
def hooks_update(
    ctx: click.Context,
    rule_id: str,
    name: str | None,
    event: str | None,
    command: str | None,
    description: str | None,
    condition: str | None,
    params: tuple[str, ...],
    timeout: int | None,
    enabled: bool | None,
) -> None:
    """Change fields of a hook."""
    updates: dict[str, Any] = {
        k: v
        for k, v in {
            "name": name,
            "event": event,
            "command": command,
            "description": description,
            "condition": condition,
            "timeout": timeout,
            "enabled": enabled,
        }.items()
        if v is not None
    }
    if params:
        updates["conditionParams"] = _parse_params(params)
    if not updates:
        raise click.UsageError("Nothing to update")

    async def run(engine: AutomationEngine) -> None:
        rule = await engine.update_rule(rule_id, updates)
        Printer().info(f"Updated hook {rule.id} ({', '.join(updates)})")

    _with_engine(ctx, run)


@hooks_cmd.command("remove")
@click.argument("rule_id")
@click.pass_context
def hooks_remove(ctx: click.Context, rule_id: str) -> None:
    """Delete a hook."""

    async def run(engine: AutomationEngine) -> None:
        rule = await engine.delete_rule(rule_id)
        Printer().info(f"Deleted hook {rule.id} ({rule.name})")

    _with_engine(ctx, run)


@hooks_cmd.command("test")
@click.argument("rule_id")
@click.option("--event", type=click.Choice(VALID_EVENTS), default=None, help="Override the event")
@data_options
@click.pass_context
def hooks_test(
    ctx: click.Context,
    rule_id: str,
    event: str | None,
    data: str | None,
    data_file: str | None,
    project_path: str | None,
) -> None:
    """Run one hook against mock event data."""
    payload = _parse_data(data, data_file)

    async def run(engine: AutomationEngine) -> bool:
        result = await engine.test_rule(
            rule_id, data=payload, event=event, project_path=project_path,
        )
        Printer().execution_results([result])
        return result.success

    if not _with_engine(ctx, run):
        raise SystemExit(1)


@hooks_cmd.command("logs")
@click.argument("target_id", required=False)
@click.option("--source", type=click.Choice([s.value for s in LogSource]), default=None)
@click.option("--type", "event_type", type=click.Choice([t.value for t in LogEventType]), default=None)
@click.option("--limit", "-n", default=50)
@click.option("--offset", default=0)
@click.pass_context
def hooks_logs(
    ctx: click.Context,
    target_id: str | None,
    source: str | None,
    event_type: str | None,
    limit: int,
    offset: int,
) -> None:
    """Show the execution log, newest first."""

    async def run(engine: AutomationEngine) -> None:
        entries = await engine.logs(
            target_id,
            source=LogSource(source) if source else None,
            event_type=LogEventType(event_type) if event_type else None,
            limit=limit,
            offset=offset,
        )
        Printer().logs(entries)

    _with_engine(ctx, run)


# -- trigger ----------------------------------------------------------------


@click.command()
@click.argument("event", type=click.Choice(VALID_EVENTS))
@data_options
@click.option("--workflows/--no-workflows", default=True, help="Also run matching workflows")
@click.pass_context
def trigger_cmd(
    ctx: click.Context,
    event: str,
    data: str | None,
    data_file: str | None,
    project_path: str | None,
    workflows: bool,
) -> None:
    """Fire EVENT: run every matching hook (and workflow).

    Exits 1 when any of them failed.
    """
    payload = _parse_data(data, data_file)

    async def run(engine: AutomationEngine) -> bool:
        printer = Printer()
        results = await engine.process_event(event, payload, project_path)
        printer.execution_results(results)
        ok = all(r.success for r in results)
        if workflows:
            wf_results = await engine.process_workflow_event(event, payload, project_path)
            if wf_results:
                printer.workflow_results(wf_results)
            ok = ok and all(r.success for r in wf_results)
        return ok

    if not _with_engine(ctx, run):
        raise SystemExit(1)


# -- stats / cleanup --------------------------------------------------------


@click.command()
@click.option("--days", type=int, default=None, help="Window in days (default from config)")
@click.option("--workflows", is_flag=True, help="Workflow statistics instead of hooks")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def stats_cmd(ctx: click.Context, days: int | None, workflows: bool, as_json: bool) -> None:
    """Per-hook (or per-workflow) execution statistics."""

    async def run(engine: AutomationEngine) -> None:
        if workflows:
            stats = await engine.workflow_statistics(days)
        else:
            stats = await engine.statistics(days)
        if as_json:
            Printer().json([s.to_dict() for s in stats])
        else:
            Printer().statistics(stats, title="Workflow statistics" if workflows else "Hook statistics")

    _with_engine(ctx, run)


@click.command()
@click.option("--days", type=int, default=None, help="Keep this many days (default from config)")
@click.pass_context
def cleanup_cmd(ctx: click.Context, days: int | None) -> None:
    """Delete execution log rows older than the retention window."""

    async def run(engine: AutomationEngine) -> None:
        removed = await engine.cleanup(days)
        Printer().info(f"Removed {removed} log entries")

    _with_engine(ctx, run)


# -- workflows --------------------------------------------------------------


@click.group()
def workflows_cmd() -> None:
    """Manage workflows."""


@workflows_cmd.command("list")
@click.option("--enabled/--disabled", "enabled", default=None)
@click.option("--project", "project_path", default=None)
@click.option("--limit", "-n", default=50)
@click.pass_context
def workflows_list(
    ctx: click.Context, enabled: bool | None, project_path: str | None, limit: int,
) -> None:
    """List stored workflows."""

    async def run(engine: AutomationEngine) -> None:
        Printer().workflows(
            await engine.list_workflows(enabled=enabled, project_path=project_path, limit=limit)
        )

    _with_engine(ctx, run)


@workflows_cmd.command("show")
@click.argument("workflow_id")
@click.pass_context
def workflows_show(ctx: click.Context, workflow_id: str) -> None:
    """Show one workflow as JSON."""

    async def run(engine: AutomationEngine) -> None:
        workflow = await engine.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        Printer().json(workflow.to_dict())

    _with_engine(ctx, run)


@workflows_cmd.command("add")
@click.argument("path", metavar="FILE", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def workflows_add(ctx: click.Context, path: str) -> None:
    """Create a workflow from a YAML or JSON definition."""
    definition = _load_definition(path)

    async def run(engine: AutomationEngine) -> None:
        workflow = await engine.create_workflow(definition)
        Printer().info(
            f"Created workflow {workflow.id} ({workflow.name}, {len(workflow.steps)} steps)"
        )

    _with_engine(ctx, run)


@workflows_cmd.command("remove")
@click.argument("workflow_id")
@click.pass_context
def workflows_remove(ctx: click.Context, workflow_id: str) -> None:
    """Delete a workflow."""

    async def run(engine: AutomationEngine) -> None:
        workflow = await engine.delete_workflow(workflow_id)
        Printer().info(f"Deleted workflow {workflow.id} ({workflow.name})")

    _with_engine(ctx, run)


@workflows_cmd.command("enable")
@click.argument("workflow_id")
@click.pass_context
def workflows_enable(ctx: click.Context, workflow_id: str) -> None:
    """Enable a workflow."""
    _set_workflow_enabled(ctx, workflow_id, True)


@workflows_cmd.command("disable")
@click.argument("workflow_id")
@click.pass_context
def workflows_disable(ctx: click.Context, workflow_id: str) -> None:
    """Disable a workflow."""
    _set_workflow_enabled(ctx, workflow_id, False)


def _set_workflow_enabled(ctx: click.Context, workflow_id: str, enabled: bool) -> None:
    async def run(engine: AutomationEngine) -> None:
        workflow = await engine.update_workflow(workflow_id, {"enabled": enabled})
        state = "enabled" if workflow.enabled else "disabled"
        Printer().info(f"Workflow {workflow.id} {state}")

    _with_engine(ctx, run)


@workflows_cmd.command("test")
@click.argument("target")
@click.option("--event", type=click.Choice(VALID_EVENTS), default=None, help="Override the event")
@data_options
@click.pass_context
def workflows_test(
    ctx: click.Context,
    target: str,
    event: str | None,
    data: str | None,
    data_file: str | None,
    project_path: str | None,
) -> None:
    """Test a stored workflow (by id) or an unsaved definition FILE."""
    payload = _parse_data(data, data_file)
    subject: str | dict[str, Any] = target
    if Path(target).is_file():
        subject = _load_definition(target)

    async def run(engine: AutomationEngine) -> bool:
        result = await engine.test_workflow(
            subject, data=payload, event=event, project_path=project_path,
        )
        Printer().workflow_results([result])
        return result.success

    if not _with_engine(ctx, run):
        raise SystemExit(1)


@workflows_cmd.command("run")
@click.argument("workflow_id")
@data_options
@click.pass_context
def workflows_run(
    ctx: click.Context,
    workflow_id: str,
    data: str | None,
    data_file: str | None,
    project_path: str | None,
) -> None:
    """Run a stored workflow now, skipping its trigger condition."""
    payload = _parse_data(data, data_file)

    async def run(engine: AutomationEngine) -> bool:
        workflow = await engine.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        result = await engine.run_workflow(workflow, data=payload, project_path=project_path)
        Printer().workflow_results([result])
        return result.success

    if not _with_engine(ctx, run):
        raise SystemExit(1)


# -- templates --------------------------------------------------------------


@click.group()
def templates_cmd() -> None:
    """Browse and install hook templates."""


@templates_cmd.command("list")
@click.option("--category", default=None, help="Category key")
@click.option("--search", default=None, help="Match name, description, tags or event")
@click.option("--event", type=click.Choice(VALID_EVENTS), default=None)
@click.option("--tag", "tags", multiple=True, help="Match any of these tags")
@click.option("--popular", is_flag=True, help="Only the popular templates")
def templates_list(
    category: str | None,
    search: str | None,
    event: str | None,
    tags: tuple[str, ...],
    popular: bool,
) -> None:
    """List hook templates."""
    library = TemplateLibrary()
    if popular:
        templates = library.popular()
    elif search:
        templates = library.search(search)
    elif category:
        templates = library.templates_by_category(category)
    elif event:
        templates = library.templates_by_event(event)
    elif tags:
        templates = library.templates_by_tags(tags)
    else:
        templates = library.all_templates()
    Printer().templates(templates)
    Printer().info(f"\n{len(templates)} templates")


@templates_cmd.command("categories")
def templates_categories() -> None:
    """List template categories."""
    Printer().categories(TemplateLibrary().categories())


@templates_cmd.command("show")
@click.argument("template_id")
def templates_show(template_id: str) -> None:
    """Show details for one template."""
    template = TemplateLibrary().get_template(template_id)
    if template is None:
        raise click.ClickException(str(TemplateNotFoundError(template_id)))
    Printer().template(template)


@templates_cmd.command("install")
@click.argument("template_id")
@click.option("--name", default=None)
@click.option("--command", "command", default=None)
@click.option("--condition", type=click.Choice(VALID_CONDITIONS), default=None)
@click.option("--param", "params", multiple=True, help="Condition parameter KEY=VALUE")
@click.option("--timeout", type=int, default=None)
@click.option("--project", "project_path", default=None)
@click.option("--disabled", is_flag=True)
@click.pass_context
def templates_install(
    ctx: click.Context,
    template_id: str,
    name: str | None,
    command: str | None,
    condition: str | None,
    params: tuple[str, ...],
    timeout: int | None,
    project_path: str | None,
    disabled: bool,
) -> None:
    """Create a hook from a template."""
    try:
        config = TemplateLibrary().generate_rule_config(
            template_id,
            name=name,
            command=command,
            condition=condition,
            conditionParams=_parse_params(params) or None,
            timeout=timeout,
            project_path=project_path,
            enabled=not disabled,
        )
    except (TemplateNotFoundError, ValueError) as e:
        raise click.ClickException(str(e)) from e

    async def run(engine: AutomationEngine) -> None:
        rule = await engine.create_rule(config)
        Printer().info(f"Created hook {rule.id} ({rule.name}) from {template_id}")

    _with_engine(ctx, run)
