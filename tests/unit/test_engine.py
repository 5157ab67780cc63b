"""End-to-end tests for AutomationEngine with a scripted supervisor."""

from __future__ import annotations

import sys

import pytest

from hookwork import AutomationEngine, EngineConfig
from hookwork.hooks.dispatcher import RuleNotFoundError
from hookwork.types.audit import LogEventType, LogSource
from hookwork.types.hooks import RuleValidationError
from hookwork.workflows.processor import WorkflowNotFoundError
from tests.conftest import fail, make_rule, ok

LINT_RULE = {
    "name": "Lint Python",
    "event": "FileChange",
    "condition": "file_type",
    "conditionParams": {"extension": "py"},
    "command": 'ruff check "${data.filePath}"',
    "timeout": 10_000,
}

RELEASE_WORKFLOW = {
    "name": "Release",
    "trigger": {"event": "GitCommit"},
    "steps": [
        {"id": "test", "name": "Test", "command": "pytest", "retries": 1},
        {"id": "tag", "name": "Tag", "command": "git tag v-${data.hash}"},
    ],
}


class TestRuleLifecycle:
    @pytest.mark.asyncio
    async def test_create_registers_and_fires(self, engine, supervisor, store):
        rule = await engine.create_rule(LINT_RULE)

        assert len(rule.id) == 32
        assert rule.created_at is not None
        assert engine.get_hook_count_by_event() == {"FileChange": 1}

        supervisor.script(ok("All checks passed"))
        [result] = await engine.process_event("FileChange", {"filePath": "app.py"}, "/work")
        assert result.success is True
        assert supervisor.commands == ['ruff check "app.py"']

        kinds = [r.event_type for r in await engine.logs(rule.id)]
        assert kinds == [LogEventType.EXECUTION, LogEventType.CREATION]

    @pytest.mark.asyncio
    async def test_create_disabled_is_not_registered(self, engine):
        rule = await engine.create_rule({**LINT_RULE, "enabled": False})
        assert rule.id not in engine.registry
        assert await engine.process_event("FileChange", {"filePath": "a.py"}) == []

    @pytest.mark.asyncio
    async def test_create_invalid_persists_nothing(self, engine):
        with pytest.raises(RuleValidationError):
            await engine.create_rule({**LINT_RULE, "event": "Deploy"})
        assert await engine.list_rules() == []
        assert await engine.logs() == []

    @pytest.mark.asyncio
    async def test_update_merges_and_reregisters(self, engine):
        rule = await engine.create_rule(LINT_RULE)
        updated = await engine.update_rule(
            rule.id, {"command": "ruff format", "condition_params": {"extension": "pyi"}},
        )
        assert updated.command == "ruff format"
        assert updated.condition_params == {"extension": "pyi"}
        assert updated.name == "Lint Python"
        assert updated.timeout == 10_000
        assert engine.registry.get(rule.id).command == "ruff format"

        [row] = await engine.logs(rule.id, event_type=LogEventType.UPDATE)
        assert row.metadata == {"updates": ["command", "conditionParams"]}

    @pytest.mark.asyncio
    async def test_disable_and_reenable(self, engine):
        rule = await engine.create_rule(LINT_RULE)
        await engine.update_rule(rule.id, {"enabled": False})
        assert rule.id not in engine.registry
        await engine.update_rule(rule.id, {"enabled": True})
        assert rule.id in engine.registry

    @pytest.mark.asyncio
    async def test_update_rejects_invalid_and_keeps_rule(self, engine):
        rule = await engine.create_rule(LINT_RULE)
        with pytest.raises(RuleValidationError):
            await engine.update_rule(rule.id, {"condition": "custom"})
        assert (await engine.get_rule(rule.id)).condition == "file_type"

    @pytest.mark.asyncio
    async def test_update_unknown(self, engine):
        with pytest.raises(RuleNotFoundError):
            await engine.update_rule("ghost", {"name": "x"})

    @pytest.mark.asyncio
    async def test_delete(self, engine):
        rule = await engine.create_rule(LINT_RULE)
        deleted = await engine.delete_rule(rule.id)
        assert deleted.id == rule.id
        assert await engine.get_rule(rule.id) is None
        assert rule.id not in engine.registry
        # Log rows outlive the rule.
        kinds = {r.event_type for r in await engine.logs(rule.id)}
        assert LogEventType.DELETION in kinds
        with pytest.raises(RuleNotFoundError):
            await engine.delete_rule(rule.id)

    @pytest.mark.asyncio
    async def test_list_filters(self, engine):
        await engine.create_rule(LINT_RULE)
        await engine.create_rule({"name": "Guard", "event": "PreToolUse", "command": "true"})
        assert [r.name for r in await engine.list_rules(event="PreToolUse")] == ["Guard"]
        assert [r.name for r in await engine.list_rules(search="Lint")] == ["Lint Python"]

    @pytest.mark.asyncio
    async def test_rule_page_carries_total_and_execution_figures(self, engine, supervisor):
        lint = await engine.create_rule(LINT_RULE)
        await engine.create_rule({"name": "Guard", "event": "PreToolUse", "command": "true"})
        supervisor.script(ok(), fail(1, "E501"))
        await engine.process_event("FileChange", {"filePath": "a.py"})
        await engine.process_event("FileChange", {"filePath": "b.py"})

        page = await engine.rule_page(limit=1, event="FileChange")

        assert [r.id for r in page.rules] == [lint.id]
        assert page.total == 1
        assert page.has_more is False
        assert page.statistics[lint.id].execution_count == 2
        assert page.statistics[lint.id].success_count == 1

        full = await engine.rule_page(limit=1)
        assert full.total == await engine.count_rules() == 2
        assert full.has_more is True
        [entry] = full.to_dict()["hooks"]
        assert {"execution_count", "avg_duration", "success_count", "last_execution"} <= set(entry)


class TestStart:
    @pytest.mark.asyncio
    async def test_start_rebuilds_from_store(self, engine, store):
        store.insert_rule(make_rule(id="a"))
        store.insert_rule(make_rule(id="b", enabled=False))
        engine.register_rule(make_rule(id="stale"))

        rules, workflows = await engine.start()

        assert (rules, workflows) == (1, 0)
        assert "a" in engine.registry
        assert "stale" not in engine.registry

    @pytest.mark.asyncio
    async def test_register_and_unregister(self, engine):
        engine.register_rule(make_rule(id="manual"))
        assert engine.get_hook_count_by_event() == {"FileChange": 1}
        assert engine.unregister_rule("manual") is True
        assert engine.get_hook_count_by_event() == {}


class TestTesting:
    @pytest.mark.asyncio
    async def test_test_rule(self, engine, supervisor):
        rule = await engine.create_rule({**LINT_RULE, "enabled": False})
        supervisor.script(fail(1, "E501 line too long"))
        result = await engine.test_rule(rule.id, data={"filePath": "x.py"})
        assert result.success is False
        assert result.error == "E501 line too long"
        [row] = await engine.logs(rule.id, event_type=LogEventType.TEST)
        assert row.metadata["mockData"] == {"filePath": "x.py"}

    @pytest.mark.asyncio
    async def test_test_unsaved_workflow_definition(self, engine, supervisor):
        result = await engine.test_workflow(
            {"trigger": {"event": "GitCommit"}, "steps": [{"command": "echo ok"}]},
        )
        assert result.success is True
        assert result.workflow_name == "Test Workflow"
        assert result.workflow_id.startswith("test-")
        assert await engine.logs() == []

    @pytest.mark.asyncio
    async def test_test_workflow_invalid_definition(self, engine):
        with pytest.raises(RuleValidationError):
            await engine.test_workflow({"trigger": {"event": "GitCommit"}, "steps": []})


class TestWorkflows:
    @pytest.mark.asyncio
    async def test_create_and_fire(self, engine, supervisor, sleeps):
        workflow = await engine.create_workflow(RELEASE_WORKFLOW)
        supervisor.script(fail(1, "flaky"), ok("passed"), ok())

        [result] = await engine.process_workflow_event("GitCommit", {"hash": "abc"})

        assert result.success is True
        assert result.step_results[0].attempts == 2
        assert sleeps == [1.0]
        assert supervisor.commands == ["pytest", "pytest", "git tag v-abc"]
        rows = await engine.logs(workflow.id, source=LogSource.WORKFLOW)
        assert [r.event_type for r in rows] == [LogEventType.EXECUTION, LogEventType.CREATION]

    @pytest.mark.asyncio
    async def test_hook_events_do_not_fire_workflows(self, engine, supervisor):
        await engine.create_workflow(RELEASE_WORKFLOW)
        assert await engine.process_event("GitCommit") == []
        assert supervisor.calls == []

    @pytest.mark.asyncio
    async def test_workflow_runs_hook_step(self, engine, supervisor):
        rule = await engine.create_rule(
            {"name": "Check", "event": "GitCommit", "command": "make check", "enabled": False},
        )
        workflow = await engine.create_workflow(
            {**RELEASE_WORKFLOW, "steps": [{"id": "check", "hookId": rule.id}]},
        )
        result = await engine.test_workflow(workflow.id)
        assert result.success is True
        assert supervisor.commands == ["make check"]

    @pytest.mark.asyncio
    async def test_update_and_disable(self, engine):
        workflow = await engine.create_workflow(RELEASE_WORKFLOW)
        updated = await engine.update_workflow(
            workflow.id, {"name": "Release v2", "enabled": False},
        )
        assert updated.name == "Release v2"
        assert len(updated.steps) == 2
        assert workflow.id not in engine.workflows.registry
        assert await engine.process_workflow_event("GitCommit") == []

    @pytest.mark.asyncio
    async def test_delete(self, engine):
        workflow = await engine.create_workflow(RELEASE_WORKFLOW)
        await engine.delete_workflow(workflow.id)
        assert await engine.get_workflow(workflow.id) is None
        assert await engine.list_workflows() == []
        with pytest.raises(WorkflowNotFoundError):
            await engine.delete_workflow(workflow.id)

    @pytest.mark.asyncio
    async def test_run_workflow_builds_context(self, engine, supervisor):
        workflow = await engine.create_workflow(RELEASE_WORKFLOW)
        await engine.run_workflow(workflow, data={"hash": "f00"}, project_path="/work")
        assert supervisor.calls[-1]["command"] == "git tag v-f00"
        assert supervisor.calls[-1]["cwd"] == "/work"


class TestStatistics:
    @pytest.mark.asyncio
    async def test_statistics_and_cleanup(self, engine):
        rule = await engine.create_rule(LINT_RULE)
        await engine.process_event("FileChange", {"filePath": "a.py"})
        await engine.process_event("FileChange", {"filePath": "b.py"})

        [stats] = await engine.statistics()
        assert stats.target_id == rule.id
        assert stats.execution_count == 2
        assert stats.success_rate == 1.0

        assert await engine.cleanup(0) == 3
        assert (await engine.statistics())[0].execution_count == 0

    def test_events_catalogue(self, engine):
        assert "FileChange" in engine.get_available_events()


class TestFromConfig:
    @pytest.mark.asyncio
    async def test_file_store(self, tmp_path):
        engine = AutomationEngine.from_config(EngineConfig(db_path=str(tmp_path / "hw.db")))
        try:
            await engine.create_rule(LINT_RULE)
        finally:
            engine.close()

        reopened = AutomationEngine.from_config(EngineConfig(db_path=str(tmp_path / "hw.db")))
        try:
            assert await reopened.start() == (1, 0)
        finally:
            reopened.close()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell")
class TestRealProcesses:
    @pytest.mark.asyncio
    async def test_file_change_round_trip(self, store, tmp_path):
        engine = AutomationEngine(store, EngineConfig(db_path=":memory:"))
        await engine.create_rule(
            {
                "name": "Announce",
                "event": "FileChange",
                "condition": "file_type",
                "conditionParams": {"extension": "js"},
                "command": "echo changed:${data.filePath}",
                "timeout": 5000,
            }
        )

        [result] = await engine.process_event("FileChange", {"filePath": "src/a.js"}, tmp_path)
        assert result.success is True
        assert result.output == "changed:src/a.js"

        assert await engine.process_event("FileChange", {"filePath": "src/a.ts"}, tmp_path) == []
