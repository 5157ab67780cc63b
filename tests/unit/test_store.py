"""Tests for the SQLAlchemy automation store."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

from sqlalchemy import select

from hookwork.storage.engine import SCHEMA_VERSION, create_session_factory
from hookwork.storage.schema import MetaRow
from hookwork.storage.sql import SqlAutomationStore, utcnow
from hookwork.types.audit import LogEventType, LogSource, LogStatus
from hookwork.types.workflows import Trigger, Workflow, WorkflowSettings, WorkflowStep
from tests.conftest import make_rule


def log(store, target_id, *, status=LogStatus.SUCCESS, kind=LogEventType.EXECUTION,
        source=LogSource.HOOK, age_days=0, duration=100):
    return store.insert_log_row(
        source=source,
        target_id=target_id,
        event_type=kind,
        status=status,
        execution_time=duration,
        created_at=utcnow() - timedelta(days=age_days),
    )


class TestSchema:
    def test_schema_version_stamped(self, store):
        with create_session_factory(store.engine)() as session:
            row = session.execute(
                select(MetaRow).where(MetaRow.key == "schema_version")
            ).scalar_one()
        assert row.value == SCHEMA_VERSION

    def test_file_database_persists(self, tmp_path):
        path = tmp_path / "nested" / "hooks.db"
        first = SqlAutomationStore.open(str(path))
        first.insert_rule(make_rule(id="kept"))
        first.close()

        second = SqlAutomationStore.open(str(path))
        try:
            assert second.select_rule_by_id("kept").name == "Echo"
        finally:
            second.close()


class TestRules:
    def test_insert_and_select(self, store):
        stored = store.insert_rule(
            make_rule(condition="file_type", condition_params={"extension": "py"}, timeout=5000)
        )
        assert stored.created_at is not None
        assert stored.created_at == stored.updated_at

        loaded = store.select_rule_by_id("rule-1")
        assert loaded.condition_params == {"extension": "py"}
        assert loaded.timeout == 5000
        assert loaded.enabled is True
        assert store.select_rule_by_id("missing") is None

    def test_update(self, store):
        original = store.insert_rule(make_rule())
        updated = store.update_rule(replace(original, name="Renamed", enabled=False))
        assert updated.name == "Renamed"
        assert updated.enabled is False
        assert updated.updated_at >= original.updated_at
        assert store.update_rule(make_rule(id="ghost")) is None

    def test_delete(self, store):
        store.insert_rule(make_rule())
        assert store.delete_rule("rule-1") is True
        assert store.delete_rule("rule-1") is False

    def test_select_enabled_rules(self, store):
        store.insert_rule(make_rule(id="a"))
        store.insert_rule(make_rule(id="b", enabled=False))
        store.insert_rule(make_rule(id="c"))
        assert [r.id for r in store.select_enabled_rules()] == ["a", "c"]

    def test_list_filters(self, store):
        store.insert_rule(make_rule(id="lint", name="Lint Python", event="FileChange"))
        store.insert_rule(make_rule(id="guard", name="Guard", event="PreToolUse", enabled=False))
        store.insert_rule(
            make_rule(id="scoped", name="Scoped", description="python only", project_path="/work/a"),
        )

        assert {r.id for r in store.list_rules(event="FileChange")} == {"lint", "scoped"}
        assert [r.id for r in store.list_rules(enabled=False)] == ["guard"]
        assert {r.id for r in store.list_rules(project_path="/work/a")} == {"lint", "guard", "scoped"}
        assert {r.id for r in store.list_rules(project_path="/work/b")} == {"lint", "guard"}
        assert {r.id for r in store.list_rules(search="ython")} == {"lint", "scoped"}

    def test_list_enabled_first_and_paging(self, store):
        store.insert_rule(make_rule(id="off", enabled=False))
        store.insert_rule(make_rule(id="on"))
        assert [r.id for r in store.list_rules()][0] == "on"
        assert len(store.list_rules(limit=1)) == 1
        assert [r.id for r in store.list_rules(limit=1, offset=1)] == ["off"]

    def test_count_uses_list_filters(self, store):
        store.insert_rule(make_rule(id="lint", name="Lint Python"))
        store.insert_rule(make_rule(id="guard", name="Guard", event="PreToolUse", enabled=False))
        store.insert_rule(make_rule(id="scoped", name="Scoped", project_path="/work/a"))

        assert store.count_rules() == 3
        assert store.count_rules(event="PreToolUse") == 1
        assert store.count_rules(enabled=True) == 2
        assert store.count_rules(project_path="/work/b") == 2
        assert store.count_rules(search="ython") == 1


def make_workflow(workflow_id="wf-1", **overrides):
    fields = {
        "id": workflow_id,
        "name": "Ship",
        "trigger": Trigger(event="GitCommit", condition="always"),
        "steps": (
            WorkflowStep(id="build", name="Build", command="make", retries=2),
            WorkflowStep(id="notify", name="Notify", command="notify", continue_on_error=True),
        ),
        "settings": WorkflowSettings(parallel=False, stop_on_error=True, timeout=60_000),
    }
    fields.update(overrides)
    return Workflow(**fields)


class TestWorkflows:
    def test_round_trip(self, store):
        workflow = make_workflow(project_path="/work")
        store.insert_workflow(workflow)
        assert store.select_workflow_by_id("wf-1") == workflow

    def test_update_and_delete(self, store):
        store.insert_workflow(make_workflow())
        updated = store.update_workflow(make_workflow(name="Ship it", enabled=False))
        assert updated.name == "Ship it"
        assert updated.enabled is False
        assert store.select_enabled_workflows() == []
        assert store.update_workflow(make_workflow("ghost")) is None
        assert store.delete_workflow("wf-1") is True
        assert store.select_workflow_by_id("wf-1") is None

    def test_list(self, store):
        store.insert_workflow(make_workflow("a"))
        store.insert_workflow(make_workflow("b", enabled=False, project_path="/work/x"))
        assert [w.id for w in store.list_workflows(enabled=True)] == ["a"]
        assert {w.id for w in store.list_workflows(project_path="/work/y")} == {"a"}


class TestLogs:
    def test_insert_and_filter(self, store):
        log(store, "r1")
        log(store, "r1", kind=LogEventType.TEST)
        log(store, "wf", source=LogSource.WORKFLOW)
        assert len(store.select_log_rows()) == 3
        assert len(store.select_log_rows("r1")) == 2
        assert [r.target_id for r in store.select_log_rows(source=LogSource.WORKFLOW)] == ["wf"]
        assert len(store.select_log_rows("r1", event_type=LogEventType.TEST)) == 1

    def test_newest_first_and_paging(self, store):
        old = log(store, "r1", age_days=2)
        new = log(store, "r1")
        assert [r.id for r in store.select_log_rows("r1")] == [new, old]
        assert [r.id for r in store.select_log_rows("r1", limit=1, offset=1)] == [old]

    def test_metadata_round_trip(self, store):
        store.insert_log_row(
            source=LogSource.HOOK,
            target_id="r1",
            event_type=LogEventType.EXECUTION,
            status=LogStatus.ERROR,
            error_message="boom",
            metadata={"event": "Error", "output": None},
            project_path="/work",
        )
        [row] = store.select_log_rows("r1")
        assert row.metadata == {"event": "Error", "output": None}
        assert row.error_message == "boom"
        assert row.status is LogStatus.ERROR

    def test_delete_older_than(self, store):
        log(store, "r1", age_days=40)
        log(store, "r1", age_days=31)
        log(store, "r1", age_days=1)
        assert store.delete_log_rows_older_than(utcnow() - timedelta(days=30)) == 2
        assert len(store.select_log_rows()) == 1


class TestAggregates:
    def test_statistics_per_enabled_rule(self, store):
        store.insert_rule(make_rule(id="busy", name="Busy"))
        store.insert_rule(make_rule(id="idle", name="Idle"))
        store.insert_rule(make_rule(id="off", name="Off", enabled=False))
        log(store, "busy", duration=100)
        log(store, "busy", duration=300, status=LogStatus.ERROR)
        log(store, "busy", kind=LogEventType.TEST)
        log(store, "busy", age_days=30)
        log(store, "off")

        stats = store.aggregate_statistics(utcnow() - timedelta(days=7))

        assert [s.target_id for s in stats] == ["busy", "idle"]
        busy, idle = stats
        assert busy.execution_count == 2
        assert busy.success_count == 1
        assert busy.avg_duration == 200.0
        assert busy.success_rate == 0.5
        assert busy.last_execution is not None
        assert idle.execution_count == 0
        assert idle.avg_duration is None
        assert idle.last_execution is None

    def test_workflow_statistics_use_workflow_rows(self, store):
        store.insert_workflow(make_workflow("wf"))
        log(store, "wf", source=LogSource.WORKFLOW)
        log(store, "wf", source=LogSource.HOOK)
        [stats] = store.aggregate_workflow_statistics(utcnow() - timedelta(days=7))
        assert stats.execution_count == 1
        assert stats.event == "GitCommit"

    def test_rule_statistics_all_time_for_given_rules(self, store):
        store.insert_rule(make_rule(id="busy"))
        store.insert_rule(make_rule(id="off", enabled=False))
        store.insert_rule(make_rule(id="other"))
        log(store, "busy", age_days=90, duration=50)
        log(store, "busy", status=LogStatus.ERROR, duration=150)
        log(store, "busy", kind=LogEventType.CREATION)
        log(store, "off")
        log(store, "other")

        stats = store.rule_statistics(["busy", "off"])

        assert set(stats) == {"busy", "off"}
        assert stats["busy"].execution_count == 2
        assert stats["busy"].success_count == 1
        assert stats["busy"].avg_duration == 100.0
        assert stats["off"].execution_count == 1
        assert store.rule_statistics([]) == {}
