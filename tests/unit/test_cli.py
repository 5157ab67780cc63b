"""Tests for the click CLI, driven through CliRunner against an in-memory engine."""

from __future__ import annotations

import json
import re

import pytest
from click.testing import CliRunner

from hookwork.cli.main import cli
from tests.conftest import fail, ok


@pytest.fixture
def invoke(engine):
    runner = CliRunner()

    def _invoke(*args: str):
        return runner.invoke(cli, list(args), obj={"engine": engine}, env={"COLUMNS": "200"})

    return _invoke


def created_id(output: str) -> str:
    match = re.search(r"Created (?:hook|workflow) ([0-9a-f]{32})", output)
    assert match, output
    return match.group(1)


class TestEvents:
    def test_lists_catalogue(self, invoke):
        result = invoke("events")
        assert result.exit_code == 0, result.output
        assert "FileChange" in result.output
        assert "SessionEnd" in result.output

    def test_version(self, invoke):
        result = invoke("--version")
        assert result.exit_code == 0
        assert "hookwork" in result.output


class TestHooks:
    def test_add_list_show_remove(self, invoke, engine):
        result = invoke(
            "hooks", "add",
            "--name", "Lint",
            "--event", "FileChange",
            "--condition", "file_type",
            "--param", "extension=py",
            "--command", 'ruff check "${data.filePath}"',
            "--timeout", "5000",
        )
        assert result.exit_code == 0, result.output
        rule_id = created_id(result.output)

        listed = invoke("hooks", "list")
        assert "Lint" in listed.output
        assert rule_id in listed.output

        shown = invoke("hooks", "show", rule_id)
        data = json.loads(shown.output)
        assert data["conditionParams"] == {"extension": "py"}
        assert data["timeout"] == 5000

        removed = invoke("hooks", "remove", rule_id)
        assert removed.exit_code == 0
        assert f"Deleted hook {rule_id} (Lint)" in removed.output
        assert "No hooks found." in invoke("hooks", "list").output

    def test_list_json(self, invoke):
        invoke("hooks", "add", "--name", "A", "--event", "Error", "--command", "true")
        invoke("trigger", "Error")
        result = invoke("hooks", "list", "--json")
        data = json.loads(result.output)
        [entry] = data["hooks"]
        assert entry["name"] == "A"
        assert entry["status"] == "active"
        assert entry["execution_count"] == 1
        assert entry["success_count"] == 1
        assert data["pagination"] == {"total": 1, "limit": 50, "offset": 0, "hasMore": False}

    def test_add_invalid_condition_param(self, invoke):
        result = invoke(
            "hooks", "add", "--name", "X", "--event", "FileChange",
            "--condition", "file_type", "--command", "true",
        )
        assert result.exit_code == 1
        assert "conditionParams.extension" in result.output

    def test_add_bad_param_syntax(self, invoke):
        result = invoke(
            "hooks", "add", "--name", "X", "--event", "FileChange",
            "--param", "extension", "--command", "true",
        )
        assert result.exit_code == 2
        assert "KEY=VALUE" in result.output

    def test_update_and_disable(self, invoke, engine):
        rule_id = created_id(
            invoke("hooks", "add", "--name", "A", "--event", "Error", "--command", "true").output
        )
        result = invoke("hooks", "update", rule_id, "--command", "false", "--disable")
        assert result.exit_code == 0, result.output
        assert f"Updated hook {rule_id} (command, enabled)" in result.output
        assert rule_id not in engine.registry

    def test_update_nothing(self, invoke):
        result = invoke("hooks", "update", "whatever")
        assert result.exit_code == 2
        assert "Nothing to update" in result.output

    def test_remove_unknown(self, invoke):
        result = invoke("hooks", "remove", "ghost")
        assert result.exit_code == 1
        assert "Hook not found: ghost" in result.output

    def test_test_command(self, invoke, supervisor):
        rule_id = created_id(
            invoke("hooks", "add", "--name", "Echo", "--event", "FileChange",
                   "--command", "echo ${data.filePath}").output
        )
        supervisor.script(ok("a.py"), fail(1, "broken"))

        passed = invoke("hooks", "test", rule_id, "--data", '{"filePath": "a.py"}')
        assert passed.exit_code == 0, passed.output
        assert "Echo" in passed.output
        assert supervisor.commands[-1] == "echo a.py"

        failed = invoke("hooks", "test", rule_id)
        assert failed.exit_code == 1
        assert "broken" in failed.output

    def test_test_bad_json(self, invoke):
        result = invoke("hooks", "test", "x", "--data", "{nope")
        assert result.exit_code == 2
        assert "not valid JSON" in result.output

    def test_logs(self, invoke):
        rule_id = created_id(
            invoke("hooks", "add", "--name", "A", "--event", "Error", "--command", "true").output
        )
        result = invoke("hooks", "logs", rule_id, "--type", "creation")
        assert result.exit_code == 0, result.output
        assert "creation" in result.output


class TestTrigger:
    def test_runs_matching_hooks(self, invoke, supervisor):
        invoke("hooks", "add", "--name", "Lint", "--event", "FileChange",
               "--condition", "file_type", "--param", "extension=py",
               "--command", "ruff check ${data.filePath}")
        supervisor.script(ok("All checks passed"))

        result = invoke("trigger", "FileChange", "--data", '{"filePath": "src/app.py"}')

        assert result.exit_code == 0, result.output
        assert "All checks passed" in result.output
        assert supervisor.commands == ["ruff check src/app.py"]

    def test_failure_exits_nonzero(self, invoke, supervisor):
        invoke("hooks", "add", "--name", "Boom", "--event", "Error", "--command", "false")
        supervisor.script(fail(1, "exploded"))
        result = invoke("trigger", "Error")
        assert result.exit_code == 1
        assert "exploded" in result.output

    def test_nothing_matched(self, invoke):
        result = invoke("trigger", "SessionStart", "--no-workflows")
        assert result.exit_code == 0
        assert "No hooks matched." in result.output

    def test_unknown_event_rejected(self, invoke):
        assert invoke("trigger", "Deploy").exit_code == 2


WORKFLOW_YAML = """\
name: Release
trigger:
  event: GitCommit
steps:
  - id: test
    name: Test
    command: pytest
  - id: tag
    name: Tag
    command: git tag v-${data.hash}
settings:
  stopOnError: true
"""


class TestWorkflows:
    def test_add_list_and_trigger(self, invoke, supervisor, tmp_path):
        path = tmp_path / "release.yaml"
        path.write_text(WORKFLOW_YAML)

        added = invoke("workflows", "add", str(path))
        assert added.exit_code == 0, added.output
        assert "(Release, 2 steps)" in added.output

        assert "Release" in invoke("workflows", "list").output

        supervisor.script(ok(), fail(1, "tag exists"))
        result = invoke("trigger", "GitCommit", "--data", '{"hash": "abc"}')
        assert result.exit_code == 1
        assert 'Step "Tag" failed: tag exists' in result.output
        assert supervisor.commands == ["pytest", "git tag v-abc"]

    def test_test_definition_file(self, invoke, supervisor, tmp_path, engine):
        path = tmp_path / "draft.yaml"
        path.write_text(WORKFLOW_YAML)
        result = invoke("workflows", "test", str(path), "--data", '{"hash": "1"}')
        assert result.exit_code == 0, result.output
        assert supervisor.commands == ["pytest", "git tag v-1"]
        assert engine.store.list_workflows() == []

    def test_enable_disable_remove(self, invoke, tmp_path):
        path = tmp_path / "release.yaml"
        path.write_text(WORKFLOW_YAML)
        workflow_id = created_id(invoke("workflows", "add", str(path)).output)

        assert f"Workflow {workflow_id} disabled" in invoke("workflows", "disable", workflow_id).output
        assert f"Workflow {workflow_id} enabled" in invoke("workflows", "enable", workflow_id).output
        assert invoke("workflows", "remove", workflow_id).exit_code == 0
        assert "Workflow not found" in invoke("workflows", "show", workflow_id).output

    def test_invalid_definition(self, invoke, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("name: Broken\nsteps: []\n")
        result = invoke("workflows", "add", str(path))
        assert result.exit_code == 1
        assert "Missing required field: trigger" in result.output


class TestTemplates:
    def test_list_and_categories(self, invoke):
        listed = invoke("templates", "list", "--category", "development")
        assert listed.exit_code == 0
        assert "development-pre-commit-linting" in listed.output
        assert "5 templates" in listed.output
        assert "Backup & Recovery" in invoke("templates", "categories").output

    def test_show(self, invoke):
        result = invoke("templates", "show", "development-python-lint-on-change")
        assert result.exit_code == 0
        assert "Python Lint on Change" in result.output
        assert 'ruff check "${data.filePath}"' in result.output

    def test_show_unknown(self, invoke):
        result = invoke("templates", "show", "ghost")
        assert result.exit_code == 1
        assert "Template not found: ghost" in result.output

    def test_install(self, invoke, engine):
        result = invoke(
            "templates", "install", "development-pre-commit-linting",
            "--name", "My lint", "--timeout", "20000",
        )
        assert result.exit_code == 0, result.output
        assert "from development-pre-commit-linting" in result.output
        [rule] = engine.store.list_rules()
        assert rule.name == "My lint"
        assert rule.timeout == 20000
        assert rule.event == "GitCommit"


class TestStatsAndCleanup:
    def test_stats_json(self, invoke, supervisor):
        invoke("hooks", "add", "--name", "A", "--event", "Error", "--command", "true")
        invoke("trigger", "Error")
        result = invoke("stats", "--json")
        [entry] = json.loads(result.output)
        assert entry["execution_count"] == 1
        assert entry["success_rate"] == 1.0

    def test_stats_table_empty(self, invoke):
        assert "No executions recorded." in invoke("stats").output

    def test_cleanup(self, invoke):
        invoke("hooks", "add", "--name", "A", "--event", "Error", "--command", "true")
        result = invoke("cleanup", "--days", "0")
        assert result.exit_code == 0
        assert "Removed 1 log entries" in result.output
