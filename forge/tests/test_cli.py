"""Tests for the Forge command line interface."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from forge.cli.context import (
    EXIT_GENERAL,
    EXIT_INVALID_INPUT,
    EXIT_INVALID_STATE,
    EXIT_NOT_FOUND,
)
from forge.cli.main import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def initialized(runner: CliRunner, project_dir: Path) -> Path:
    """Project directory after a successful ``forge init``."""
    result = runner.invoke(cli, ["init"])
    assert result.exit_code == 0, result.output
    return project_dir


def invoke_json(runner: CliRunner, *args: str):
    result = runner.invoke(cli, ["--json", *args])
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


class TestInit:
    """Test forge init."""

    def test_creates_workspace(self, runner: CliRunner, project_dir: Path):
        result = runner.invoke(cli, ["init"])

        assert result.exit_code == 0
        assert "Forge initialized" in result.output
        workspace = project_dir / ".forge"
        assert (workspace / "config.yaml").exists()
        assert (workspace / ".gitignore").exists()
        assert json.loads((workspace / "state.json").read_text())["phase"] == "clarify"

    def test_keeps_existing_state(self, runner: CliRunner, initialized: Path):
        runner.invoke(cli, ["state", "set-phase", "breakdown"])

        runner.invoke(cli, ["init"])
        assert invoke_json(runner, "state", "get")["phase"] == "breakdown"

        runner.invoke(cli, ["init", "--force"])
        assert invoke_json(runner, "state", "get")["phase"] == "clarify"

    def test_custom_workspace(self, runner: CliRunner, project_dir: Path):
        result = runner.invoke(cli, ["--workspace", "custom", "init"])

        assert result.exit_code == 0
        assert (project_dir / "custom" / "state.json").exists()

    def test_session_logged(self, runner: CliRunner, initialized: Path):
        runner.invoke(cli, ["tasks", "list"])

        sessions = list((initialized / ".forge" / "logs" / "sessions").iterdir())
        assert sessions
        assert any(
            "session_start" in (session / "activity.jsonl").read_text() for session in sessions
        )


class TestTaskCommands:
    """Test forge tasks."""

    def test_create_and_get(self, runner: CliRunner, initialized: Path):
        result = runner.invoke(
            cli,
            ["tasks", "create", "auth.login", "-m", "auth", "-d", "Login form", "-c", "renders"],
        )
        assert result.exit_code == 0
        assert "Created task" in result.output

        task = invoke_json(runner, "tasks", "get", "auth.login")

        assert task["module"] == "auth"
        assert task["acceptanceCriteria"] == ["renders"]
        assert task["status"] == "pending"

    def test_duplicate_task(self, runner: CliRunner, initialized: Path):
        args = ["tasks", "create", "auth.login", "-m", "auth", "-d", "Login form"]
        runner.invoke(cli, args)

        result = runner.invoke(cli, args)

        assert result.exit_code == EXIT_INVALID_INPUT
        assert "DuplicateTask" in result.output

    def test_unknown_task(self, runner: CliRunner, initialized: Path):
        result = runner.invoke(cli, ["tasks", "start", "ghost"])

        assert result.exit_code == EXIT_NOT_FOUND
        assert "Task not found: ghost" in result.output

    def test_lifecycle(self, runner: CliRunner, initialized: Path):
        runner.invoke(cli, ["tasks", "create", "t1", "-m", "core", "-d", "Base", "-p", "2"])
        runner.invoke(
            cli, ["tasks", "create", "t2", "-m", "core", "-d", "Child", "-p", "1", "--depends", "t1"]
        )

        assert invoke_json(runner, "tasks", "next")["id"] == "t1"

        assert runner.invoke(cli, ["tasks", "start", "t1"]).exit_code == 0
        assert invoke_json(runner, "state", "get")["currentTask"] == "t1"

        done = invoke_json(runner, "tasks", "done", "t1", "--note", "shipped")
        assert done["status"] == "completed"
        assert invoke_json(runner, "tasks", "next")["id"] == "t2"

        progress = (initialized / ".forge" / "progress.log").read_text()
        assert "STARTED: t1" in progress
        assert "COMPLETED: t1 - shipped" in progress

    def test_complete_pending_task_rejected(self, runner: CliRunner, initialized: Path):
        runner.invoke(cli, ["tasks", "create", "t1", "-m", "core", "-d", "Base"])

        result = runner.invoke(cli, ["tasks", "done", "t1"])

        assert result.exit_code == EXIT_INVALID_STATE

    def test_list_filters(self, runner: CliRunner, initialized: Path):
        runner.invoke(cli, ["tasks", "create", "a.one", "-m", "a", "-d", "One"])
        runner.invoke(cli, ["tasks", "create", "b.two", "-m", "b", "-d", "Two"])
        runner.invoke(cli, ["tasks", "start", "a.one"])

        pending = invoke_json(runner, "tasks", "list", "--status", "pending")
        by_module = invoke_json(runner, "tasks", "list", "-m", "a")

        assert [t["id"] for t in pending] == ["b.two"]
        assert [t["id"] for t in by_module] == ["a.one"]

        result = runner.invoke(cli, ["tasks", "list"])
        assert "a.one" in result.output
        assert "b.two" in result.output

    def test_batch_non_atomic(self, runner: CliRunner, initialized: Path):
        runner.invoke(cli, ["tasks", "create", "t1", "-m", "core", "-d", "Base"])
        batch = initialized / "ops.json"
        batch.write_text(
            json.dumps(
                [
                    {"action": "start", "taskId": "t1"},
                    {"action": "done", "taskId": "t1"},
                    {"action": "start", "taskId": "t1"},
                ]
            )
        )

        result = runner.invoke(cli, ["--json", "tasks", "batch", str(batch)])

        assert result.exit_code == EXIT_GENERAL
        results = json.loads(result.stdout)
        assert [r["success"] for r in results] == [True, True, False]
        assert results[2]["error_kind"] == "InvalidState"

    def test_batch_atomic_abort(self, runner: CliRunner, initialized: Path):
        runner.invoke(cli, ["tasks", "create", "t1", "-m", "core", "-d", "Base"])
        batch = initialized / "ops.json"
        batch.write_text(json.dumps([{"action": "done", "taskId": "t1"}]))

        result = runner.invoke(cli, ["tasks", "batch", str(batch), "--atomic"])

        assert result.exit_code == EXIT_INVALID_STATE
        assert invoke_json(runner, "tasks", "get", "t1")["status"] == "pending"

    def test_batch_invalid_file(self, runner: CliRunner, initialized: Path):
        batch = initialized / "ops.json"
        batch.write_text('[{"action": "explode", "taskId": "t1"}]')

        result = runner.invoke(cli, ["tasks", "batch", str(batch)])

        assert result.exit_code == EXIT_INVALID_INPUT


    def test_init_records_metadata(self, runner: CliRunner, initialized: Path):
        data = invoke_json(
            runner, "tasks", "init", "--project-goal", "Ship auth", "--language", "python"
        )

        assert data == {
            "projectGoal": "Ship auth",
            "languageConfig": {"language": "python", "framework": ""},
        }
        index = json.loads((initialized / ".forge" / "tasks" / "index.json").read_text())
        assert index["metadata"]["projectGoal"] == "Ship auth"

        result = runner.invoke(cli, ["tasks", "init", "--framework", "flask"])
        assert result.exit_code == 0
        assert "Task index initialized" in result.output

    def test_init_rejects_blank_goal(self, runner: CliRunner, initialized: Path):
        result = runner.invoke(cli, ["tasks", "init", "--project-goal", "  "])

        assert result.exit_code == EXIT_INVALID_INPUT


class TestStateCommands:
    """Test forge state."""

    def test_invalid_transition(self, runner: CliRunner, initialized: Path):
        result = runner.invoke(cli, ["state", "set-phase", "implement"])

        assert result.exit_code == EXIT_INVALID_STATE
        assert "InvalidTransition" in result.output
        assert invoke_json(runner, "state", "get")["phase"] == "clarify"

    def test_get_lists_allowed_transitions(self, runner: CliRunner, initialized: Path):
        runner.invoke(cli, ["state", "set-phase", "breakdown"])
        runner.invoke(cli, ["state", "set-phase", "implement"])

        data = invoke_json(runner, "state", "get")

        assert data["allowedTransitions"] == ["heal", "deliver"]

    def test_state_missing(self, runner: CliRunner, project_dir: Path):
        result = runner.invoke(cli, ["state", "get"])

        assert result.exit_code == EXIT_NOT_FOUND

    def test_errors(self, runner: CliRunner, initialized: Path):
        runner.invoke(cli, ["state", "add-error", "[build] broke", "--task", "t1"])

        shown = runner.invoke(cli, ["state", "get"])
        assert shown.exit_code == 0
        assert "[build] broke" in shown.output

        data = invoke_json(runner, "state", "clear-errors")
        assert data["errors"] == []

    def test_update_applies_all_changes(self, runner: CliRunner, initialized: Path):
        data = invoke_json(
            runner,
            "state",
            "update",
            "--phase",
            "breakdown",
            "--task",
            "auth.login",
            "--prd",
            '{"title": "Auth", "requirements": ["login"]}',
            "--add-error",
            '{"message": "lint failed", "taskId": "auth.login"}',
        )

        assert data["phase"] == "breakdown"
        assert data["currentTask"] == "auth.login"
        assert data["prd"]["requirements"] == ["login"]
        assert data["errors"][0]["taskId"] == "auth.login"

    def test_update_plain_text_error(self, runner: CliRunner, initialized: Path):
        data = invoke_json(runner, "state", "update", "--add-error", "tests flaky")

        assert data["errors"][0]["message"] == "tests flaky"
        assert data["errors"][0]["phase"] == "clarify"

    @pytest.mark.parametrize(
        "args",
        [
            ["--prd", "{not json"],
            ["--prd", "[1, 2]"],
            ["--add-error", '{"taskId": "t1"}'],
            [],
        ],
    )
    def test_update_rejects_bad_input(self, runner: CliRunner, initialized: Path, args):
        result = runner.invoke(cli, ["state", "update", *args])

        assert result.exit_code == EXIT_INVALID_INPUT
        data = invoke_json(runner, "state", "get")
        assert data["prd"] is None
        assert data["errors"] == []

    def test_archive_blocked_then_forced(self, runner: CliRunner, initialized: Path):
        blocked = runner.invoke(cli, ["state", "archive"])
        assert blocked.exit_code == EXIT_INVALID_STATE

        forced = invoke_json(runner, "state", "archive", "--force")
        assert forced["archived"] is True
        assert (initialized / ".forge" / forced["archive_path"] / "state.json").exists()
        assert not (initialized / ".forge" / "state.json").exists()


class TestStatusCommands:
    """Test forge status and forge circuit-breaker."""

    def test_status_not_initialized(self, runner: CliRunner, project_dir: Path):
        result = runner.invoke(cli, ["status"])

        assert result.exit_code == 0
        assert "Forge not initialized" in result.output
        assert not (project_dir / ".forge").exists()

    def test_status_counts(self, runner: CliRunner, initialized: Path):
        runner.invoke(cli, ["tasks", "create", "a.one", "-m", "a", "-d", "One"])
        runner.invoke(cli, ["tasks", "start", "a.one"])
        runner.invoke(cli, ["tasks", "done", "a.one"])
        runner.invoke(cli, ["tasks", "create", "a.two", "-m", "a", "-d", "Two"])

        data = invoke_json(runner, "status")

        assert data["phase"] == "clarify"
        assert data["overall"]["completion_percentage"] == 50
        assert data["circuit_state"] == "CLOSED"

        table = runner.invoke(cli, ["status"])
        assert "Forge Status" in table.output

    def test_circuit_breaker_commands(self, runner: CliRunner, initialized: Path):
        status = invoke_json(runner, "circuit-breaker", "status")
        assert status["state"] == "CLOSED"
        assert status["failure_threshold"] == 5
        assert status["seconds_until_probe"] is None

        snapshot = initialized / ".forge" / "circuit-breaker.json"
        snapshot.write_text(
            json.dumps({"state": "OPEN", "consecutive_failures": 5, "last_failure_time": 1.0})
        )
        assert invoke_json(runner, "circuit-breaker", "status")["state"] == "OPEN"

        result = runner.invoke(cli, ["circuit-breaker", "reset"])
        assert result.exit_code == 0
        assert "reset to CLOSED" in result.output
        assert json.loads(snapshot.read_text())["state"] == "CLOSED"

        history = invoke_json(runner, "circuit-breaker", "history")
        assert [(h["from_state"], h["to_state"]) for h in history] == [("OPEN", "CLOSED")]

    def test_outcomes_shared_across_invocations(self, runner: CliRunner, initialized: Path):
        for expected in range(1, 5):
            data = invoke_json(runner, "circuit-breaker", "fail")
            assert data["consecutive_failures"] == expected
            assert data["state"] == "CLOSED"

        result = runner.invoke(cli, ["circuit-breaker", "fail"])
        assert result.exit_code == 0
        assert "Circuit breaker OPEN (5/5 failures)" in result.output

        assert invoke_json(runner, "circuit-breaker", "status")["state"] == "OPEN"
        assert invoke_json(runner, "circuit-breaker", "success")["state"] == "OPEN"

        history = invoke_json(runner, "circuit-breaker", "history")
        assert [(h["from_state"], h["to_state"]) for h in history] == [("CLOSED", "OPEN")]

    def test_success_resets_failure_count(self, runner: CliRunner, initialized: Path):
        runner.invoke(cli, ["circuit-breaker", "fail"])
        runner.invoke(cli, ["circuit-breaker", "fail"])

        result = runner.invoke(cli, ["circuit-breaker", "success"])

        assert "Success recorded" in result.output
        assert invoke_json(runner, "circuit-breaker", "status")["consecutive_failures"] == 0
