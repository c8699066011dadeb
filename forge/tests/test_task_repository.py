"""Tests for the task repository and task presentation files."""

import json

import pytest
import yaml

from forge.core.exceptions import CorruptRecordError
from forge.core.task import Task, TaskStatus
from forge.core.workflow_state import WorkflowState
from forge.repositories.state_repository import StateRepository
from forge.repositories.task_file import parse_task_file, render_task_file
from forge.repositories.task_repository import INDEX_FILE, TaskFilter, TaskRepository
from tests.mocks import permanent_error


def make_task(task_id: str, **overrides) -> Task:
    data = {
        "id": task_id,
        "module": task_id.split(".")[0],
        "description": f"Task {task_id}",
    }
    data.update(overrides)
    return Task(**data)


def set_status(repo: TaskRepository, task_id: str, status: TaskStatus) -> None:
    task = repo.find_by_id(task_id)
    task.status = status
    repo.save(task)


class TestTaskRepository:
    """Test CRUD over the index."""

    def test_save_and_find(self, task_repository: TaskRepository):
        task = make_task("auth.login", acceptance_criteria=["renders"])
        task_repository.save(task)

        assert task_repository.exists("auth.login")
        assert task_repository.find_by_id("auth.login") == task
        assert task_repository.find_by_id("missing") is None

    def test_index_layout(self, task_repository: TaskRepository, store):
        task_repository.save(make_task("auth.login"))

        index = json.loads(store.read_text(INDEX_FILE))

        assert index["version"] == "1.0.0"
        assert "updatedAt" in index
        assert index["metadata"] == {}
        assert index["tasks"]["auth.login"]["estimatedMinutes"] == 30

    def test_save_writes_presentation_file(self, task_repository: TaskRepository, store):
        task_repository.save(make_task("auth.login"))

        content = store.read_text("tasks/auth/auth.login.md")
        assert content.startswith("---\n")
        assert "# Task auth.login" in content

    def test_update_keeps_position(self, task_repository: TaskRepository):
        for task_id in ["a.one", "b.two", "c.three"]:
            task_repository.save(make_task(task_id))

        set_status(task_repository, "a.one", TaskStatus.IN_PROGRESS)

        assert [t.id for t in task_repository.find_all()] == ["a.one", "b.two", "c.three"]

    def test_find_all_with_filter(self, task_repository: TaskRepository):
        task_repository.save(make_task("auth.login", priority=1))
        task_repository.save(make_task("auth.logout", priority=2))
        task_repository.save(make_task("db.schema", priority=1))
        set_status(task_repository, "db.schema", TaskStatus.IN_PROGRESS)

        by_module = task_repository.find_all(TaskFilter(module="auth"))
        by_status = task_repository.find_all(TaskFilter(status=TaskStatus.PENDING, priority=1))

        assert [t.id for t in by_module] == ["auth.login", "auth.logout"]
        assert [t.id for t in by_status] == ["auth.login"]

    def test_save_many(self, task_repository: TaskRepository, store):
        task_repository.save_many([make_task("auth.login"), make_task("db.schema")])

        assert [t.id for t in task_repository.find_all()] == ["auth.login", "db.schema"]
        assert store.exists("tasks/db/db.schema.md")

    def test_failed_file_write_leaves_index_untouched(self, flaky_store, flaky_fs):
        repository = TaskRepository(flaky_store)
        flaky_fs.fail("write_bytes", permanent_error())

        with pytest.raises(PermissionError):
            repository.save(make_task("auth.login"))

        assert repository.find_by_id("auth.login") is None
        assert not flaky_store.exists(INDEX_FILE)

    def test_delete(self, task_repository: TaskRepository, store):
        task_repository.save(make_task("auth.login"))

        assert task_repository.delete("auth.login") is True
        assert task_repository.delete("auth.login") is False
        assert not store.exists("tasks/auth/auth.login.md")
        assert task_repository.find_all() == []

    def test_metadata(self, task_repository: TaskRepository):
        task_repository.save(make_task("auth.login"))
        task_repository.update_metadata(language="python", build="pytest")
        task_repository.update_metadata(projectGoal="ship auth")

        assert task_repository.get_metadata() == {
            "language": "python",
            "build": "pytest",
            "projectGoal": "ship auth",
        }
        assert task_repository.exists("auth.login")

    def test_corrupt_index(self, task_repository: TaskRepository, store):
        store.write_text(INDEX_FILE, "{not json")

        with pytest.raises(CorruptRecordError):
            task_repository.find_all()

    def test_rebuild_index_from_files(self, task_repository: TaskRepository, store):
        task_repository.save(make_task("auth.login", acceptance_criteria=["a", "b"]))
        task_repository.save(make_task("db.schema", dependencies=["auth.login"]))
        store.remove(INDEX_FILE)
        task_repository.update_metadata(language="python")

        found = task_repository.rebuild_index()

        assert found == ["auth.login", "db.schema"]
        assert task_repository.find_by_id("db.schema").dependencies == ["auth.login"]
        assert task_repository.find_by_id("auth.login").acceptance_criteria == ["a", "b"]
        assert task_repository.get_metadata() == {"language": "python"}


class TestFindNext:
    """Test next-task selection."""

    def test_empty_repository(self, task_repository: TaskRepository):
        assert task_repository.find_next() is None

    def test_dependency_before_priority(self, task_repository: TaskRepository):
        task_repository.save(make_task("t1", module="core", priority=2))
        task_repository.save(make_task("t2", module="core", priority=1, dependencies=["t1"]))

        assert task_repository.find_next().id == "t1"

        set_status(task_repository, "t1", TaskStatus.COMPLETED)

        assert task_repository.find_next().id == "t2"

    def test_lowest_priority_value_wins(self, task_repository: TaskRepository):
        task_repository.save(make_task("a.low", priority=5))
        task_repository.save(make_task("b.high", priority=1))
        task_repository.save(make_task("c.mid", priority=3))

        assert task_repository.find_next().id == "b.high"

    def test_ties_broken_by_insertion_order(self, task_repository: TaskRepository):
        task_repository.save(make_task("z.first", priority=2))
        task_repository.save(make_task("a.second", priority=2))

        assert task_repository.find_next().id == "z.first"

    def test_missing_dependency_is_unmet(self, task_repository: TaskRepository):
        task_repository.save(make_task("auth.login", dependencies=["does.not.exist"]))

        assert task_repository.find_next() is None

    def test_failed_dependency_blocks(self, task_repository: TaskRepository):
        task_repository.save(make_task("a.base"))
        task_repository.save(make_task("b.child", dependencies=["a.base"]))
        set_status(task_repository, "a.base", TaskStatus.FAILED)

        assert task_repository.find_next() is None

    def test_only_pending_tasks_selected(self, task_repository: TaskRepository):
        task_repository.save(make_task("a.busy", priority=1))
        task_repository.save(make_task("b.idle", priority=9))
        set_status(task_repository, "a.busy", TaskStatus.IN_PROGRESS)

        assert task_repository.find_next().id == "b.idle"


class TestTaskFile:
    """Test Markdown rendering and parsing."""

    def test_render_layout(self):
        task = make_task(
            "auth.login",
            acceptance_criteria=["Form renders", "Errors shown"],
            dependencies=["db.schema"],
            notes="check mobile",
        )

        content = render_task_file(task)
        front_matter = yaml.safe_load(content.split("---\n")[1])

        assert front_matter["id"] == "auth.login"
        assert front_matter["dependencies"] == ["db.schema"]
        assert "startedAt" not in front_matter
        assert "1. Form renders\n2. Errors shown" in content
        assert "## Notes\ncheck mobile" in content

    def test_parse_round_trip(self):
        task = make_task("auth.login", acceptance_criteria=["one", "two"], notes="a note")
        task.start()

        assert parse_task_file(render_task_file(task)) == task

    def test_multiline_description_survives(self):
        task = make_task("auth.login", description="Login form\nwith remember-me checkbox")

        assert parse_task_file(render_task_file(task)) == task

    def test_notes_with_headings_survive(self):
        task = make_task(
            "auth.login",
            acceptance_criteria=["1. already numbered"],
            notes="first line\n## Not a section\nlast line",
        )

        assert parse_task_file(render_task_file(task)) == task

    def test_rebuild_keeps_multiline_fields(self, task_repository: TaskRepository, store):
        task = make_task("auth.login", description="Line one\nLine two", notes="## heading")
        task_repository.save(task)
        store.remove(INDEX_FILE)

        task_repository.rebuild_index()

        assert task_repository.find_by_id("auth.login") == task

    def test_parse_hand_written_body(self):
        content = (
            "---\nid: auth.login\nmodule: auth\n---\n\n"
            "# Login form\n\n## Acceptance Criteria\n1. renders\n2. validates\n\n"
            "## Notes\ncheck mobile\n"
        )

        task = parse_task_file(content)

        assert task.description == "Login form"
        assert task.acceptance_criteria == ["renders", "validates"]
        assert task.notes == "check mobile"

    def test_parse_rejects_missing_front_matter(self):
        with pytest.raises(ValueError):
            parse_task_file("# Just a heading\n")


class TestStateRepository:
    """Test the single-record state repository."""

    def test_missing_state(self, state_repository: StateRepository):
        assert state_repository.get() is None
        assert not state_repository.exists()

    def test_save_get_clear(self, state_repository: StateRepository):
        state = WorkflowState.create_new()
        state_repository.save(state)

        assert state_repository.exists()
        assert state_repository.get() == state

        state_repository.clear()
        assert state_repository.get() is None

    def test_corrupt_state(self, state_repository: StateRepository, store):
        store.write_text("state.json", '{"phase": "nonsense"}')

        with pytest.raises(CorruptRecordError):
            state_repository.get()
