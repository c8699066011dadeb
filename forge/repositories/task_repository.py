"""Index-backed task repository."""

import json
import posixpath
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..core.clock import utc_now
from ..core.exceptions import CorruptRecordError
from ..core.task import Task, TaskStatus
from ..storage.store import PersistentStore
from .task_file import parse_task_file, render_task_file

TASKS_DIR = "tasks"
INDEX_FILE = posixpath.join(TASKS_DIR, "index.json")
INDEX_VERSION = "1.0.0"


class TaskIndex(BaseModel):
    """Contents of ``tasks/index.json``.

    ``tasks`` keeps insertion order, which is the tie-breaker for tasks of
    equal priority. ``metadata`` is an opaque blob owned by collaborators
    (detected language, build commands, project goal).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    version: str = INDEX_VERSION
    updated_at: datetime = Field(default_factory=utc_now)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    tasks: Dict[str, Task] = Field(default_factory=dict)


class TaskFilter(BaseModel):
    """Equality filters for :meth:`TaskRepository.find_all`."""

    status: Optional[TaskStatus] = None
    module: Optional[str] = None
    priority: Optional[int] = None

    def matches(self, task: Task) -> bool:
        if self.status is not None and task.status != self.status:
            return False
        if self.module is not None and task.module != self.module:
            return False
        if self.priority is not None and task.priority != self.priority:
            return False
        return True


class TaskRepository:
    """
    Keyed collection of tasks.

    The index is the source of truth for every query. Each save also writes
    a Markdown presentation file to ``tasks/<module>/<id>.md``.
    """

    def __init__(self, store: PersistentStore):
        self.store = store

    def find_by_id(self, task_id: str) -> Optional[Task]:
        return self._read_index().tasks.get(task_id)

    def exists(self, task_id: str) -> bool:
        return task_id in self._read_index().tasks

    def find_all(self, task_filter: Optional[TaskFilter] = None) -> List[Task]:
        """Return tasks matching ``task_filter`` in insertion order."""
        tasks = list(self._read_index().tasks.values())
        if task_filter is None:
            return tasks
        return [task for task in tasks if task_filter.matches(task)]

    def save(self, task: Task) -> None:
        """Insert or update a task; updates keep the original index position.

        The presentation file is written first, so a failed write never
        leaves a task in the index.
        """
        index = self._read_index()
        self.store.write_text(self.task_file_path(task), render_task_file(task))
        index.tasks[task.id] = task
        self._write_index(index)

    def save_many(self, tasks: List[Task]) -> None:
        """Write several tasks with a single index write."""
        if not tasks:
            return
        index = self._read_index()
        for task in tasks:
            self.store.write_text(self.task_file_path(task), render_task_file(task))
            index.tasks[task.id] = task
        self._write_index(index)

    def delete(self, task_id: str) -> bool:
        """
        Delete a task and its presentation file.

        Returns:
            True if deleted, False if not found
        """
        index = self._read_index()
        task = index.tasks.pop(task_id, None)
        if task is None:
            return False
        self._write_index(index)
        self.store.remove(self.task_file_path(task))
        return True

    def find_next(self) -> Optional[Task]:
        """
        Select the next task to work on.

        Candidates are pending tasks whose every dependency resolves to a
        completed task; a dependency id that does not exist counts as unmet.
        The lowest priority value wins, ties go to the earliest inserted.

        Returns:
            The selected task, or None if nothing is eligible
        """
        tasks = self._read_index().tasks
        completed_ids = {
            task_id for task_id, task in tasks.items() if task.status == TaskStatus.COMPLETED
        }

        best: Optional[Task] = None
        for task in tasks.values():
            if task.status != TaskStatus.PENDING or task.is_blocked(completed_ids):
                continue
            # Strict comparison keeps the earliest task among equal priorities
            if best is None or task.priority < best.priority:
                best = task
        return best

    def get_metadata(self) -> Dict[str, Any]:
        return dict(self._read_index().metadata)

    def update_metadata(self, **values: Any) -> Dict[str, Any]:
        """Merge ``values`` into the index metadata and return the result."""
        index = self._read_index()
        index.metadata.update(values)
        self._write_index(index)
        return dict(index.metadata)

    def rebuild_index(self) -> List[str]:
        """
        Rebuild the index from the Markdown files under ``tasks/``.

        Existing metadata is preserved. Files that fail to parse are skipped.

        Returns:
            Ids of the tasks found, in module then file name order
        """
        index = self._read_index() if self.store.exists(INDEX_FILE) else TaskIndex()
        index.tasks = {}
        for module in self.store.list(TASKS_DIR):
            module_dir = posixpath.join(TASKS_DIR, module)
            if not self.store.is_dir(module_dir):
                continue
            for name in self.store.list(module_dir):
                if not name.endswith(".md"):
                    continue
                try:
                    task = parse_task_file(self.store.read_text(posixpath.join(module_dir, name)))
                except ValueError:
                    continue
                index.tasks[task.id] = task
        self._write_index(index)
        return list(index.tasks)

    @staticmethod
    def task_file_path(task: Task) -> str:
        return posixpath.join(TASKS_DIR, task.module, f"{task.id}.md")

    def _read_index(self) -> TaskIndex:
        if not self.store.exists(INDEX_FILE):
            return TaskIndex()

        content = self.store.read_text(INDEX_FILE)
        try:
            return TaskIndex.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as e:
            raise CorruptRecordError(INDEX_FILE, str(e)) from e

    def _write_index(self, index: TaskIndex) -> None:
        index.updated_at = utc_now()
        self.store.write_text(
            INDEX_FILE, json.dumps(index.model_dump(mode="json", by_alias=True), indent=2)
        )
