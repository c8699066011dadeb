"""Task lifecycle operations on top of the task repository."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..config.models import TaskDefaults
from ..core.clock import utc_now
from ..core.exceptions import (
    BatchAbortedError,
    DuplicateTaskError,
    ForgeError,
    InvalidTaskStateError,
    TaskNotFoundError,
    TaskValidationError,
)
from ..core.task import Task, TaskStatus
from ..repositories.state_repository import StateRepository
from ..repositories.task_repository import TaskFilter, TaskRepository
from ..storage.store import PersistentStore
from ..tracking.activity_logger import Logger, NullLogger

PROGRESS_LOG = "progress.log"

BatchAction = Literal["start", "complete", "done", "fail"]
SortKey = Literal["priority", "created", "id"]


class CreateTaskInput(BaseModel):
    """Fields accepted by :meth:`TaskService.create_task`."""

    id: str
    module: str
    description: str
    priority: Optional[int] = None
    acceptance_criteria: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    estimated_minutes: Optional[int] = None


class BatchOperation(BaseModel):
    """One entry of a batch request; ``done`` is an alias of ``complete``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    action: BatchAction
    task_id: str
    note: Optional[str] = None
    reason: Optional[str] = None

    @property
    def normalized_action(self) -> str:
        return "complete" if self.action == "done" else self.action


class BatchResult(BaseModel):
    """Per-operation outcome of a batch."""

    action: str
    task_id: str
    success: bool
    error: Optional[str] = None
    error_kind: Optional[str] = None
    task: Optional[Task] = None


# Status each lifecycle action requires, and the status it produces
_REQUIRED_STATUS: Dict[str, TaskStatus] = {
    "start": TaskStatus.PENDING,
    "complete": TaskStatus.IN_PROGRESS,
    "fail": TaskStatus.IN_PROGRESS,
}
_RESULT_STATUS: Dict[str, TaskStatus] = {
    "start": TaskStatus.IN_PROGRESS,
    "complete": TaskStatus.COMPLETED,
    "fail": TaskStatus.FAILED,
}


class TaskService:
    """
    Creates, queries and advances tasks.

    The state repository is injected so that starting a task can record it
    as the workflow's current task, and finishing it can clear that pointer.
    Non-atomic batches and every load-modify-save here assume a single
    writer per workspace.
    """

    def __init__(
        self,
        task_repository: TaskRepository,
        state_repository: StateRepository,
        store: PersistentStore,
        logger: Optional[Logger] = None,
        defaults: Optional[TaskDefaults] = None,
    ):
        self.task_repository = task_repository
        self.state_repository = state_repository
        self.store = store
        self.logger: Logger = logger or NullLogger()
        self.defaults = defaults or TaskDefaults()

    def create_task(
        self,
        id: str,
        module: str,
        description: str,
        priority: Optional[int] = None,
        acceptance_criteria: Optional[List[str]] = None,
        dependencies: Optional[List[str]] = None,
        estimated_minutes: Optional[int] = None,
    ) -> Task:
        """
        Create a pending task.

        Raises:
            TaskValidationError: If a required field is blank or invalid
            DuplicateTaskError: If the id is already taken
        """
        for name, value in (("id", id), ("module", module), ("description", description)):
            if not value or not value.strip():
                raise TaskValidationError(f"Task {name} is required")

        try:
            task = Task(
                id=id,
                module=module,
                description=description,
                priority=priority if priority is not None else self.defaults.default_priority,
                acceptance_criteria=acceptance_criteria or [],
                dependencies=dependencies or [],
                estimated_minutes=(
                    estimated_minutes
                    if estimated_minutes is not None
                    else self.defaults.default_estimated_minutes
                ),
                status=TaskStatus.PENDING,
            )
        except ValidationError as e:
            raise TaskValidationError(f"Invalid task {id!r}: {_first_error(e)}") from e

        if self.task_repository.exists(task.id):
            raise DuplicateTaskError(task.id)

        self.task_repository.save(task)
        self.logger.info(f"Task created: {task.id}", task_id=task.id, module=task.module)
        return task

    def create_from_input(self, data: CreateTaskInput) -> Task:
        return self.create_task(**data.model_dump())

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.task_repository.find_by_id(task_id)

    def initialize_project(
        self,
        project_goal: Optional[str] = None,
        language: Optional[str] = None,
        framework: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Record project-level metadata in the task index.

        ``language`` and ``framework`` are stored together as
        ``languageConfig``; passing either one sets both, with an empty
        framework when only the language is given.

        Returns:
            The merged index metadata
        """
        values: Dict[str, Any] = {}
        if project_goal is not None:
            if not project_goal.strip():
                raise TaskValidationError("Project goal cannot be empty")
            values["projectGoal"] = project_goal.strip()
        if language is not None or framework is not None:
            values["languageConfig"] = {
                "language": (language or "python").strip(),
                "framework": (framework or "").strip(),
            }
        metadata = self.task_repository.update_metadata(**values)
        self.logger.info("Task index initialized", keys=sorted(values))
        return metadata

    def require_task(self, task_id: str) -> Task:
        task = self.task_repository.find_by_id(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def list_tasks(
        self,
        status: Optional[TaskStatus] = None,
        module: Optional[str] = None,
        priority: Optional[int] = None,
        ready: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
        sort: Optional[SortKey] = None,
    ) -> List[Task]:
        """
        List tasks, optionally filtered, sorted and paginated.

        Args:
            status: Only tasks in this status
            module: Only tasks of this module
            priority: Only tasks with this priority
            ready: Only pending tasks whose dependencies are all completed
            limit: Maximum number of tasks returned
            offset: Number of tasks skipped after sorting
            sort: ``priority``, ``created`` or ``id``; insertion order if None

        Returns:
            Matching tasks
        """
        all_tasks = self.task_repository.find_all()
        task_filter = TaskFilter(status=status, module=module, priority=priority)
        tasks = [task for task in all_tasks if task_filter.matches(task)]

        if ready:
            completed_ids = {t.id for t in all_tasks if t.status == TaskStatus.COMPLETED}
            tasks = [
                task
                for task in tasks
                if task.status == TaskStatus.PENDING and not task.is_blocked(completed_ids)
            ]

        # sorted() is stable, so equal keys keep insertion order
        if sort == "priority":
            tasks = sorted(tasks, key=lambda t: t.priority)
        elif sort == "created":
            tasks = sorted(tasks, key=lambda t: t.created_at)
        elif sort == "id":
            tasks = sorted(tasks, key=lambda t: t.id)

        tasks = tasks[max(offset, 0):]
        if limit is not None:
            tasks = tasks[: max(limit, 0)]
        return tasks

    def get_next_task(self) -> Optional[Task]:
        return self.task_repository.find_next()

    def start_task(self, task_id: str) -> Task:
        """
        Move a pending task to in_progress and make it the current task.

        Raises:
            TaskNotFoundError: If the task does not exist
            InvalidTaskStateError: If the task is not pending
        """
        task = self.require_task(task_id)
        task.start()
        self.task_repository.save(task)

        state = self.state_repository.get()
        if state is not None:
            state.set_current_task(task.id)
            self.state_repository.save(state)

        self._append_progress("STARTED", task.id)
        self.logger.info(f"Task started: {task.id}", task_id=task.id)
        return task

    def complete_task(self, task_id: str, note: Optional[str] = None) -> Task:
        """
        Move an in_progress task to completed.

        Raises:
            TaskNotFoundError: If the task does not exist
            InvalidTaskStateError: If the task is not in progress
        """
        task = self.require_task(task_id)
        task.complete()
        if note:
            task.append_note(note)
        self.task_repository.save(task)
        self._release_current_task(task.id)

        self._append_progress("COMPLETED", task.id, note)
        self.logger.info(f"Task completed: {task.id}", task_id=task.id)
        return task

    def fail_task(self, task_id: str, reason: str) -> Task:
        """
        Move an in_progress task to failed, recording ``reason`` in its notes.

        Raises:
            TaskValidationError: If ``reason`` is blank
            TaskNotFoundError: If the task does not exist
            InvalidTaskStateError: If the task is not in progress
        """
        if not reason or not reason.strip():
            raise TaskValidationError("A failure reason is required")

        task = self.require_task(task_id)
        task.fail()
        task.append_note(f"Failed: {reason.strip()}")
        self.task_repository.save(task)
        self._release_current_task(task.id)

        self._append_progress("FAILED", task.id, reason.strip())
        self.logger.warning(f"Task failed: {task.id}", task_id=task.id, reason=reason)
        return task

    def batch_operations(
        self, operations: List[BatchOperation], atomic: bool = False
    ) -> List[BatchResult]:
        """
        Apply several lifecycle operations in order.

        Non-atomic: each operation is applied on its own; a failure is
        reported in its result and does not stop later operations.

        Atomic: every operation is first checked against a simulated status
        map that reflects the earlier operations of the batch. Any violation
        aborts the whole batch before anything is written.

        Raises:
            BatchAbortedError: In atomic mode, listing every violation
        """
        if atomic:
            violations = self._validate_batch(operations)
            if violations:
                raise BatchAbortedError(violations)

        results: List[BatchResult] = []
        for op in operations:
            try:
                task = self._apply(op)
            except ForgeError as e:
                results.append(
                    BatchResult(
                        action=op.action,
                        task_id=op.task_id,
                        success=False,
                        error=str(e),
                        error_kind=e.kind,
                    )
                )
                continue
            results.append(
                BatchResult(action=op.action, task_id=op.task_id, success=True, task=task)
            )

        failed = sum(1 for r in results if not r.success)
        self.logger.info(
            "Batch applied",
            operation_count=len(results),
            failed_count=failed,
            atomic=atomic,
        )
        return results

    def _apply(self, op: BatchOperation) -> Task:
        action = op.normalized_action
        if action == "start":
            return self.start_task(op.task_id)
        if action == "complete":
            return self.complete_task(op.task_id, op.note)
        return self.fail_task(op.task_id, op.reason or op.note or "")

    def _validate_batch(self, operations: List[BatchOperation]) -> List[Dict[str, str]]:
        statuses = {task.id: task.status for task in self.task_repository.find_all()}
        violations: List[Dict[str, str]] = []

        for op in operations:
            action = op.normalized_action
            current = statuses.get(op.task_id)
            error: Optional[str] = None

            if current is None:
                error = str(TaskNotFoundError(op.task_id))
            elif current != _REQUIRED_STATUS[action]:
                error = str(
                    InvalidTaskStateError(
                        op.task_id, action, current.value, _REQUIRED_STATUS[action].value
                    )
                )
            elif action == "fail" and not (op.reason or op.note or "").strip():
                error = "A failure reason is required"

            if error is not None:
                violations.append({"action": op.action, "task_id": op.task_id, "error": error})
            else:
                statuses[op.task_id] = _RESULT_STATUS[action]

        return violations

    def _release_current_task(self, task_id: str) -> None:
        state = self.state_repository.get()
        if state is not None and state.current_task == task_id:
            state.set_current_task(None)
            self.state_repository.save(state)

    def _append_progress(self, event: str, task_id: str, details: Optional[str] = None) -> None:
        line = f"[{utc_now().isoformat()}] {event}: {task_id}"
        if details:
            line += f" - {details}"
        self.store.append_text(PROGRESS_LOG, line + "\n")


def _first_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
