"""Aggregated progress report over tasks and workflow state."""

from datetime import datetime
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, Field

from ..core.task import Task, TaskStatus
from ..repositories.state_repository import StateRepository
from ..repositories.task_repository import TaskRepository


class TaskCounts(BaseModel):
    """Task counts for the whole project or one module."""

    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    failed: int = 0
    blocked: int = 0
    completion_percentage: int = 0


class ProjectStatus(BaseModel):
    """Snapshot returned by :meth:`StatusService.get_project_status`."""

    phase: str = "none"
    current_task: Optional[str] = None
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    error_count: int = 0
    overall: TaskCounts = Field(default_factory=TaskCounts)
    modules: Dict[str, TaskCounts] = Field(default_factory=dict)


class StatusService:
    def __init__(self, task_repository: TaskRepository, state_repository: StateRepository):
        self.task_repository = task_repository
        self.state_repository = state_repository

    def get_project_status(self) -> ProjectStatus:
        """
        Build the project status report.

        A pending task counts as blocked when any of its dependencies is
        missing or not completed. The phase is ``none`` when no workflow
        state exists.
        """
        tasks = self.task_repository.find_all()
        completed_ids = {t.id for t in tasks if t.status == TaskStatus.COMPLETED}

        by_module: Dict[str, list] = {}
        for task in tasks:
            by_module.setdefault(task.module, []).append(task)

        status = ProjectStatus(
            overall=_count(tasks, completed_ids),
            modules={
                module: _count(module_tasks, completed_ids)
                for module, module_tasks in sorted(by_module.items())
            },
        )

        state = self.state_repository.get()
        if state is not None:
            status.phase = state.phase.value
            status.current_task = state.current_task
            status.started_at = state.started_at
            status.updated_at = state.updated_at
            status.error_count = len(state.errors)

        return status


def _count(tasks: Iterable[Task], completed_ids: set) -> TaskCounts:
    counts = TaskCounts()
    for task in tasks:
        counts.total += 1
        if task.status == TaskStatus.PENDING:
            counts.pending += 1
            if task.is_blocked(completed_ids):
                counts.blocked += 1
        elif task.status == TaskStatus.IN_PROGRESS:
            counts.in_progress += 1
        elif task.status == TaskStatus.COMPLETED:
            counts.completed += 1
        elif task.status == TaskStatus.FAILED:
            counts.failed += 1

    if counts.total:
        counts.completion_percentage = round(counts.completed * 100 / counts.total)
    return counts
