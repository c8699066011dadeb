"""Repositories over the workspace store."""

from .state_repository import StateRepository
from .task_repository import TaskFilter, TaskIndex, TaskRepository

__all__ = ["StateRepository", "TaskFilter", "TaskIndex", "TaskRepository"]
