"""Forge services."""

from .factory import ServiceContainer, create_services
from .healing_service import HealingOperation, HealingResult, HealingService, HealingStats
from .state_service import ArchiveResult, StateService
from .status_service import ProjectStatus, StatusService
from .task_service import BatchOperation, BatchResult, CreateTaskInput, TaskService

__all__ = [
    "ServiceContainer",
    "create_services",
    "HealingOperation",
    "HealingResult",
    "HealingService",
    "HealingStats",
    "ArchiveResult",
    "StateService",
    "ProjectStatus",
    "StatusService",
    "BatchOperation",
    "BatchResult",
    "CreateTaskInput",
    "TaskService",
]
