"""Task model, status definitions and lifecycle transitions."""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .clock import not_before, utc_now
from .exceptions import InvalidTaskStateError

TASK_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+(\.[A-Za-z0-9_-]+)*$")

# Module names become a directory under tasks/, so no separators or ".."
MODULE_PATTERN = TASK_ID_PATTERN


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


# Valid status transitions
VALID_TRANSITIONS: Dict[TaskStatus, List[TaskStatus]] = {
    TaskStatus.PENDING: [TaskStatus.IN_PROGRESS],
    TaskStatus.IN_PROGRESS: [TaskStatus.COMPLETED, TaskStatus.FAILED],
    TaskStatus.COMPLETED: [],  # Terminal state
    TaskStatus.FAILED: [],  # Terminal state
}


def is_valid_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """Check if a status transition is valid."""
    return to_status in VALID_TRANSITIONS.get(from_status, [])


def is_terminal_status(status: TaskStatus) -> bool:
    """Check if a status is terminal (no further transitions allowed)."""
    return len(VALID_TRANSITIONS.get(status, [])) == 0


class Task(BaseModel):
    """An atomic unit of work with explicit dependencies and priority.

    Serialized with camelCase keys (``acceptanceCriteria``, ``startedAt``)
    so the index stays readable by collaborators written in other tools.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., frozen=True, description="Unique dotted task identifier")
    module: str = Field(..., description="Module the task belongs to")
    priority: int = Field(default=1, description="Lower value = more urgent")
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    description: str = Field(..., description="What the task delivers")
    acceptance_criteria: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    estimated_minutes: int = Field(default=30, description="Estimated effort")
    created_at: datetime = Field(default_factory=utc_now, frozen=True)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    notes: str = ""

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate task ID format."""
        v = v.strip()
        if not v:
            raise ValueError("Task ID cannot be empty")
        if not TASK_ID_PATTERN.match(v):
            raise ValueError(
                "Task ID must be dot-separated segments of letters, numbers, "
                "hyphens and underscores (e.g. 'auth.login')"
            )
        return v

    @field_validator("module", "description")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Value cannot be empty")
        return v.strip()

    @field_validator("module")
    @classmethod
    def validate_module(cls, v: str) -> str:
        if not MODULE_PATTERN.match(v):
            raise ValueError(
                "Module must be letters, numbers, hyphens, underscores and "
                "single dots (no '/' or '..')"
            )
        return v

    @field_validator("estimated_minutes")
    @classmethod
    def validate_estimate(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("estimated_minutes must be positive")
        return v

    @field_validator("dependencies")
    @classmethod
    def validate_dependencies(cls, v: List[str]) -> List[str]:
        """Drop blanks and duplicates, keeping first-seen order."""
        seen: Dict[str, None] = {}
        for dep in v:
            dep = dep.strip()
            if dep:
                seen.setdefault(dep, None)
        return list(seen)

    def can_start(self) -> bool:
        return self.status == TaskStatus.PENDING

    def start(self) -> None:
        """Move a pending task to in_progress."""
        self._advance(TaskStatus.IN_PROGRESS, "start")
        self.started_at = not_before(self.created_at)

    def complete(self) -> None:
        """Move an in_progress task to completed."""
        self._advance(TaskStatus.COMPLETED, "complete")
        self.completed_at = not_before(self.started_at)

    def fail(self) -> None:
        """Move an in_progress task to failed."""
        self._advance(TaskStatus.FAILED, "fail")
        self.failed_at = not_before(self.started_at)

    def _advance(self, to_status: TaskStatus, action: str) -> None:
        if not is_valid_transition(self.status, to_status):
            expected = {
                TaskStatus.IN_PROGRESS: TaskStatus.PENDING.value,
            }.get(to_status, TaskStatus.IN_PROGRESS.value)
            raise InvalidTaskStateError(self.id, action, self.status.value, expected)
        self.status = to_status

    def append_note(self, note: str) -> None:
        """Append a line of free text to the task notes."""
        note = note.strip()
        if not note:
            return
        self.notes = f"{self.notes}\n{note}" if self.notes else note

    def is_blocked(self, completed_ids: Iterable[str]) -> bool:
        """Check if any dependency is missing from ``completed_ids``."""
        completed = set(completed_ids)
        return any(dep not in completed for dep in self.dependencies)

    def is_terminal(self) -> bool:
        return is_terminal_status(self.status)

    def has_dependencies(self) -> bool:
        return len(self.dependencies) > 0

    def actual_duration_minutes(self) -> Optional[int]:
        """Minutes from start to completion/failure, None if unfinished."""
        end_time = self.completed_at or self.failed_at
        if self.started_at is None or end_time is None:
            return None
        return round((end_time - self.started_at).total_seconds() / 60)

    def is_over_estimate(self) -> bool:
        actual = self.actual_duration_minutes()
        if not actual:
            return False
        return actual > self.estimated_minutes

    def completion_percentage(self) -> int:
        """Status-based progress: 0 pending/failed, 50 in progress, 100 done."""
        return {TaskStatus.IN_PROGRESS: 50, TaskStatus.COMPLETED: 100}.get(self.status, 0)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Reconstruct a task from :meth:`to_dict` output."""
        return cls.model_validate(data)
