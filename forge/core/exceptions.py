"""Forge exception classes.

Every error carries a stable ``kind`` tag so the CLI layer can map it to an
exit code and a remediation hint without string matching.
"""

from typing import Any, Dict, Iterable, List, Optional


class ForgeError(Exception):
    """Base exception for all Forge errors."""

    kind = "Error"
    hint = "Re-run with --verbose for details."


class ConfigurationError(ForgeError):
    """Raised when configuration is invalid."""

    kind = "Configuration"
    hint = "Check .forge/config.yaml against 'forge init' defaults."


class InvalidInputError(ForgeError):
    """Raised when command input cannot be parsed or validated."""

    kind = "InvalidInput"
    hint = "Check the option values and JSON arguments."


class TaskValidationError(InvalidInputError):
    """Raised when task input fails validation."""

    hint = "Provide a non-empty id, module and description."


class NotFoundError(ForgeError):
    """Raised when a requested record does not exist."""

    kind = "NotFound"


class TaskNotFoundError(NotFoundError):
    """Raised when a task id is not in the index."""

    hint = "Run 'forge tasks list' to see known task ids."

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class StateNotFoundError(NotFoundError):
    """Raised when the workflow state has not been initialized."""

    hint = "Run 'forge init' to create the workflow state."

    def __init__(self, message: str = "State not found. Initialize state first."):
        super().__init__(message)


class DuplicateTaskError(ForgeError):
    """Raised when creating a task whose id is already taken."""

    kind = "DuplicateTask"
    hint = "Choose a different task id or inspect the existing task."

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task already exists: {task_id}")


class InvalidTaskStateError(ForgeError):
    """Raised when a lifecycle operation is applied to a task in the wrong status."""

    kind = "InvalidState"
    hint = "Check the task status with 'forge tasks get <id>'."

    def __init__(self, task_id: str, action: str, status: str, expected: str):
        self.task_id = task_id
        self.action = action
        self.status = status
        self.expected = expected
        super().__init__(
            f"Cannot {action} task {task_id}: current status is {status}. "
            f"Only {expected} tasks can be {_past_tense(action)}."
        )


class InvalidTransitionError(ForgeError):
    """Raised when an illegal workflow phase change is requested."""

    kind = "InvalidTransition"
    hint = "Use 'forge state get' to see the allowed next phases."

    def __init__(self, from_phase: str, to_phase: str, allowed: Iterable[str]):
        self.from_phase = from_phase
        self.to_phase = to_phase
        self.allowed: List[str] = list(allowed)
        allowed_list = ", ".join(self.allowed) if self.allowed else "none"
        super().__init__(
            f"Invalid phase transition: {from_phase} -> {to_phase}. "
            f"Allowed transitions from {from_phase}: {allowed_list}"
        )


class BatchAbortedError(ForgeError):
    """Raised when an atomic batch fails validation; nothing was applied."""

    kind = "InvalidState"
    hint = "Fix the listed operations and resubmit the batch."

    def __init__(self, violations: List[Dict[str, Any]]):
        self.violations = violations
        summary = "; ".join(
            f"{v['action']} {v['task_id']}: {v['error']}" for v in violations
        )
        super().__init__(
            f"Atomic batch aborted, {len(violations)} violation(s): {summary}"
        )


class CircuitOpenError(ForgeError):
    """Raised when the circuit breaker rejects a call without invoking it."""

    kind = "CircuitOpen"
    hint = "Wait for the breaker timeout or run 'forge circuit-breaker reset'."

    def __init__(self, message: str = "Circuit breaker is OPEN"):
        super().__init__(message)


class StoreIOError(ForgeError):
    """Raised when a store operation keeps failing after the retry budget."""

    kind = "IOError"
    hint = "Check permissions and free space in the workspace directory."

    def __init__(self, operation: str, path: str, attempts: int, cause: Optional[BaseException] = None):
        self.operation = operation
        self.path = path
        self.attempts = attempts
        super().__init__(
            f"Store {operation} failed for {path} after {attempts} attempt(s): {cause}"
        )


class CorruptRecordError(ForgeError):
    """Raised when a persisted record cannot be parsed."""

    kind = "CorruptRecord"
    hint = "Restore the file from an archive or remove it and re-initialize."

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Corrupt record in {path}: {reason}")


def _past_tense(action: str) -> str:
    return {"start": "started", "complete": "completed", "fail": "failed"}.get(
        action, f"{action}ed"
    )
