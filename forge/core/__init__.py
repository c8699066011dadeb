"""Core Forge functionality."""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerMetrics,
    CircuitState,
)
from .exceptions import (
    BatchAbortedError,
    CircuitOpenError,
    ConfigurationError,
    CorruptRecordError,
    DuplicateTaskError,
    ForgeError,
    InvalidTaskStateError,
    InvalidTransitionError,
    NotFoundError,
    StateNotFoundError,
    StoreIOError,
    TaskNotFoundError,
    TaskValidationError,
)
from .retry import RetryConfig, calculate_retry_delay, is_transient_error, with_retry
from .task import Task, TaskStatus, is_terminal_status
from .workflow_state import (
    Phase,
    Prd,
    WorkflowError,
    WorkflowState,
    get_valid_next_phases,
    is_terminal_phase,
)

__all__ = [
    # Exceptions
    "ForgeError",
    "ConfigurationError",
    "TaskValidationError",
    "NotFoundError",
    "TaskNotFoundError",
    "StateNotFoundError",
    "DuplicateTaskError",
    "InvalidTaskStateError",
    "InvalidTransitionError",
    "BatchAbortedError",
    "CircuitOpenError",
    "StoreIOError",
    "CorruptRecordError",
    # Retry
    "RetryConfig",
    "with_retry",
    "is_transient_error",
    "calculate_retry_delay",
    # Tasks
    "Task",
    "TaskStatus",
    "is_terminal_status",
    # Workflow state
    "Phase",
    "Prd",
    "WorkflowError",
    "WorkflowState",
    "get_valid_next_phases",
    "is_terminal_phase",
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerMetrics",
    "CircuitState",
]
