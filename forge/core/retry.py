"""Retry with exponential backoff for transient OS-level failures.

Only a small set of error classes is considered transient (resource busy,
transient not-found, temporarily unavailable, timeout). Everything else is
re-raised on the first occurrence.
"""

import errno
import time
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Optional, TypeVar

from .exceptions import StoreIOError

T = TypeVar("T")

TRANSIENT_ERRNOS: FrozenSet[int] = frozenset(
    {
        errno.EBUSY,
        errno.ENOENT,
        errno.EAGAIN,
        errno.EWOULDBLOCK,
        errno.ETIMEDOUT,
    }
)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    """Maximum number of attempts, including the first one"""

    initial_delay: float = 0.1
    """Delay before the first retry, in seconds"""

    max_delay: float = 5.0
    """Upper bound for a single delay, in seconds"""

    backoff_multiplier: float = 2.0
    """Factor applied to the delay after each retry"""

    retryable_errnos: FrozenSet[int] = field(default_factory=lambda: TRANSIENT_ERRNOS)
    """errno values treated as transient"""


def is_transient_error(error: BaseException, retryable_errnos: FrozenSet[int] = TRANSIENT_ERRNOS) -> bool:
    """Check if an exception belongs to a transient OS failure class.

    Args:
        error: Exception raised by a filesystem primitive
        retryable_errnos: errno values considered transient

    Returns:
        True if the operation is worth retrying
    """
    if isinstance(error, (TimeoutError, BlockingIOError)):
        return True
    if isinstance(error, OSError) and error.errno is not None:
        return error.errno in retryable_errnos
    return False


def calculate_retry_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay before the retry that follows ``attempt``.

    Args:
        attempt: Number of attempts made so far (1-based)
        config: Retry configuration

    Returns:
        Delay in seconds, capped at ``config.max_delay``
    """
    delay = config.initial_delay * (config.backoff_multiplier ** (attempt - 1))
    return min(delay, config.max_delay)


def with_retry(
    operation: Callable[[], T],
    config: Optional[RetryConfig] = None,
    description: str = "operation",
    path: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation`` and retry it on transient failures.

    Args:
        operation: Zero-argument callable to execute
        config: Retry configuration (uses defaults if None)
        description: Operation name used in the final error
        path: Path the operation works on, used in the final error
        sleep: Sleep function, injectable for tests

    Returns:
        Whatever ``operation`` returns

    Raises:
        StoreIOError: If every attempt failed with a transient error
        Exception: Any non-transient error, unchanged
    """
    config = config or RetryConfig()

    for attempt in range(1, config.max_attempts + 1):
        try:
            return operation()
        except Exception as e:
            if not is_transient_error(e, config.retryable_errnos):
                raise
            if attempt == config.max_attempts:
                raise StoreIOError(description, path, attempt, e) from e
            sleep(calculate_retry_delay(attempt, config))

    # max_attempts < 1
    raise StoreIOError(description, path, 0)
