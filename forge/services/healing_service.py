"""Healing attempts for failed tasks, guarded by a circuit breaker."""

import json
import threading
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel, ValidationError

from ..core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerMetrics,
    CircuitState,
)
from ..core.clock import utc_now
from ..core.exceptions import CircuitOpenError, CorruptRecordError, ForgeError
from ..storage.store import PersistentStore
from ..tracking.activity_logger import Logger, NullLogger

TRANSITION_LOG = "circuit-breaker.log"
SNAPSHOT_FILE = "circuit-breaker.json"


class HealingOperation(Protocol):
    """A recovery action; returns False (or raises) when it did not heal."""

    def heal(self) -> bool: ...


class HealingResult(BaseModel):
    """Outcome of one healing attempt."""

    success: bool
    task_id: str
    attempt_number: int
    circuit_state: CircuitState
    error: Optional[str] = None


class HealingStats(BaseModel):
    """Counters since the service was created, plus the live breaker state."""

    total_attempts: int = 0
    successful_attempts: int = 0
    failed_attempts: int = 0
    rejected_attempts: int = 0
    circuit_open_count: int = 0
    circuit_state: CircuitState = CircuitState.CLOSED


class TransitionLogEntry(BaseModel):
    """One line of ``circuit-breaker.log``."""

    timestamp: datetime
    from_state: CircuitState
    to_state: CircuitState
    reason: str


class HealingService:
    """
    Runs healing operations through a shared circuit breaker.

    Attempts for different tasks may run concurrently. The breaker serializes
    its own state changes; the attempt counters and statistics are guarded by
    a separate lock, and the operation itself runs outside both.
    """

    def __init__(
        self,
        store: PersistentStore,
        logger: Optional[Logger] = None,
        breaker: Optional[CircuitBreaker] = None,
        config: Optional[CircuitBreakerConfig] = None,
        persist: bool = False,
    ):
        """
        Initialize the service.

        Args:
            store: Workspace store for the transition log and snapshot
            logger: Logger (discards output if None)
            breaker: Breaker to use (a new one from ``config`` if None)
            config: Breaker configuration when ``breaker`` is None
            persist: Save the breaker snapshot after every recorded outcome
        """
        self.store = store
        self.logger: Logger = logger or NullLogger()
        self.breaker = breaker or CircuitBreaker(config)
        self.persist = persist
        self.breaker.add_listener(self._on_transition)

        self._lock = threading.Lock()
        self._attempts: Dict[str, int] = {}
        self._stats = HealingStats()

    def attempt_healing(self, task_id: str, operation: HealingOperation) -> HealingResult:
        """
        Run ``operation.heal()`` for ``task_id`` under breaker protection.

        Failures of the operation (a False return or an exception) are
        recorded against the breaker and reported in the result; this method
        does not raise for them.

        Args:
            task_id: Task being healed
            operation: Object whose ``heal()`` performs the recovery

        Returns:
            HealingResult for this attempt
        """
        with self._lock:
            attempt_number = self._attempts.get(task_id, 0) + 1
            self._attempts[task_id] = attempt_number
            self._stats.total_attempts += 1

        try:
            self.breaker.before_call()
        except CircuitOpenError as e:
            with self._lock:
                self._stats.rejected_attempts += 1
                self._stats.failed_attempts += 1
            self.logger.warning(
                "Healing rejected: circuit open",
                task_id=task_id,
                attempt=attempt_number,
            )
            return self._result(False, task_id, attempt_number, str(e))

        error: Optional[str] = None
        try:
            healed = operation.heal()
        except Exception as e:
            healed = False
            error = str(e) or type(e).__name__
            self.logger.error(
                f"Healing failed: {error}", task_id=task_id, attempt=attempt_number
            )
        else:
            if not healed:
                error = "Healing reported failure"
                self.logger.warning(error, task_id=task_id, attempt=attempt_number)

        if healed:
            self.breaker.record_success()
            self.logger.info("Healing succeeded", task_id=task_id, attempt=attempt_number)
        else:
            self.breaker.record_failure()
        self._persist()

        with self._lock:
            if healed:
                self._stats.successful_attempts += 1
            else:
                self._stats.failed_attempts += 1

        return self._result(bool(healed), task_id, attempt_number, error)

    def get_stats(self) -> HealingStats:
        """Counters plus the live breaker state; ``failed_attempts`` includes rejections."""
        # Breaker lock is taken first everywhere else; never nest it inside ours
        state = self.breaker.state
        with self._lock:
            return self._stats.model_copy(update={"circuit_state": state})

    def get_attempt_count(self, task_id: str) -> int:
        with self._lock:
            return self._attempts.get(task_id, 0)

    def get_circuit_state(self) -> CircuitState:
        return self.breaker.state

    def reset_circuit(self) -> None:
        """Force the breaker CLOSED; per-task attempt counters are kept."""
        self.breaker.reset()
        self._persist()
        self.logger.info("Circuit breaker reset")

    def record_failure(self) -> CircuitState:
        """Record a failure observed outside :meth:`attempt_healing`."""
        self.breaker.record_failure()
        self._persist()
        return self.breaker.state

    def record_success(self) -> CircuitState:
        """Record a success observed outside :meth:`attempt_healing`."""
        self.breaker.record_success()
        self._persist()
        return self.breaker.state

    def read_transition_log(self) -> List[TransitionLogEntry]:
        """Parse ``circuit-breaker.log``; malformed lines are skipped."""
        if not self.store.exists(TRANSITION_LOG):
            return []

        entries: List[TransitionLogEntry] = []
        for line in self.store.read_text(TRANSITION_LOG).splitlines():
            parts = line.split("\t", 3)
            if len(parts) != 4:
                continue
            try:
                entries.append(
                    TransitionLogEntry(
                        timestamp=parts[0],
                        from_state=parts[1],
                        to_state=parts[2],
                        reason=parts[3],
                    )
                )
            except ValidationError:
                continue
        return entries

    def save_snapshot(self) -> None:
        """Write the breaker record to ``circuit-breaker.json``."""
        metrics = self.breaker.metrics()
        self.store.write_text(SNAPSHOT_FILE, json.dumps(metrics.model_dump(mode="json"), indent=2))

    def load_snapshot(self) -> bool:
        """
        Restore the breaker record from ``circuit-breaker.json``.

        Returns:
            True if a snapshot was loaded, False if none exists

        Raises:
            CorruptRecordError: If the snapshot cannot be parsed
        """
        if not self.store.exists(SNAPSHOT_FILE):
            return False
        content = self.store.read_text(SNAPSHOT_FILE)
        try:
            metrics = CircuitBreakerMetrics.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as e:
            raise CorruptRecordError(SNAPSHOT_FILE, str(e)) from e
        self.breaker.restore(metrics)
        return True

    def _persist(self) -> None:
        if not self.persist:
            return
        try:
            self.save_snapshot()
        except (ForgeError, OSError) as e:
            self.logger.error(f"Failed to save circuit breaker snapshot: {e}")

    def _result(
        self, success: bool, task_id: str, attempt_number: int, error: Optional[str]
    ) -> HealingResult:
        return HealingResult(
            success=success,
            task_id=task_id,
            attempt_number=attempt_number,
            circuit_state=self.breaker.state,
            error=error,
        )

    def _on_transition(self, from_state: CircuitState, to_state: CircuitState, reason: str) -> None:
        if to_state == CircuitState.OPEN:
            with self._lock:
                self._stats.circuit_open_count += 1

        line = f"{utc_now().isoformat()}\t{from_state.value}\t{to_state.value}\t{reason}\n"
        try:
            self.store.append_text(TRANSITION_LOG, line)
        except (ForgeError, OSError) as e:
            # The breaker must keep working when its history cannot be written
            self.logger.error(f"Failed to record circuit transition: {e}")

        log = self.logger.warning if to_state == CircuitState.OPEN else self.logger.info
        log(
            f"Circuit breaker {from_state.value} -> {to_state.value}",
            from_state=from_state.value,
            to_state=to_state.value,
            reason=reason,
        )
