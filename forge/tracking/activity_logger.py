"""Activity logging for Forge operations."""

import json
import sys
import threading
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field


class Logger(Protocol):
    """Logging capability injected into repositories and services."""

    def debug(self, message: str, **metadata: Any) -> None: ...

    def info(self, message: str, **metadata: Any) -> None: ...

    def warning(self, message: str, **metadata: Any) -> None: ...

    def error(self, message: str, **metadata: Any) -> None: ...


class EventType(str, Enum):
    """Types of events that can be logged."""

    SESSION_START = "session_start"
    SESSION_END = "session_end"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


LEVELS: Dict[str, int] = {"DEBUG": 10, "INFO": 20, "WARN": 30, "WARNING": 30, "ERROR": 40}

_EVENT_LEVELS: Dict[EventType, int] = {
    EventType.DEBUG: 10,
    EventType.WARNING: 30,
    EventType.ERROR: 40,
}


class ActivityEvent(BaseModel):
    """Activity event model."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    event_type: EventType = Field(..., description="Type of event")
    session_id: str = Field(..., description="Session identifier")
    task_id: Optional[str] = Field(None, description="Task identifier")
    message: str = Field(..., description="Event message")

    # Additional event data
    data: Dict[str, Any] = Field(
        default_factory=dict, description="Additional event data"
    )


def generate_session_id() -> str:
    """Generate a sortable session id: UTC timestamp plus a short random suffix."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"{stamp}-{uuid.uuid4().hex[:8]}"


class ActivityLogger:
    """Thread-safe JSON-lines activity logger.

    Each session writes to ``<logs_dir>/sessions/<session_id>/activity.jsonl``.
    Keyword arguments passed to the level methods land in the event's
    ``data`` field, except ``task_id`` which has its own column.
    """

    def __init__(self, session_id: str, logs_dir: Path, level: str = "INFO"):
        """Initialize activity logger.

        Args:
            session_id: Current session identifier
            logs_dir: Directory to store log files
            level: Minimum level written (DEBUG, INFO, WARN, ERROR)
        """
        self.session_id = session_id
        self.logs_dir = Path(logs_dir)
        self.session_log_dir = self.logs_dir / "sessions" / session_id
        self.min_level = LEVELS.get(level.upper(), 20)

        # Create log directories
        self.session_log_dir.mkdir(parents=True, exist_ok=True)

        self.main_log_file = self.session_log_dir / "activity.jsonl"

        # Thread lock for safe concurrent logging
        self._lock = threading.Lock()

    def log_event(
        self,
        event_type: EventType,
        message: str,
        task_id: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """Log a general activity event.

        Args:
            event_type: Type of event
            message: Event message
            task_id: Optional task identifier
            **kwargs: Additional event data
        """
        if _EVENT_LEVELS.get(event_type, 20) < self.min_level:
            return

        event = ActivityEvent(
            event_type=event_type,
            session_id=self.session_id,
            task_id=task_id,
            message=message,
            data=kwargs,
        )
        self._write_event(self.main_log_file, event)

    def debug(self, message: str, **metadata: Any) -> None:
        self.log_event(EventType.DEBUG, message, **metadata)

    def info(self, message: str, **metadata: Any) -> None:
        self.log_event(EventType.INFO, message, **metadata)

    def warning(self, message: str, **metadata: Any) -> None:
        self.log_event(EventType.WARNING, message, **metadata)

    def error(self, message: str, **metadata: Any) -> None:
        self.log_event(EventType.ERROR, message, **metadata)

    def log_session_start(self, working_directory: str) -> None:
        self.log_event(
            EventType.SESSION_START,
            f"Forge session started: {self.session_id}",
            working_directory=working_directory,
        )

    def log_session_end(self, duration_ms: int, **stats: Any) -> None:
        self.log_event(
            EventType.SESSION_END,
            f"Forge session ended: {self.session_id}",
            duration_ms=duration_ms,
            **stats,
        )

    def get_task_events(self, task_id: str) -> List[ActivityEvent]:
        """Get all events for a specific task.

        Args:
            task_id: Task identifier

        Returns:
            List of events for the task
        """
        return [event for event in self._read_events() if event.task_id == task_id]

    def get_recent_events(self, limit: int = 100) -> List[ActivityEvent]:
        """Get recent events from the session.

        Args:
            limit: Maximum number of events to return

        Returns:
            List of recent events
        """
        return self._read_events()[-limit:]

    def _read_events(self) -> List[ActivityEvent]:
        events: List[ActivityEvent] = []

        if self.main_log_file.exists():
            with open(self.main_log_file, "r", encoding="utf-8") as f:
                for line in f:
                    try:
                        events.append(ActivityEvent(**json.loads(line.strip())))
                    except (json.JSONDecodeError, ValueError):
                        continue

        return events

    def _write_event(self, log_file: Path, event: ActivityEvent) -> None:
        """Write event to log file in a thread-safe manner."""
        with self._lock:
            try:
                with open(log_file, "a", encoding="utf-8") as f:
                    json.dump(
                        event.model_dump(mode="json"),
                        f,
                        default=str,
                        separators=(",", ":"),
                    )
                    f.write("\n")
            except OSError as e:
                # A broken log file must not abort the operation being logged
                print(f"Warning: failed to write activity log {log_file}: {e}", file=sys.stderr)


class NullLogger:
    """Logger that discards everything."""

    def debug(self, message: str, **metadata: Any) -> None:
        pass

    def info(self, message: str, **metadata: Any) -> None:
        pass

    def warning(self, message: str, **metadata: Any) -> None:
        pass

    def error(self, message: str, **metadata: Any) -> None:
        pass
