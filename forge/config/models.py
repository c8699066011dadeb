"""Configuration models for Forge."""

import os
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from ..core.circuit_breaker import CircuitBreakerConfig
from ..core.retry import RetryConfig

_DURATION = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|m|h)$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: str) -> float:
    """Convert a duration string such as ``"60s"`` or ``"500ms"`` to seconds."""
    match = _DURATION.match(value.strip())
    if not match:
        raise ValueError(
            "Duration must be a number followed by ms, s, m or h (e.g. '60s')"
        )
    amount, unit = match.groups()
    return float(amount) * _DURATION_UNITS[unit]


class WorkspaceConfig(BaseModel):
    """Workspace location."""

    dir: str = Field(default=".forge", description="Workspace directory")

    @field_validator("dir")
    @classmethod
    def validate_dir(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("workspace dir cannot be empty")
        return v.strip()


class CircuitBreakerSettings(BaseModel):
    """Circuit breaker thresholds for the healing loop."""

    failure_threshold: int = Field(default=5, description="Failures before opening")
    timeout: str = Field(default="60s", description="Cool-down before a probe")
    success_threshold: int = Field(default=2, description="Probe successes to close")
    persist: bool = Field(
        default=True, description="Save the breaker record to circuit-breaker.json"
    )

    @field_validator("failure_threshold", "success_threshold")
    @classmethod
    def validate_threshold(cls, v: int) -> int:
        if v < 1:
            raise ValueError("threshold must be at least 1")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: str) -> str:
        parse_duration(v)
        return v

    def timeout_seconds(self) -> float:
        return parse_duration(self.timeout)

    def to_breaker_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            timeout=self.timeout_seconds(),
            success_threshold=self.success_threshold,
        )


class StoreConfig(BaseModel):
    """Retry budget for persistent store operations."""

    max_attempts: int = Field(default=3, description="Attempts per operation")
    initial_delay_ms: int = Field(default=100, description="First retry delay")
    max_delay_ms: int = Field(default=5000, description="Retry delay cap")
    backoff_multiplier: float = Field(default=2.0, description="Delay growth factor")

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be at least 1")
        if v > 20:
            raise ValueError("max_attempts cannot exceed 20")
        return v

    @field_validator("initial_delay_ms", "max_delay_ms")
    @classmethod
    def validate_delay(cls, v: int) -> int:
        if v < 0:
            raise ValueError("delay cannot be negative")
        return v

    @field_validator("backoff_multiplier")
    @classmethod
    def validate_multiplier(cls, v: float) -> float:
        if v < 1.0:
            raise ValueError("backoff_multiplier must be at least 1.0")
        return v

    @model_validator(mode="after")
    def validate_delay_order(self) -> "StoreConfig":
        if self.initial_delay_ms > self.max_delay_ms:
            raise ValueError("initial_delay_ms cannot exceed max_delay_ms")
        return self

    def to_retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay_ms / 1000.0,
            max_delay=self.max_delay_ms / 1000.0,
            backoff_multiplier=self.backoff_multiplier,
        )


class TaskDefaults(BaseModel):
    """Defaults applied when a task is created without them."""

    default_priority: int = Field(default=1, description="Priority for new tasks")
    default_estimated_minutes: int = Field(default=30, description="Effort estimate")

    @field_validator("default_estimated_minutes")
    @classmethod
    def validate_estimate(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("default_estimated_minutes must be positive")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    output_dir: str = Field(
        default="logs", description="Log directory, relative to the workspace"
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARN", "ERROR"]
        if v.upper() not in valid_levels:
            raise ValueError(f"level must be one of: {', '.join(valid_levels)}")
        return v.upper()


class ForgeConfig(BaseModel):
    """Main Forge configuration."""

    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    circuit_breaker: CircuitBreakerSettings = Field(
        default_factory=CircuitBreakerSettings
    )
    store: StoreConfig = Field(default_factory=StoreConfig)
    tasks: TaskDefaults = Field(default_factory=TaskDefaults)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def get_workspace_dir(self, project_root: Path) -> Path:
        """Workspace directory resolved against ``project_root``."""
        path = Path(self.workspace.dir).expanduser()
        if not path.is_absolute():
            path = Path(project_root) / path
        return path

    def get_log_dir(self, workspace_dir: Path) -> Path:
        """Log directory resolved against ``workspace_dir``."""
        path = Path(self.logging.output_dir).expanduser()
        if not path.is_absolute():
            path = Path(workspace_dir) / path
        return path


def resolve_env_vars(obj: Any) -> Any:
    """Recursively replace ``${VAR}`` and ``${VAR:default}`` in string values."""
    if isinstance(obj, dict):
        return {key: resolve_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [resolve_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return _resolve_env_var_string(obj)
    else:
        return obj


def _resolve_env_var_string(value: str) -> str:
    # ${VAR_NAME} or ${VAR_NAME:default_value}
    pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

    def replace_var(match):
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.getenv(var_name, default_value)

    return re.sub(pattern, replace_var, value)
