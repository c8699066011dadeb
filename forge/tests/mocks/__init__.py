"""Mock utilities for testing."""

from .filesystem_mocks import (
    FlakyFileSystem,
    InMemoryFileSystem,
    permanent_error,
    transient_error,
)
from .runtime_mocks import (
    FakeClock,
    LoggedMessage,
    MockLogger,
    RaisingHealer,
    ScriptedHealer,
)

__all__ = [
    "FakeClock",
    "FlakyFileSystem",
    "InMemoryFileSystem",
    "LoggedMessage",
    "MockLogger",
    "RaisingHealer",
    "ScriptedHealer",
    "permanent_error",
    "transient_error",
]
