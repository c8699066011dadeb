"""Shared pytest fixtures and utilities for Forge tests."""

from pathlib import Path
from typing import Callable, Generator, List

import pytest

from forge.config.models import ForgeConfig
from forge.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from forge.core.retry import RetryConfig
from forge.repositories.state_repository import StateRepository
from forge.repositories.task_repository import TaskRepository
from forge.services.healing_service import HealingService
from forge.services.state_service import StateService
from forge.services.status_service import StatusService
from forge.services.task_service import TaskService
from forge.storage.store import PersistentStore
from tests.mocks import FakeClock, FlakyFileSystem, InMemoryFileSystem, MockLogger

WORKSPACE = Path("/workspace/.forge")


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def sleeps() -> List[float]:
    """Records the delays the store would have slept for."""
    return []


@pytest.fixture
def memory_fs() -> InMemoryFileSystem:
    return InMemoryFileSystem()


@pytest.fixture
def flaky_fs() -> FlakyFileSystem:
    return FlakyFileSystem()


@pytest.fixture
def store(memory_fs: InMemoryFileSystem, sleeps: List[float]) -> PersistentStore:
    """PersistentStore over an in-memory filesystem with a recording sleep."""
    return PersistentStore(
        WORKSPACE, filesystem=memory_fs, retry_config=RetryConfig(), sleep=sleeps.append
    )


@pytest.fixture
def flaky_store(flaky_fs: FlakyFileSystem, sleeps: List[float]) -> PersistentStore:
    return PersistentStore(
        WORKSPACE, filesystem=flaky_fs, retry_config=RetryConfig(), sleep=sleeps.append
    )


@pytest.fixture
def disk_store(tmp_path: Path) -> PersistentStore:
    """PersistentStore on the real filesystem under a temporary directory."""
    return PersistentStore(tmp_path / ".forge", sleep=lambda _: None)


# ============================================================================
# Component Fixtures
# ============================================================================


@pytest.fixture
def mock_logger() -> MockLogger:
    return MockLogger()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def task_repository(store: PersistentStore) -> TaskRepository:
    return TaskRepository(store)


@pytest.fixture
def state_repository(store: PersistentStore) -> StateRepository:
    return StateRepository(store)


@pytest.fixture
def task_service(
    task_repository: TaskRepository,
    state_repository: StateRepository,
    store: PersistentStore,
    mock_logger: MockLogger,
) -> TaskService:
    return TaskService(task_repository, state_repository, store, logger=mock_logger)


@pytest.fixture
def state_service(
    state_repository: StateRepository, store: PersistentStore, mock_logger: MockLogger
) -> StateService:
    return StateService(state_repository, store, logger=mock_logger)


@pytest.fixture
def status_service(
    task_repository: TaskRepository, state_repository: StateRepository
) -> StatusService:
    return StatusService(task_repository, state_repository)


@pytest.fixture
def make_healing_service(
    store: PersistentStore, mock_logger: MockLogger, fake_clock: FakeClock
) -> Callable[..., HealingService]:
    """Factory fixture building a HealingService with a fake-clock breaker.

    Returns:
        Function accepting CircuitBreakerConfig keyword arguments
    """

    def _make(**config_kwargs) -> HealingService:
        breaker = CircuitBreaker(CircuitBreakerConfig(**config_kwargs), clock=fake_clock)
        return HealingService(store, logger=mock_logger, breaker=breaker)

    return _make


@pytest.fixture
def healing_service(make_healing_service) -> HealingService:
    return make_healing_service()


# ============================================================================
# Project Fixtures
# ============================================================================


@pytest.fixture
def project_dir(tmp_path: Path, monkeypatch) -> Generator[Path, None, None]:
    """Empty project directory used as the working directory.

    Global configuration is redirected into the temporary directory so the
    developer's own config never leaks into tests.
    """
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.chdir(project)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    yield project


@pytest.fixture
def default_config() -> ForgeConfig:
    return ForgeConfig()


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (touches the real filesystem)"
    )
    config.addinivalue_line("markers", "unit: mark test as unit test (fast, isolated)")
