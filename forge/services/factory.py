"""Wiring of store, repositories and services for one workspace."""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..config.models import ForgeConfig
from ..core.circuit_breaker import CircuitBreaker
from ..repositories.state_repository import StateRepository
from ..repositories.task_repository import TaskRepository
from ..storage.filesystem import FileSystem
from ..storage.store import PersistentStore
from ..tracking.activity_logger import Logger, NullLogger
from .healing_service import HealingService
from .state_service import StateService
from .status_service import StatusService
from .task_service import TaskService


@dataclass
class ServiceContainer:
    """Everything a caller needs to drive one workspace."""

    config: ForgeConfig
    store: PersistentStore
    task_repository: TaskRepository
    state_repository: StateRepository
    task_service: TaskService
    state_service: StateService
    healing_service: HealingService
    status_service: StatusService
    logger: Logger


def create_services(
    workspace_dir: Path,
    config: Optional[ForgeConfig] = None,
    logger: Optional[Logger] = None,
    filesystem: Optional[FileSystem] = None,
    sleep: Optional[Callable[[float], None]] = None,
    clock: Optional[Callable[[], float]] = None,
) -> ServiceContainer:
    """
    Build the services for ``workspace_dir``.

    When ``circuit_breaker.persist`` is enabled the breaker record is
    restored from its snapshot and saved after every recorded outcome, so
    separate CLI invocations see the same breaker.

    Args:
        workspace_dir: Workspace root (e.g. ``<project>/.forge``)
        config: Configuration (defaults if None)
        logger: Logger shared by all services (discards output if None)
        filesystem: Filesystem capability (local disk if None)
        sleep: Sleep used between store retries
        clock: Time source for the circuit breaker
    """
    config = config or ForgeConfig()
    logger = logger or NullLogger()

    store = PersistentStore(
        workspace_dir,
        filesystem=filesystem,
        retry_config=config.store.to_retry_config(),
        sleep=sleep,
    )
    task_repository = TaskRepository(store)
    state_repository = StateRepository(store)

    breaker_config = config.circuit_breaker.to_breaker_config()
    breaker = (
        CircuitBreaker(breaker_config, clock=clock)
        if clock is not None
        else CircuitBreaker(breaker_config)
    )
    healing_service = HealingService(
        store, logger=logger, breaker=breaker, persist=config.circuit_breaker.persist
    )
    if config.circuit_breaker.persist:
        healing_service.load_snapshot()

    return ServiceContainer(
        config=config,
        store=store,
        task_repository=task_repository,
        state_repository=state_repository,
        task_service=TaskService(
            task_repository,
            state_repository,
            store,
            logger=logger,
            defaults=config.tasks,
        ),
        state_service=StateService(state_repository, store, logger=logger),
        healing_service=healing_service,
        status_service=StatusService(task_repository, state_repository),
        logger=logger,
    )
