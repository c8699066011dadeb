"""Workflow phase machine and session archiving."""

import posixpath
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from ..core.clock import utc_now
from ..core.exceptions import InvalidInputError, StateNotFoundError
from ..core.workflow_state import Phase, Prd, WorkflowError, WorkflowState
from ..repositories.state_repository import STATE_FILE, StateRepository
from ..repositories.task_repository import TASKS_DIR
from ..storage.store import PersistentStore
from ..tracking.activity_logger import Logger, NullLogger
from .task_service import PROGRESS_LOG

ARCHIVE_DIR = "archive"

_ARCHIVED_ENTRIES = (STATE_FILE, TASKS_DIR, PROGRESS_LOG)


class ArchiveResult(BaseModel):
    """Outcome of :meth:`StateService.archive_session`."""

    archived: bool = False
    blocked: bool = False
    archive_path: Optional[str] = None
    files: List[str] = Field(default_factory=list)
    reason: Optional[str] = None


class StateService:
    """
    Owns the workflow phase and its working context.

    Every mutation loads the record, applies the change through the
    :class:`WorkflowState` methods and writes the whole record back.
    """

    def __init__(
        self,
        state_repository: StateRepository,
        store: PersistentStore,
        logger: Optional[Logger] = None,
    ):
        """
        Initialize the service.

        Args:
            state_repository: Repository holding the state record
            store: Workspace store, used for archiving
            logger: Logger (discards output if None)
        """
        self.state_repository = state_repository
        self.store = store
        self.logger: Logger = logger or NullLogger()

    def get_state(self) -> Optional[WorkflowState]:
        return self.state_repository.get()

    def exists(self) -> bool:
        return self.state_repository.exists()

    def create_new(self) -> WorkflowState:
        """Write a fresh state in the clarify phase, replacing any existing one."""
        state = WorkflowState.create_new()
        self.state_repository.save(state)
        self.logger.info("Workflow state created", phase=state.phase.value)
        return state

    def initialize_state(self) -> WorkflowState:
        """Return the existing state, or create one if there is none."""
        existing = self.state_repository.get()
        if existing is not None:
            return existing
        return self.create_new()

    def can_transition_to(self, phase: Union[Phase, str]) -> bool:
        state = self.state_repository.get()
        if state is None:
            return False
        return state.can_transition_to(phase)

    def allowed_transitions(self) -> List[Phase]:
        """Phases reachable from the current one, excluding itself."""
        state = self.state_repository.get()
        if state is None:
            return []
        return state.next_allowed_phases()

    def transition_to(self, phase: Union[Phase, str]) -> WorkflowState:
        """
        Move the workflow to ``phase``.

        Raises:
            StateNotFoundError: If no state exists
            InvalidTransitionError: If the edge is not allowed
        """
        state = self._require_state()
        from_phase = state.phase
        state.transition_to(phase)
        self.state_repository.save(state)
        self.logger.info(
            f"Phase transition: {from_phase.value} -> {state.phase.value}",
            from_phase=from_phase.value,
            to_phase=state.phase.value,
        )
        return state

    def set_current_task(self, task_id: Optional[str]) -> WorkflowState:
        state = self._require_state()
        state.set_current_task(task_id)
        self.state_repository.save(state)
        self.logger.debug("Current task set", task_id=task_id)
        return state

    def set_prd(self, prd: Union[Prd, Dict[str, Any], None]) -> WorkflowState:
        state = self._require_state()
        state.set_prd(prd)
        self.state_repository.save(state)
        return state

    def add_error(self, error: Union[WorkflowError, Dict[str, Any], str]) -> WorkflowState:
        state = self._require_state()
        recorded = state.add_error(error)
        self.state_repository.save(state)
        self.logger.warning(
            f"Workflow error recorded: {recorded.message}", task_id=recorded.task_id
        )
        return state

    def clear_errors(self) -> WorkflowState:
        state = self._require_state()
        state.clear_errors()
        self.state_repository.save(state)
        return state

    def update_state(
        self,
        phase: Optional[Union[Phase, str]] = None,
        current_task: Optional[str] = None,
        prd: Union[Prd, Dict[str, Any], None] = None,
        add_error: Union[WorkflowError, Dict[str, Any], str, None] = None,
    ) -> WorkflowState:
        """
        Apply several changes with a single write.

        Every change is validated before anything is written; ``None``
        leaves the corresponding field untouched.

        Raises:
            StateNotFoundError: If no state exists
            InvalidTransitionError: If the phase change is not allowed
            InvalidInputError: If ``prd`` or ``add_error`` is malformed
        """
        state = self._require_state()
        if phase is not None:
            state.transition_to(phase)
        if current_task is not None:
            state.set_current_task(current_task)
        try:
            if prd is not None:
                state.set_prd(prd)
            if add_error is not None:
                state.add_error(add_error)
        except ValidationError as e:
            raise InvalidInputError(f"Invalid state update: {e.errors()[0]['msg']}") from e
        state.touch()
        self.state_repository.save(state)
        return state

    def clear(self) -> None:
        self.state_repository.clear()
        self.logger.info("Workflow state cleared")

    def archive_session(self, force: bool = False) -> ArchiveResult:
        """
        Copy the session files into ``archive/<timestamp>/`` and clear them.

        Archived: ``state.json``, ``tasks/`` and ``progress.log``. Refuses
        unless the workflow has reached the complete phase or ``force`` is set.

        Args:
            force: Archive regardless of the current phase

        Returns:
            ArchiveResult describing what happened
        """
        state = self.state_repository.get()
        if not force and (state is None or state.phase != Phase.COMPLETE):
            current = state.phase.value if state is not None else "none"
            return ArchiveResult(
                blocked=True,
                reason=(
                    f"Workflow is in phase '{current}', not complete. "
                    "Use force to archive anyway."
                ),
            )

        present = [entry for entry in _ARCHIVED_ENTRIES if self.store.exists(entry)]
        if not present:
            return ArchiveResult(reason="Nothing to archive")

        stamp = utc_now().strftime("%Y%m%dT%H%M%S%fZ")
        archive_path = posixpath.join(ARCHIVE_DIR, stamp)

        files: List[str] = []
        for entry in present:
            files.extend(self.store.copy_tree(entry, posixpath.join(archive_path, entry)))
        for entry in present:
            self.store.remove(entry)

        self.logger.info(
            "Session archived", archive_path=archive_path, file_count=len(files)
        )
        return ArchiveResult(archived=True, archive_path=archive_path, files=files)

    def _require_state(self) -> WorkflowState:
        state = self.state_repository.get()
        if state is None:
            raise StateNotFoundError()
        return state
