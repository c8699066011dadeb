"""Workflow phase definitions and the single workflow state record."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .clock import advance_from, utc_now
from .exceptions import InvalidTransitionError


class Phase(str, Enum):
    """Coarse workflow stages, in pipeline order."""

    CLARIFY = "clarify"
    BREAKDOWN = "breakdown"
    IMPLEMENT = "implement"
    HEAL = "heal"
    DELIVER = "deliver"
    COMPLETE = "complete"


# Valid phase transitions; staying in the same phase is always allowed
VALID_TRANSITIONS: Dict[Phase, List[Phase]] = {
    Phase.CLARIFY: [Phase.BREAKDOWN],
    Phase.BREAKDOWN: [Phase.IMPLEMENT],
    Phase.IMPLEMENT: [Phase.HEAL, Phase.DELIVER],
    Phase.HEAL: [Phase.IMPLEMENT, Phase.DELIVER],
    Phase.DELIVER: [Phase.COMPLETE],
    Phase.COMPLETE: [],  # Terminal phase
}


def is_valid_transition(from_phase: Phase, to_phase: Phase) -> bool:
    """Check if a phase transition is valid (self-transitions included)."""
    return to_phase == from_phase or to_phase in VALID_TRANSITIONS.get(from_phase, [])


def get_valid_next_phases(current: Phase) -> List[Phase]:
    """Get phases reachable from ``current``, excluding itself."""
    return list(VALID_TRANSITIONS.get(current, []))


_PHASE_VALUES = {phase.value for phase in Phase}


def is_terminal_phase(phase: Phase) -> bool:
    return len(VALID_TRANSITIONS.get(phase, [])) == 0


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Prd(_CamelModel):
    """Product requirements captured during the clarify phase.

    Known fields are validated; anything else a collaborator stores is kept
    as-is so newer writers do not lose data through older readers.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    title: Optional[str] = None
    goal: Optional[str] = None
    requirements: List[str] = Field(default_factory=list)
    user_stories: List[str] = Field(default_factory=list)
    non_goals: List[str] = Field(default_factory=list)


class WorkflowError(_CamelModel):
    """An error recorded against the workflow."""

    message: str
    task_id: Optional[str] = None
    phase: Optional[Phase] = None
    timestamp: datetime = Field(default_factory=utc_now)
    details: Dict[str, Any] = Field(default_factory=dict)


class WorkflowState(_CamelModel):
    """Current phase of the workflow plus its working context.

    Every mutation bumps ``updated_at`` to a value strictly later than the
    previous one; ``started_at`` never changes after creation.
    """

    phase: Phase = Phase.CLARIFY
    current_task: Optional[str] = None
    prd: Optional[Prd] = None
    errors: List[WorkflowError] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now, frozen=True)
    updated_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def create_new(cls) -> "WorkflowState":
        """Create a fresh state in the clarify phase."""
        now = utc_now()
        return cls(phase=Phase.CLARIFY, started_at=now, updated_at=now)

    def can_transition_to(self, target: Union[Phase, str]) -> bool:
        if target not in _PHASE_VALUES:
            return False
        return is_valid_transition(self.phase, Phase(target))

    def next_allowed_phases(self) -> List[Phase]:
        return get_valid_next_phases(self.phase)

    def transition_to(self, target: Union[Phase, str]) -> None:
        """Move to ``target``.

        Raises:
            InvalidTransitionError: If ``target`` is not a phase or the edge
                is not in the transition table
        """
        if not self.can_transition_to(target):
            raise InvalidTransitionError(
                self.phase.value,
                target.value if isinstance(target, Phase) else str(target),
                [p.value for p in self.next_allowed_phases()],
            )
        self.phase = Phase(target)
        self.touch()

    def set_current_task(self, task_id: Optional[str]) -> None:
        self.current_task = task_id
        self.touch()

    def set_prd(self, prd: Union[Prd, Dict[str, Any], None]) -> None:
        self.prd = Prd.model_validate(prd) if isinstance(prd, dict) else prd
        self.touch()

    def add_error(self, error: Union[WorkflowError, Dict[str, Any], str]) -> WorkflowError:
        """Append an error; plain strings become ``WorkflowError(message=...)``."""
        if isinstance(error, str):
            error = WorkflowError(message=error, phase=self.phase)
        elif isinstance(error, dict):
            error = WorkflowError.model_validate(error)
        self.errors.append(error)
        self.touch()
        return error

    def clear_errors(self) -> None:
        self.errors = []
        self.touch()

    def touch(self) -> None:
        """Refresh ``updated_at`` (strictly increasing)."""
        self.updated_at = advance_from(self.updated_at)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowState":
        return cls.model_validate(data)
