"""Persistence of the single workflow state record."""

import json
from typing import Optional

from pydantic import ValidationError

from ..core.exceptions import CorruptRecordError
from ..core.workflow_state import WorkflowState
from ..storage.store import PersistentStore

STATE_FILE = "state.json"


class StateRepository:
    """
    Holds the one :class:`WorkflowState` of a workspace in ``state.json``.

    The file is overwritten wholesale on every save. There is no locking:
    with several writers the last write wins.
    """

    def __init__(self, store: PersistentStore):
        self.store = store

    def get(self) -> Optional[WorkflowState]:
        """
        Load the workflow state.

        Returns:
            WorkflowState if one exists, None otherwise

        Raises:
            CorruptRecordError: If the file exists but cannot be parsed
        """
        if not self.store.exists(STATE_FILE):
            return None

        content = self.store.read_text(STATE_FILE)
        try:
            return WorkflowState.from_dict(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as e:
            raise CorruptRecordError(STATE_FILE, str(e)) from e

    def save(self, state: WorkflowState) -> None:
        self.store.write_text(STATE_FILE, json.dumps(state.to_dict(), indent=2))

    def exists(self) -> bool:
        return self.store.exists(STATE_FILE)

    def clear(self) -> None:
        """Delete the state record; no-op if there is none."""
        self.store.remove(STATE_FILE)
