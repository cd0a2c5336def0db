"""Authoritative map of unit id -> activation state.

Every mutation re-persists the whole map through
:func:`pyexhaust.state.persistence.write_document`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from pyexhaust.models._base import utcnow
from pyexhaust.models.state import ExhaustState, MemoryEntry, StateDocument
from pyexhaust.state.persistence import read_document, write_document

_logger = logging.getLogger(__name__)


class ExhaustStateStore:
    """Owns every :class:`ExhaustState`.

    Parameters
    ----------
    path : Path or None
        State file location. ``None`` keeps the store in memory only.
    clock : callable
        Returns the current aware UTC datetime; used for ``updated_at``.
    """

    def __init__(self, path: Path | None = None, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._path = path
        self._clock = clock
        self._states: dict[str, ExhaustState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, unit_id: object) -> bool:
        return unit_id in self._states

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> int:
        """Replace the in-memory map with the persisted one.

        Returns the number of states loaded. Missing or corrupt files
        yield an empty store.
        """
        self._states = {}
        if self._path is None:
            return 0
        document = read_document(self._path)
        if document is None:
            return 0
        for state in document.states:
            self._states[state.id] = state
        _logger.info("Loaded %d exhaust state(s) from %s", len(self._states), self._path)
        return len(self._states)

    def save(self) -> None:
        if self._path is None:
            return
        document = StateDocument(updated_at=self._clock(), states=list(self._states.values()))
        write_document(self._path, document)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, unit_id: str) -> ExhaustState | None:
        return self._states.get(unit_id)

    def all(self) -> list[ExhaustState]:
        return list(self._states.values())

    def snapshot(self, now: datetime | None = None) -> list[MemoryEntry]:
        """Serializable view of every state with computed remaining minutes."""
        current = now if now is not None else self._clock()
        return [MemoryEntry.from_state(state, current) for state in self._states.values()]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def put(self, state: ExhaustState) -> ExhaustState:
        """Create or replace the state for ``state.id``."""
        stored = state.model_copy(update={"updated_at": self._clock()})
        self._states[stored.id] = stored
        self.save()
        return stored

    def update(self, unit_id: str, **changes: Any) -> ExhaustState:
        """Apply *changes* to an existing state.

        Raises :class:`KeyError` when the unit has no state.
        """
        current = self._states[unit_id]
        changes["updated_at"] = self._clock()
        # model_copy skips validation; re-validate so enum/str inputs are coerced.
        updated = ExhaustState.model_validate({**current.model_dump(), **changes})
        self._states[unit_id] = updated
        self.save()
        return updated

    def remove(self, unit_id: str) -> ExhaustState | None:
        removed = self._states.pop(unit_id, None)
        if removed is not None:
            self.save()
        return removed
