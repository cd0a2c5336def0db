"""Activation state of a single unit and its persisted document."""

from __future__ import annotations

import enum
import math
from datetime import datetime
from typing import Literal

from pydantic import Field

from pyexhaust._constants import STATE_FILE_VERSION
from pyexhaust.models._base import ExhaustBaseModel, UtcTimestamp, utcnow
from pyexhaust.models.unit import Group, Tower, UnitId


class ProcessStatus(enum.StrEnum):
    """Whether the last requested hardware command has been applied."""

    STARTING = "starting"
    APPLIED = "applied"
    FAILED = "failed"


class PendingCommand(enum.StrEnum):
    ON = "on"
    OFF = "off"


class ExhaustState(ExhaustBaseModel):
    """One activated (or being deactivated) unit.

    Identity fields are derived from ``id`` at creation and never change.
    """

    id: str
    tower: Tower
    final: int
    group: Group
    relay: int
    module_id: str
    expires_at: UtcTimestamp = None
    pending_command: PendingCommand = PendingCommand.ON
    process_status: ProcessStatus = ProcessStatus.STARTING
    last_error: str | None = None
    retry_count: int = 0
    updated_at: UtcTimestamp = Field(default_factory=utcnow)

    @classmethod
    def for_unit(cls, unit: UnitId, **fields: object) -> ExhaustState:
        return cls(
            id=unit.id,
            tower=unit.tower,
            final=unit.final,
            group=unit.group,
            relay=unit.relay,
            module_id=unit.module_id,
            **fields,
        )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def remaining_minutes(self, now: datetime) -> int | None:
        """Whole minutes left before auto-off, rounded up.

        ``None`` when no expiry is scheduled or it already passed.
        """
        if self.expires_at is None:
            return None
        remaining_s = (self.expires_at - now).total_seconds()
        if remaining_s <= 0:
            return None
        return math.ceil(remaining_s / 60)


class MemoryEntry(ExhaustBaseModel):
    """Serializable view of an :class:`ExhaustState` with computed remaining time."""

    id: str
    tower: Tower
    final: int
    group: Group
    relay: int
    module_id: str
    expires_at: UtcTimestamp = None
    remaining_minutes: int | None = None
    pending_command: PendingCommand
    process_status: ProcessStatus
    last_error: str | None = None
    retry_count: int = 0

    @classmethod
    def from_state(cls, state: ExhaustState, now: datetime) -> MemoryEntry:
        return cls(
            id=state.id,
            tower=state.tower,
            final=state.final,
            group=state.group,
            relay=state.relay,
            module_id=state.module_id,
            expires_at=state.expires_at,
            remaining_minutes=state.remaining_minutes(now),
            pending_command=state.pending_command,
            process_status=state.process_status,
            last_error=state.last_error,
            retry_count=state.retry_count,
        )


class StateDocument(ExhaustBaseModel):
    """On-disk document: ``{version, updatedAt, states[]}``."""

    version: Literal[1] = STATE_FILE_VERSION
    updated_at: UtcTimestamp = Field(default_factory=utcnow)
    states: list[ExhaustState] = Field(default_factory=list)
