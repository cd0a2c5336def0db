"""Typed results returned by the activation operations.

Failures that happen while a hardware command is in flight are reported
here instead of being raised; the scheduler converges them later.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from pyexhaust.models._base import ExhaustBaseModel, UtcTimestamp, utcnow
from pyexhaust.models.module_status import ModuleStatus
from pyexhaust.models.state import ExhaustState, MemoryEntry, ProcessStatus
from pyexhaust.models.unit import UnitId


class TurnOnResult(ExhaustBaseModel):
    id: str
    module_id: str
    relay: int
    auto_off_minutes: float | None = None
    process_status: ProcessStatus
    error: str | None = None
    response: Any = None
    state: ExhaustState | None = None

    @property
    def applied(self) -> bool:
        return self.process_status == ProcessStatus.APPLIED


class RestoreOutcome(ExhaustBaseModel):
    """What happened to one same-branch unit after a group power cut."""

    id: str
    rearmed: bool
    skipped: bool = False
    remaining_minutes: int | None = None
    expires_at: UtcTimestamp = None
    response: Any = None


class TurnOffResult(ExhaustBaseModel):
    id: str
    pwr_module_id: str
    pwr_relay: int
    process_status: ProcessStatus
    error: str | None = None
    off_response: Any = None
    restored: dict[str, RestoreOutcome] = Field(default_factory=dict)

    @property
    def applied(self) -> bool:
        return self.process_status == ProcessStatus.APPLIED


class UnitStatus(ExhaustBaseModel):
    """Identity of a unit with its module's cached status and its memory entry."""

    identity: UnitId
    module_status: ModuleStatus | None = None
    memory: MemoryEntry | None = None


class FleetStatus(ExhaustBaseModel):
    modules: dict[str, ModuleStatus] = Field(default_factory=dict)
    memory: list[MemoryEntry] = Field(default_factory=list)


class ProcessReport(ExhaustBaseModel):
    total: int
    memory: list[MemoryEntry] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utcnow)
