"""Data models for unit identity, activation state and module status."""

from pyexhaust.models._base import ExhaustBaseModel, UtcTimestamp, parse_timestamp
from pyexhaust.models.module_status import ModuleStatus, pulse_time_values
from pyexhaust.models.results import (
    FleetStatus,
    ProcessReport,
    RestoreOutcome,
    TurnOffResult,
    TurnOnResult,
    UnitStatus,
)
from pyexhaust.models.state import (
    ExhaustState,
    MemoryEntry,
    PendingCommand,
    ProcessStatus,
    StateDocument,
)
from pyexhaust.models.unit import (
    Group,
    Tower,
    UnitId,
    normalize_unit_id,
    parse_unit_id,
    unit_id_from_apartment,
)

__all__ = [
    "ExhaustBaseModel",
    "ExhaustState",
    "FleetStatus",
    "Group",
    "MemoryEntry",
    "ModuleStatus",
    "PendingCommand",
    "ProcessReport",
    "ProcessStatus",
    "RestoreOutcome",
    "StateDocument",
    "Tower",
    "TurnOffResult",
    "TurnOnResult",
    "UnitId",
    "UnitStatus",
    "UtcTimestamp",
    "normalize_unit_id",
    "parse_timestamp",
    "parse_unit_id",
    "pulse_time_values",
    "unit_id_from_apartment",
]
