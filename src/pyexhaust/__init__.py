"""pyexhaust - Async controller for pulse-driven exhaust-fan relay modules."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyexhaust")
except PackageNotFoundError:
    __version__ = "0+local"

from pyexhaust.config import ExhaustConfig
from pyexhaust.controller import ExhaustController
from pyexhaust.exceptions import (
    ExhaustConfigError,
    ExhaustError,
    ExhaustTransportError,
    ModuleInitError,
    ModuleNotConfiguredError,
    ModuleOfflineError,
    PowerOffFailedError,
    PulseTimeConfigFailedError,
    PulseTimeReadFailedError,
    PulseTimeVerifyFailedError,
    StatusReadFailedError,
    UnitIdParseError,
)
from pyexhaust.models import (
    ExhaustState,
    FleetStatus,
    Group,
    MemoryEntry,
    ModuleStatus,
    PendingCommand,
    ProcessReport,
    ProcessStatus,
    RestoreOutcome,
    Tower,
    TurnOffResult,
    TurnOnResult,
    UnitId,
    UnitStatus,
    parse_unit_id,
    unit_id_from_apartment,
)
from pyexhaust.registry import ModuleRegistry
from pyexhaust.scheduler import SchedulerLoop, TickReport

__all__ = [
    "__version__",
    "ExhaustConfig",
    "ExhaustConfigError",
    "ExhaustController",
    "ExhaustError",
    "ExhaustState",
    "ExhaustTransportError",
    "FleetStatus",
    "Group",
    "MemoryEntry",
    "ModuleInitError",
    "ModuleNotConfiguredError",
    "ModuleOfflineError",
    "ModuleRegistry",
    "ModuleStatus",
    "PendingCommand",
    "PowerOffFailedError",
    "ProcessReport",
    "ProcessStatus",
    "PulseTimeConfigFailedError",
    "PulseTimeReadFailedError",
    "PulseTimeVerifyFailedError",
    "RestoreOutcome",
    "SchedulerLoop",
    "StatusReadFailedError",
    "TickReport",
    "Tower",
    "TurnOffResult",
    "TurnOnResult",
    "UnitId",
    "UnitIdParseError",
    "UnitStatus",
    "parse_unit_id",
    "unit_id_from_apartment",
]
