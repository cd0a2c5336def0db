"""Internal constants shared across the library."""

from __future__ import annotations

#: Fixed module order used by the 1-based flexible key resolver.
MODULE_ORDER: tuple[str, ...] = (
    "A_14",
    "A_58",
    "B_14",
    "B_58",
    "C_14",
    "C_58",
    "PWR_14",
    "PWR_58",
)

TOWERS: tuple[str, ...] = ("A", "B", "C")

#: Relay inside the ``PWR_<group>`` module that cuts each tower's branch.
PWR_RELAY_BY_TOWER: dict[str, int] = {"A": 1, "B": 2, "C": 3}

DEFAULT_PORT = 80
DEFAULT_SCHEME = "http"
DEFAULT_COMMAND_PATH = "cm"
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_SWEEP_INTERVAL_S = 60.0
DEFAULT_REARM_DELAY_S = 2.0
DEFAULT_REARM_MIN_REMAINING_MINUTES = 5
DEFAULT_STATE_FILE = "exhaust-state.json"

# PulseTime units are tenths of a second on the relay firmware (5 -> 0.5 s).
EXPECTED_PULSE_TIME = 5
EXPECTED_RELAY_COUNT = 4

STATE_FILE_VERSION = 1


def pwr_module_for_group(group: str) -> str:
    """Return the power-cut module id for a final-digit group."""
    return f"PWR_{group}"


def pwr_relay_for_tower(tower: str) -> int:
    """Return the relay index inside the PWR module that serves *tower*.

    Raises :class:`ValueError` for an unknown tower.
    """
    relay = PWR_RELAY_BY_TOWER.get(tower)
    if relay is None:
        raise ValueError(f"tower must be one of {TOWERS}, got {tower!r}")
    return relay
