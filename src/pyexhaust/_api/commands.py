"""Command strings understood by the relay module firmware."""

from __future__ import annotations

STATUS = "Status"
PULSE_TIME = "PulseTime"


def power_on(relay: int) -> str:
    return f"Power{relay} On"


def power_off(relay: int) -> str:
    return f"Power{relay} Off"


def set_pulse_time(relay: int, value: int) -> str:
    return f"PulseTime{relay} {value}"
