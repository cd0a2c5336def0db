"""Cached per-module status."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from pyexhaust.models._base import ExhaustBaseModel, UtcTimestamp, utcnow


def pulse_time_values(payload: Any) -> list[Any]:
    """Extract the ``PulseTime.Set`` array from a ``PulseTime`` response.

    Returns an empty list when the payload does not have that shape.
    """
    if not isinstance(payload, dict):
        return []
    pulse_time = payload.get("PulseTime")
    if not isinstance(pulse_time, dict):
        return []
    values = pulse_time.get("Set")
    return list(values) if isinstance(values, list) else []


class ModuleStatus(ExhaustBaseModel):
    """Last known status of one relay module.

    ``error_code`` is ``None`` for a healthy module; otherwise it holds the
    code of the bring-up step or refresh that failed.
    """

    module_id: str
    host: str
    status: dict[str, Any] | None = None
    pulse_time: dict[str, Any] | None = None
    updated_at: UtcTimestamp = Field(default_factory=utcnow)
    error_code: str | None = None
    error: str | None = None

    @property
    def is_healthy(self) -> bool:
        return self.error_code is None and self.status is not None

    @property
    def pulse_time_values(self) -> list[Any]:
        return pulse_time_values(self.pulse_time)
