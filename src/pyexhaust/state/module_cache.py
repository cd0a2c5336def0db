"""Last known status per relay module."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from pyexhaust.models._base import utcnow
from pyexhaust.models.module_status import ModuleStatus


class ModuleStatusCache:
    """In-memory map of module id -> :class:`ModuleStatus`.

    Entries are created on the first probe (successful or not) and
    overwritten on every refresh; they are never removed.
    """

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._modules: dict[str, ModuleStatus] = {}

    def get(self, module_id: str) -> ModuleStatus | None:
        return self._modules.get(module_id)

    def all(self) -> dict[str, ModuleStatus]:
        return dict(self._modules)

    def is_healthy(self, module_id: str) -> bool:
        entry = self._modules.get(module_id)
        return entry is not None and entry.is_healthy

    def needs_init(self, module_id: str) -> bool:
        entry = self._modules.get(module_id)
        return entry is None or entry.error_code is not None

    def record_success(
        self,
        module_id: str,
        host: str,
        status: dict[str, Any],
        pulse_time: dict[str, Any] | None,
    ) -> ModuleStatus:
        entry = ModuleStatus(
            module_id=module_id,
            host=host,
            status=status,
            pulse_time=pulse_time,
            updated_at=self._clock(),
        )
        self._modules[module_id] = entry
        return entry

    def record_error(self, module_id: str, host: str, error_code: str, error: object) -> ModuleStatus:
        entry = ModuleStatus(
            module_id=module_id,
            host=host,
            updated_at=self._clock(),
            error_code=error_code,
            error=str(error) if error is not None else None,
        )
        self._modules[module_id] = entry
        return entry
