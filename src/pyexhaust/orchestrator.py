"""Turn-on, turn-off and group-restore orchestration.

Turning a single unit off is done through the power-cut (PWR) module of
its group: pulsing the PWR relay for the unit's tower de-energises every
fan on that tower/group branch. The other units of the same branch that
should stay on are then re-armed one by one, with a delay between
commands so the relays never energise simultaneously.

Failures that happen while a hardware command is in flight are recorded
in the state store (``process_status=failed``) and reported in the
returned result; the scheduler's retry pass converges them later.
Synchronous exceptions are limited to faults known before any hardware
call (bad unit id, unconfigured module, offline module, bad minutes).
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

from pyexhaust._api import relay as _relay_api
from pyexhaust._constants import (
    DEFAULT_REARM_DELAY_S,
    DEFAULT_REARM_MIN_REMAINING_MINUTES,
    pwr_module_for_group,
    pwr_relay_for_tower,
)
from pyexhaust._redact import redact_command
from pyexhaust._transport import Transport
from pyexhaust.exceptions import ExhaustTransportError, ModuleOfflineError
from pyexhaust.models._base import utcnow
from pyexhaust.models.results import (
    FleetStatus,
    ProcessReport,
    RestoreOutcome,
    TurnOffResult,
    TurnOnResult,
    UnitStatus,
)
from pyexhaust.models.state import ExhaustState, MemoryEntry, PendingCommand, ProcessStatus
from pyexhaust.models.unit import UnitId, parse_unit_id
from pyexhaust.registry import ModuleRegistry
from pyexhaust.state.module_cache import ModuleStatusCache
from pyexhaust.state.store import ExhaustStateStore

_logger = logging.getLogger(__name__)

INTERRUPTED_ERROR = "interrupted"


def _validate_minutes(minutes: float | None) -> float | None:
    if minutes is None:
        return None
    if isinstance(minutes, bool) or not isinstance(minutes, (int, float)):
        raise ValueError(f"minutes must be a number, got {minutes!r}")
    if not math.isfinite(minutes) or minutes <= 0:
        raise ValueError(f"minutes must be positive, got {minutes}")
    return minutes


class ActivationOrchestrator:
    """Implements the unit activation state machine on top of the stores.

    One :class:`asyncio.Lock` serialises every state mutation, whether it
    comes from an inbound command or from the scheduler.
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        transport: Transport,
        store: ExhaustStateStore,
        cache: ModuleStatusCache,
        *,
        rearm_delay: float = DEFAULT_REARM_DELAY_S,
        rearm_min_remaining_minutes: int = DEFAULT_REARM_MIN_REMAINING_MINUTES,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._registry = registry
        self._transport = transport
        self._store = store
        self._cache = cache
        self._rearm_delay = rearm_delay
        self._rearm_min_remaining_minutes = rearm_min_remaining_minutes
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Inbound commands
    # ------------------------------------------------------------------

    async def turn_on(self, unit_id: str, minutes: float | None = None) -> TurnOnResult:
        """Energise a unit's relay, optionally scheduling an auto-off.

        Raises :class:`UnitIdParseError`, :class:`ModuleNotConfiguredError`,
        :class:`ModuleOfflineError` or :class:`ValueError` before touching
        state or hardware. A transport failure is returned in the result
        with ``process_status=failed``.
        """
        unit = parse_unit_id(unit_id)
        minutes = _validate_minutes(minutes)
        host = self._registry.resolve_host(unit.module_id)
        self._require_online(unit.module_id)

        async with self._lock:
            expires_at = self._clock() + timedelta(minutes=minutes) if minutes else None
            self._store.put(
                ExhaustState.for_unit(
                    unit,
                    expires_at=expires_at,
                    pending_command=PendingCommand.ON,
                    process_status=ProcessStatus.STARTING,
                )
            )
            _logger.info(
                "Turning on %s (module=%s relay=%d minutes=%s)",
                unit.id,
                unit.module_id,
                unit.relay,
                minutes,
            )
            return await self._apply_on(unit, host, auto_off_minutes=minutes)

    async def turn_off(self, unit_id: str) -> TurnOffResult:
        """Cut the unit's tower/group branch and re-arm the units that stay on.

        On success the unit's state is removed. A transport failure leaves
        it ``failed`` with ``pending_command=off`` for the retry pass.
        """
        unit = parse_unit_id(unit_id)
        pwr_module_id = pwr_module_for_group(unit.group)
        pwr_host = self._registry.resolve_host(pwr_module_id)

        async with self._lock:
            return await self._turn_off_locked(unit, pwr_module_id, pwr_host)

    async def configure_module(self, module_key: str | int, raw_command: str) -> Any:
        """Forward an operator-supplied, pre-encoded command to a module.

        *module_key* may be a module id, a 1-based index into the fixed
        module order, or an IPv4 literal. Transport errors are raised.
        """
        command = raw_command.strip() if isinstance(raw_command, str) else ""
        if not command:
            raise ValueError("raw_command must be a non-empty string")
        host = self._registry.resolve_by_flexible_key(module_key)
        _logger.info("Configuring module %s (%s): %s", module_key, host, redact_command(command))
        return await self._transport.send_raw(host, command)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def get_status(self, unit_id: str) -> UnitStatus:
        unit = parse_unit_id(unit_id)
        state = self._store.get(unit.id)
        return UnitStatus(
            identity=unit,
            module_status=self._cache.get(unit.module_id),
            memory=MemoryEntry.from_state(state, self._clock()) if state is not None else None,
        )

    def get_all_modules_status(self) -> FleetStatus:
        return FleetStatus(modules=self._cache.all(), memory=self._store.snapshot(self._clock()))

    def get_memory(self, unit_id: str) -> ExhaustState | None:
        return self._store.get(parse_unit_id(unit_id).id)

    def get_process_status(self) -> ProcessReport:
        now = self._clock()
        memory = self._store.snapshot(now)
        return ProcessReport(total=len(memory), memory=memory, generated_at=now)

    # ------------------------------------------------------------------
    # Scheduler entry points
    # ------------------------------------------------------------------

    def recover_interrupted(self) -> list[str]:
        """Mark states left in ``starting`` (process stopped mid-command) as failed."""
        recovered: list[str] = []
        for state in self._store.all():
            if state.process_status == ProcessStatus.STARTING:
                self._store.update(
                    state.id,
                    process_status=ProcessStatus.FAILED,
                    last_error=INTERRUPTED_ERROR,
                )
                recovered.append(state.id)
        if recovered:
            _logger.warning("Recovered %d interrupted command(s): %s", len(recovered), ", ".join(recovered))
        return recovered

    async def retry(self, unit_id: str) -> TurnOnResult | TurnOffResult | None:
        """Re-attempt the pending command of a failed unit.

        Returns ``None`` when nothing was attempted (state gone, no longer
        failed, or target module currently unhealthy).
        """
        async with self._lock:
            state = self._store.get(unit_id)
            if state is None or state.process_status != ProcessStatus.FAILED:
                return None
            unit = parse_unit_id(state.id)

            if state.pending_command == PendingCommand.ON and not state.is_expired(self._clock()):
                if not self._cache.is_healthy(unit.module_id):
                    _logger.debug("Retry of %s deferred: module %s unhealthy", unit.id, unit.module_id)
                    return None
                host = self._registry.resolve_host(unit.module_id)
                _logger.info("Retrying turn-on of %s (attempt %d)", unit.id, state.retry_count + 1)
                self._store.update(unit.id, process_status=ProcessStatus.STARTING)
                return await self._apply_on(unit, host)

            # Pending off, or a failed on whose auto-off time already passed.
            pwr_module_id = pwr_module_for_group(unit.group)
            if not self._cache.is_healthy(pwr_module_id):
                _logger.debug("Retry of %s deferred: module %s unhealthy", unit.id, pwr_module_id)
                return None
            pwr_host = self._registry.resolve_host(pwr_module_id)
            _logger.info("Retrying turn-off of %s (attempt %d)", unit.id, state.retry_count + 1)
            return await self._apply_off(unit, pwr_module_id, pwr_host)

    async def expire(self, unit_id: str) -> TurnOffResult | None:
        """Turn off an applied unit whose ``expires_at`` has passed."""
        async with self._lock:
            state = self._store.get(unit_id)
            if state is None or state.process_status != ProcessStatus.APPLIED:
                return None
            if not state.is_expired(self._clock()):
                return None
            unit = parse_unit_id(state.id)
            pwr_module_id = pwr_module_for_group(unit.group)
            pwr_host = self._registry.resolve_host(pwr_module_id)
            _logger.info("Auto-off of %s (expired at %s)", unit.id, state.expires_at)
            return await self._turn_off_locked(unit, pwr_module_id, pwr_host)

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _require_online(self, module_id: str) -> None:
        entry = self._cache.get(module_id)
        if entry is None:
            raise ModuleOfflineError(f"Module {module_id} has not been initialized", module_id=module_id)
        if not entry.is_healthy:
            raise ModuleOfflineError(
                f"Module {module_id} is offline ({entry.error_code}): {entry.error}",
                module_id=module_id,
                error_code=entry.error_code,
            )

    def _record_failure(self, unit_id: str, exc: Exception, **changes: Any) -> ExhaustState:
        current = self._store.get(unit_id)
        retry_count = current.retry_count + 1 if current is not None else 1
        return self._store.update(
            unit_id,
            process_status=ProcessStatus.FAILED,
            last_error=str(exc),
            retry_count=retry_count,
            **changes,
        )

    async def _apply_on(self, unit: UnitId, host: str, *, auto_off_minutes: float | None = None) -> TurnOnResult:
        try:
            response = await _relay_api.power_on(self._transport, host, unit.relay)
        except ExhaustTransportError as exc:
            failed = self._record_failure(unit.id, exc)
            _logger.warning("Turn-on of %s failed, will retry: %s", unit.id, exc)
            return TurnOnResult(
                id=unit.id,
                module_id=unit.module_id,
                relay=unit.relay,
                auto_off_minutes=auto_off_minutes,
                process_status=ProcessStatus.FAILED,
                error=str(exc),
                state=failed,
            )

        applied = self._store.update(unit.id, process_status=ProcessStatus.APPLIED, last_error=None)
        _logger.info("Unit %s on (expires_at=%s)", unit.id, applied.expires_at)
        return TurnOnResult(
            id=unit.id,
            module_id=unit.module_id,
            relay=unit.relay,
            auto_off_minutes=auto_off_minutes,
            process_status=ProcessStatus.APPLIED,
            response=response,
            state=applied,
        )

    async def _turn_off_locked(self, unit: UnitId, pwr_module_id: str, pwr_host: str) -> TurnOffResult:
        if self._store.get(unit.id) is None:
            self._store.put(
                ExhaustState.for_unit(
                    unit,
                    pending_command=PendingCommand.OFF,
                    process_status=ProcessStatus.STARTING,
                )
            )
        else:
            self._store.update(
                unit.id,
                pending_command=PendingCommand.OFF,
                process_status=ProcessStatus.STARTING,
                last_error=None,
                retry_count=0,
            )
        _logger.info("Turning off %s via %s relay %d", unit.id, pwr_module_id, pwr_relay_for_tower(unit.tower))
        return await self._apply_off(unit, pwr_module_id, pwr_host)

    async def _apply_off(self, unit: UnitId, pwr_module_id: str, pwr_host: str) -> TurnOffResult:
        pwr_relay = pwr_relay_for_tower(unit.tower)
        self._store.update(
            unit.id,
            pending_command=PendingCommand.OFF,
            process_status=ProcessStatus.STARTING,
        )
        restored: dict[str, RestoreOutcome] = {}
        try:
            off_response = await _relay_api.power_on(self._transport, pwr_host, pwr_relay)
            await self._restore_group(unit, restored)
        except ExhaustTransportError as exc:
            self._record_failure(unit.id, exc, pending_command=PendingCommand.OFF)
            _logger.warning("Turn-off of %s failed, will retry: %s", unit.id, exc)
            return TurnOffResult(
                id=unit.id,
                pwr_module_id=pwr_module_id,
                pwr_relay=pwr_relay,
                process_status=ProcessStatus.FAILED,
                error=str(exc),
                restored=restored,
            )

        self._store.remove(unit.id)
        _logger.info("Unit %s off (%d unit(s) re-armed)", unit.id, sum(o.rearmed for o in restored.values()))
        return TurnOffResult(
            id=unit.id,
            pwr_module_id=pwr_module_id,
            pwr_relay=pwr_relay,
            process_status=ProcessStatus.APPLIED,
            off_response=off_response,
            restored=restored,
        )

    async def _restore_group(self, unit: UnitId, outcomes: dict[str, RestoreOutcome]) -> None:
        """Re-arm the other applied units of the same tower and group.

        Units with an expiry and no more than the minimum remaining minutes
        are skipped and left to expire. Units without an expiry were turned
        on indefinitely, so they are always re-armed. The re-arm delay
        separates successive re-arm commands. *outcomes* is filled in place
        so a partial result survives a transport error.
        """
        candidates = [
            state
            for state in self._store.all()
            if state.id != unit.id
            and state.tower == unit.tower
            and state.group == unit.group
            and state.process_status == ProcessStatus.APPLIED
        ]
        if not candidates:
            return

        host = self._registry.hosts.get(unit.module_id)
        needs_delay = False
        for state in candidates:
            remaining = state.remaining_minutes(self._clock())
            has_expiry = state.expires_at is not None
            if host is None or (has_expiry and (remaining is None or remaining <= self._rearm_min_remaining_minutes)):
                outcomes[state.id] = RestoreOutcome(
                    id=state.id,
                    rearmed=False,
                    skipped=True,
                    remaining_minutes=remaining,
                    expires_at=state.expires_at,
                )
                _logger.info("Not re-arming %s (remaining=%s min)", state.id, remaining)
                continue

            if needs_delay:
                await self._sleep(self._rearm_delay)
            needs_delay = True
            response = await _relay_api.power_on(self._transport, host, state.relay)
            expires_at = self._clock() + timedelta(minutes=remaining) if remaining is not None else None
            self._store.update(state.id, expires_at=expires_at)
            outcomes[state.id] = RestoreOutcome(
                id=state.id,
                rearmed=True,
                remaining_minutes=remaining,
                expires_at=expires_at,
                response=response,
            )
            _logger.info("Re-armed %s (remaining=%s min)", state.id, remaining)
