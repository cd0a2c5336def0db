"""High-level async controller for the exhaust-fan relay fleet."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import aiohttp

from pyexhaust._transport import TasmotaTransport, Transport
from pyexhaust.config import ExhaustConfig
from pyexhaust.exceptions import ExhaustError
from pyexhaust.initializer import ModuleInitializer
from pyexhaust.models._base import utcnow
from pyexhaust.models.results import FleetStatus, ProcessReport, TurnOffResult, TurnOnResult, UnitStatus
from pyexhaust.models.state import ExhaustState
from pyexhaust.orchestrator import ActivationOrchestrator
from pyexhaust.registry import ModuleRegistry
from pyexhaust.scheduler import SchedulerLoop, TickReport
from pyexhaust.state.module_cache import ModuleStatusCache
from pyexhaust.state.store import ExhaustStateStore

_logger = logging.getLogger(__name__)


class ExhaustController:
    """Async controller wiring the registry, stores, orchestrator and scheduler.

    Usage::

        async with ExhaustController(ExhaustConfig.from_env()) as controller:
            await controller.start()
            await controller.turn_on("A1", minutes=10)

    All collaborators are created per controller; nothing is module-global.
    Pass ``transport`` to substitute a test double for the HTTP layer.
    """

    def __init__(
        self,
        config: ExhaustConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._external_transport = transport
        self._clock = clock
        self._sleep = sleep

        self.registry = ModuleRegistry(config.hosts)
        self.cache = ModuleStatusCache(clock=clock)
        self.store = ExhaustStateStore(config.state_file, clock=clock)

        self._transport: Transport | None = None
        self._orchestrator: ActivationOrchestrator | None = None
        self._scheduler: SchedulerLoop | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ExhaustController:
        if self._external_transport is not None:
            transport: Transport = self._external_transport
        else:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            transport = TasmotaTransport(self._config, self._http_session)
        self._transport = transport

        initializer = ModuleInitializer(
            transport,
            self.cache,
            expected_pulse_time=self._config.expected_pulse_time,
            relay_count=self._config.relay_count,
        )
        self._orchestrator = ActivationOrchestrator(
            self.registry,
            transport,
            self.store,
            self.cache,
            rearm_delay=self._config.rearm_delay,
            rearm_min_remaining_minutes=self._config.rearm_min_remaining_minutes,
            clock=self._clock,
            sleep=self._sleep,
        )
        self._scheduler = SchedulerLoop(
            self.registry,
            initializer,
            self.cache,
            self.store,
            self._orchestrator,
            interval=self._config.sweep_interval,
            clock=self._clock,
        )
        self.store.load()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._scheduler is not None:
            await self._scheduler.stop()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None
        self._orchestrator = None
        self._scheduler = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_orchestrator(self) -> ActivationOrchestrator:
        if self._orchestrator is None:
            raise ExhaustError("Controller not initialized. Use 'async with ExhaustController(...) as controller:'")
        return self._orchestrator

    def _require_scheduler(self) -> SchedulerLoop:
        if self._scheduler is None:
            raise ExhaustError("Controller not initialized. Use 'async with ExhaustController(...) as controller:'")
        return self._scheduler

    # ------------------------------------------------------------------
    # Scheduler
    # ------------------------------------------------------------------

    async def start(self) -> TickReport:
        """Recover interrupted commands, run the first tick, then start the timer."""
        self._require_orchestrator().recover_interrupted()
        return await self._require_scheduler().start()

    async def stop(self) -> None:
        await self._require_scheduler().stop()

    async def tick(self) -> TickReport:
        """Run one scheduler pass without starting the timer."""
        return await self._require_scheduler().tick()

    async def refresh_modules(self) -> list[str]:
        """Refresh the status cache of every healthy module."""
        return await self._require_scheduler().refresh_modules()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def turn_on(self, unit_id: str, minutes: float | None = None) -> TurnOnResult:
        return await self._require_orchestrator().turn_on(unit_id, minutes)

    async def turn_off(self, unit_id: str) -> TurnOffResult:
        return await self._require_orchestrator().turn_off(unit_id)

    def get_status(self, unit_id: str) -> UnitStatus:
        return self._require_orchestrator().get_status(unit_id)

    async def get_all_modules_status(self, *, refresh: bool = True) -> FleetStatus:
        """Status cache of every module plus the activation memory.

        With ``refresh=True`` (default) healthy modules are re-read first.
        """
        if refresh:
            await self.refresh_modules()
        return self._require_orchestrator().get_all_modules_status()

    async def configure_module(self, module_key: str | int, raw_command: str) -> Any:
        return await self._require_orchestrator().configure_module(module_key, raw_command)

    def get_memory(self, unit_id: str) -> ExhaustState | None:
        return self._require_orchestrator().get_memory(unit_id)

    def get_process_status(self) -> ProcessReport:
        return self._require_orchestrator().get_process_status()
