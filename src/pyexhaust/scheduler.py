"""Periodic scheduler: module bring-up/refresh, retries and auto-off sweep."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from pyexhaust._constants import DEFAULT_SWEEP_INTERVAL_S
from pyexhaust.exceptions import ExhaustError, ModuleInitError
from pyexhaust.initializer import ModuleInitializer
from pyexhaust.models._base import utcnow
from pyexhaust.models.state import ProcessStatus
from pyexhaust.orchestrator import ActivationOrchestrator
from pyexhaust.registry import ModuleRegistry
from pyexhaust.state.module_cache import ModuleStatusCache
from pyexhaust.state.store import ExhaustStateStore

_logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TickReport:
    """What one scheduler tick did."""

    skipped: bool = False
    initialized: list[str] = field(default_factory=list)
    init_failed: list[str] = field(default_factory=list)
    refreshed: list[str] = field(default_factory=list)
    retried: list[str] = field(default_factory=list)
    expired: list[str] = field(default_factory=list)


class SchedulerLoop:
    """Single periodic tick with "skip, don't queue" overlap semantics.

    Each tick:

    1. initializes every module that has no cache entry or holds an error
    2. refreshes every healthy module (concurrently across modules)
    3. retries every failed unit
    4. turns off every applied unit whose ``expires_at`` has passed

    :meth:`start` runs the first tick inline before the timer starts, so
    modules are brought up before the caller considers the process ready.
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        initializer: ModuleInitializer,
        cache: ModuleStatusCache,
        store: ExhaustStateStore,
        orchestrator: ActivationOrchestrator,
        *,
        interval: float = DEFAULT_SWEEP_INTERVAL_S,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._registry = registry
        self._initializer = initializer
        self._cache = cache
        self._store = store
        self._orchestrator = orchestrator
        self._interval = interval
        self._clock = clock
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        """Whether a tick is currently executing."""
        return self._running

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> TickReport:
        if self._task is not None:
            raise ExhaustError("Scheduler already started")
        _logger.info("Starting exhaust scheduler (interval=%ss)", self._interval)
        report = await self.tick()
        self._task = asyncio.create_task(self._run_forever(), name="pyexhaust-scheduler")
        return report

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        _logger.info("Exhaust scheduler stopped")

    async def _run_forever(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.tick()
            except Exception:
                # A broken tick must not kill the timer; the next one retries.
                _logger.exception("Exhaust scheduler tick failed")

    async def tick(self) -> TickReport:
        """Run one pass. Returns ``skipped=True`` if a tick is already running."""
        if self._running:
            _logger.debug("Previous tick still running, skipping")
            return TickReport(skipped=True)
        self._running = True
        try:
            report = TickReport()
            await self._sync_modules(report)
            await self._retry_failed(report)
            await self._sweep_expired(report)
            _logger.info(
                "Tick done: initialized=%s init_failed=%s refreshed=%d retried=%s expired=%s",
                report.initialized,
                report.init_failed,
                len(report.refreshed),
                report.retried,
                report.expired,
            )
            return report
        finally:
            self._running = False

    async def refresh_modules(self) -> list[str]:
        """Refresh the status cache of every healthy module concurrently."""
        healthy = [(m, h) for m, h in self._registry.modules() if not self._cache.needs_init(m)]
        await asyncio.gather(*(self._initializer.refresh(m, h) for m, h in healthy))
        return [m for m, _ in healthy]

    async def _sync_modules(self, report: TickReport) -> None:
        for module_id, host in self._registry.modules():
            if not self._cache.needs_init(module_id):
                continue
            try:
                await self._initializer.initialize(module_id, host)
            except ModuleInitError as exc:
                _logger.warning("Module %s not ready, retrying next tick: %s", module_id, exc)
                report.init_failed.append(module_id)
            else:
                report.initialized.append(module_id)

        # Freshly initialized modules were just read; only refresh the others.
        pending = [
            (m, h)
            for m, h in self._registry.modules()
            if m not in report.initialized and not self._cache.needs_init(m)
        ]
        await asyncio.gather(*(self._initializer.refresh(m, h) for m, h in pending))
        report.refreshed.extend(m for m, _ in pending)

    async def _retry_failed(self, report: TickReport) -> None:
        failed = [s.id for s in self._store.all() if s.process_status == ProcessStatus.FAILED]
        for unit_id in failed:
            try:
                result = await self._orchestrator.retry(unit_id)
            except ExhaustError as exc:
                _logger.warning("Retry of %s failed: %s", unit_id, exc)
                continue
            if result is not None:
                report.retried.append(unit_id)

    async def _sweep_expired(self, report: TickReport) -> None:
        now = self._clock()
        expired = [
            s.id for s in self._store.all() if s.process_status == ProcessStatus.APPLIED and s.is_expired(now)
        ]
        for unit_id in expired:
            try:
                result = await self._orchestrator.expire(unit_id)
            except ExhaustError as exc:
                _logger.warning("Auto-off of %s failed: %s", unit_id, exc)
                continue
            if result is not None:
                report.expired.append(unit_id)
