from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from pyexhaust.config import ExhaustConfig
from pyexhaust.exceptions import ExhaustTransportError
from pyexhaust.initializer import ModuleInitializer
from pyexhaust.orchestrator import ActivationOrchestrator
from pyexhaust.registry import ModuleRegistry
from pyexhaust.scheduler import SchedulerLoop
from pyexhaust.state.module_cache import ModuleStatusCache
from pyexhaust.state.store import ExhaustStateStore

HOSTS: dict[str, str] = {
    "A_14": "10.0.0.1",
    "A_58": "10.0.0.2",
    "B_14": "10.0.0.3",
    "B_58": "10.0.0.4",
    "C_14": "10.0.0.5",
    "C_58": "10.0.0.6",
    "PWR_14": "10.0.0.7",
    "PWR_58": "10.0.0.8",
}

_PULSE_SET_RE = re.compile(r"^PulseTime(\d) (\d+)$")
_POWER_RE = re.compile(r"^Power(\d) (On|Off)$")


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeFleet:
    """In-memory stand-in for the relay modules behind the transport."""

    def __init__(self, pulse_time: int = 5) -> None:
        self.calls: list[tuple[str, str]] = []
        self.raw_calls: list[tuple[str, str]] = []
        self.pulse_times: dict[str, list[int]] = defaultdict(lambda: [pulse_time] * 8)
        self.offline: set[str] = set()
        self.failing: set[tuple[str, str]] = set()
        self.stuck_pulse_time: set[str] = set()

    def commands(self, host: str) -> list[str]:
        return [command for h, command in self.calls if h == host]

    async def send(self, host: str, command: str) -> Any:
        self.calls.append((host, command))
        if host in self.offline or (host, command) in self.failing:
            raise ExhaustTransportError(f"{host} unreachable", host=host, command=command)

        if command == "Status":
            return {"Status": {"Module": 1, "DeviceName": host, "Power": 0}}
        if command == "PulseTime":
            return {"PulseTime": {"Set": list(self.pulse_times[host]), "Remaining": [0] * 8}}

        match = _PULSE_SET_RE.match(command)
        if match:
            relay, value = int(match.group(1)), int(match.group(2))
            if host not in self.stuck_pulse_time:
                self.pulse_times[host][relay - 1] = value
            return {f"PulseTime{relay}": {"Set": self.pulse_times[host][relay - 1], "Remaining": 0}}

        match = _POWER_RE.match(command)
        if match:
            return {f"POWER{match.group(1)}": match.group(2).upper()}

        raise AssertionError(f"unexpected command {command!r}")

    async def send_raw(self, host: str, command: str) -> Any:
        self.raw_calls.append((host, command))
        if host in self.offline:
            raise ExhaustTransportError(f"{host} unreachable", host=host, command=command)
        return {"Backlog": command}


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@dataclass
class Stack:
    fleet: FakeFleet
    clock: FakeClock
    sleeps: SleepRecorder
    registry: ModuleRegistry
    cache: ModuleStatusCache
    store: ExhaustStateStore
    initializer: ModuleInitializer
    orchestrator: ActivationOrchestrator
    scheduler: SchedulerLoop

    def mark_all_healthy(self) -> None:
        for module_id, host in self.registry.modules():
            self.cache.record_success(module_id, host, {"Status": {"Module": 1}}, None)


@pytest.fixture
def fleet() -> FakeFleet:
    return FakeFleet()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stack(fleet: FakeFleet, clock: FakeClock, tmp_path: Path) -> Stack:
    config = ExhaustConfig(hosts=HOSTS, state_file=tmp_path / "state.json")
    sleeps = SleepRecorder()
    registry = ModuleRegistry(config.hosts)
    cache = ModuleStatusCache(clock=clock)
    store = ExhaustStateStore(config.state_file, clock=clock)
    initializer = ModuleInitializer(fleet, cache)
    orchestrator = ActivationOrchestrator(
        registry,
        fleet,
        store,
        cache,
        rearm_delay=config.rearm_delay,
        rearm_min_remaining_minutes=config.rearm_min_remaining_minutes,
        clock=clock,
        sleep=sleeps,
    )
    scheduler = SchedulerLoop(registry, initializer, cache, store, orchestrator, interval=60.0, clock=clock)
    return Stack(fleet, clock, sleeps, registry, cache, store, initializer, orchestrator, scheduler)
