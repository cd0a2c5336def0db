from __future__ import annotations

from datetime import timedelta

import pytest

from pyexhaust.exceptions import ModuleNotConfiguredError, ModuleOfflineError, UnitIdParseError
from pyexhaust.models.state import ExhaustState, PendingCommand, ProcessStatus
from pyexhaust.models.unit import parse_unit_id
from pyexhaust.orchestrator import ActivationOrchestrator
from pyexhaust.registry import ModuleRegistry

from conftest import HOSTS, Stack

A14 = HOSTS["A_14"]
B14 = HOSTS["B_14"]
PWR14 = HOSTS["PWR_14"]
PWR58 = HOSTS["PWR_58"]


def _seed(stack: Stack, unit_id: str, minutes: float | None, **fields: object) -> ExhaustState:
    fields.setdefault("process_status", ProcessStatus.APPLIED)
    expires_at = stack.clock.now + timedelta(minutes=minutes) if minutes is not None else None
    return stack.store.put(ExhaustState.for_unit(parse_unit_id(unit_id), expires_at=expires_at, **fields))


# ----------------------------------------------------------------------
# turn_on
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_turn_on_applies_and_schedules_expiry(stack: Stack) -> None:
    stack.mark_all_healthy()

    result = await stack.orchestrator.turn_on("a-1", minutes=10)

    assert result.applied
    assert result.id == "A1"
    assert stack.fleet.commands(A14) == ["Power1 On"]
    state = stack.store.get("A1")
    assert state.process_status == ProcessStatus.APPLIED
    assert state.pending_command == PendingCommand.ON
    assert state.expires_at == stack.clock.now + timedelta(minutes=10)

    stack.clock.advance(minutes=4)
    status = stack.orchestrator.get_status("A1")
    assert status.memory is not None
    assert status.memory.expires_at > stack.clock.now
    assert status.memory.process_status == ProcessStatus.APPLIED
    assert status.memory.remaining_minutes == 6


@pytest.mark.asyncio
async def test_turn_on_without_minutes_has_no_expiry(stack: Stack) -> None:
    stack.mark_all_healthy()

    await stack.orchestrator.turn_on("B6")

    state = stack.store.get("B6")
    assert state.expires_at is None
    assert stack.fleet.commands(HOSTS["B_58"]) == ["Power2 On"]


@pytest.mark.asyncio
async def test_turn_on_rejects_offline_module_before_any_call(stack: Stack) -> None:
    stack.cache.record_error("A_14", A14, "STATUS_READ_FAILED", "timeout")

    with pytest.raises(ModuleOfflineError) as excinfo:
        await stack.orchestrator.turn_on("A1", minutes=10)

    assert excinfo.value.error_code == "STATUS_READ_FAILED"
    assert stack.fleet.calls == []
    assert stack.store.get("A1") is None


@pytest.mark.asyncio
async def test_turn_on_rejects_never_initialized_module(stack: Stack) -> None:
    with pytest.raises(ModuleOfflineError):
        await stack.orchestrator.turn_on("A1")

    assert stack.fleet.calls == []


@pytest.mark.asyncio
async def test_turn_on_rejects_bad_input_without_mutation(stack: Stack) -> None:
    stack.mark_all_healthy()

    with pytest.raises(UnitIdParseError):
        await stack.orchestrator.turn_on("D9")
    with pytest.raises(ValueError):
        await stack.orchestrator.turn_on("A1", minutes=0)
    with pytest.raises(ValueError):
        await stack.orchestrator.turn_on("A1", minutes=float("nan"))

    assert stack.fleet.calls == []
    assert len(stack.store) == 0


@pytest.mark.asyncio
async def test_turn_on_transport_failure_is_recorded_not_raised(stack: Stack) -> None:
    stack.mark_all_healthy()
    stack.fleet.failing.add((A14, "Power1 On"))

    result = await stack.orchestrator.turn_on("A1", minutes=10)

    assert not result.applied
    assert result.process_status == ProcessStatus.FAILED
    assert "unreachable" in result.error
    state = stack.store.get("A1")
    assert state.process_status == ProcessStatus.FAILED
    assert state.pending_command == PendingCommand.ON
    assert state.retry_count == 1
    assert state.last_error == result.error


@pytest.mark.asyncio
async def test_repeated_turn_on_replaces_state(stack: Stack) -> None:
    stack.mark_all_healthy()
    await stack.orchestrator.turn_on("A1", minutes=10)

    stack.clock.advance(minutes=3)
    await stack.orchestrator.turn_on("A1", minutes=30)

    assert stack.store.get("A1").expires_at == stack.clock.now + timedelta(minutes=30)
    assert len(stack.store) == 1


# ----------------------------------------------------------------------
# turn_off and group restore
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_turn_off_cuts_tower_branch_and_removes_state(stack: Stack) -> None:
    stack.mark_all_healthy()
    await stack.orchestrator.turn_on("B3", minutes=10)

    result = await stack.orchestrator.turn_off("B3")

    assert result.applied
    assert result.pwr_module_id == "PWR_14"
    assert result.pwr_relay == 2
    assert stack.fleet.commands(PWR14) == ["Power2 On"]
    assert "B3" not in stack.store


@pytest.mark.asyncio
async def test_turn_off_high_group_uses_pwr_58(stack: Stack) -> None:
    stack.mark_all_healthy()
    _seed(stack, "C7", 10)

    result = await stack.orchestrator.turn_off("C_7")

    assert result.pwr_module_id == "PWR_58"
    assert stack.fleet.commands(PWR58) == ["Power3 On"]


@pytest.mark.asyncio
async def test_turn_off_of_unknown_unit_still_cuts_power(stack: Stack) -> None:
    result = await stack.orchestrator.turn_off("A2")

    assert result.applied
    assert stack.fleet.commands(PWR14) == ["Power1 On"]
    assert len(stack.store) == 0


@pytest.mark.asyncio
async def test_turn_off_rearms_same_tower_units_with_time_left(stack: Stack) -> None:
    _seed(stack, "A1", 10)
    _seed(stack, "A3", 20)
    _seed(stack, "A4", None)
    stack.clock.advance(seconds=30)

    result = await stack.orchestrator.turn_off("A1")

    assert stack.fleet.calls[0] == (PWR14, "Power1 On")
    assert stack.fleet.commands(A14) == ["Power3 On", "Power4 On"]
    assert result.restored["A3"].rearmed
    assert result.restored["A3"].remaining_minutes == 20
    assert result.restored["A4"].rearmed
    assert stack.store.get("A3").expires_at == stack.clock.now + timedelta(minutes=20)
    assert stack.store.get("A4").expires_at is None
    assert stack.store.get("A1") is None


@pytest.mark.asyncio
async def test_turn_off_waits_between_rearm_commands(stack: Stack) -> None:
    _seed(stack, "A1", 10)
    _seed(stack, "A2", 30)
    _seed(stack, "A3", 30)
    _seed(stack, "A4", 30)

    await stack.orchestrator.turn_off("A1")

    assert stack.sleeps.calls == [2.0, 2.0]


@pytest.mark.asyncio
async def test_single_rearm_goes_out_without_delay(stack: Stack) -> None:
    _seed(stack, "A1", 10)
    _seed(stack, "A2", 30)
    _seed(stack, "A3", 2)

    result = await stack.orchestrator.turn_off("A1")

    assert result.restored["A2"].rearmed
    assert result.restored["A3"].skipped
    assert stack.sleeps.calls == []


@pytest.mark.asyncio
async def test_turn_off_does_not_touch_other_towers(stack: Stack) -> None:
    _seed(stack, "A1", 10)
    _seed(stack, "B1", 30)
    _seed(stack, "A5", 30)

    result = await stack.orchestrator.turn_off("A1")

    assert stack.fleet.commands(B14) == []
    assert stack.fleet.commands(HOSTS["A_58"]) == []
    assert result.restored == {}
    assert stack.sleeps.calls == []


@pytest.mark.asyncio
async def test_turn_off_skips_units_close_to_expiry(stack: Stack) -> None:
    _seed(stack, "A1", 10)
    _seed(stack, "A2", 2)
    _seed(stack, "A3", 5)

    result = await stack.orchestrator.turn_off("A1")

    assert result.restored["A2"].skipped
    assert not result.restored["A2"].rearmed
    assert result.restored["A2"].remaining_minutes == 2
    assert result.restored["A3"].skipped
    assert stack.fleet.commands(A14) == []
    assert stack.store.get("A2").process_status == ProcessStatus.APPLIED


@pytest.mark.asyncio
async def test_turn_off_ignores_units_not_applied(stack: Stack) -> None:
    _seed(stack, "A1", 10)
    _seed(stack, "A2", 30, process_status=ProcessStatus.FAILED)

    result = await stack.orchestrator.turn_off("A1")

    assert "A2" not in result.restored
    assert stack.fleet.commands(A14) == []


@pytest.mark.asyncio
async def test_power_cut_failure_leaves_unit_failed_off(stack: Stack) -> None:
    _seed(stack, "A1", 10)
    stack.fleet.failing.add((PWR14, "Power1 On"))

    result = await stack.orchestrator.turn_off("A1")

    assert not result.applied
    state = stack.store.get("A1")
    assert state.process_status == ProcessStatus.FAILED
    assert state.pending_command == PendingCommand.OFF
    assert state.retry_count == 1


@pytest.mark.asyncio
async def test_rearm_failure_marks_originating_unit_for_retry(stack: Stack) -> None:
    _seed(stack, "A1", 10)
    _seed(stack, "A2", 30)
    _seed(stack, "A3", 30)
    stack.fleet.failing.add((A14, "Power3 On"))

    result = await stack.orchestrator.turn_off("A1")

    assert not result.applied
    assert result.restored["A2"].rearmed
    state = stack.store.get("A1")
    assert state.process_status == ProcessStatus.FAILED
    assert state.pending_command == PendingCommand.OFF


@pytest.mark.asyncio
async def test_turn_off_requires_configured_pwr_module(stack: Stack) -> None:
    orchestrator = ActivationOrchestrator(
        ModuleRegistry({"A_14": A14}),
        stack.fleet,
        stack.store,
        stack.cache,
        clock=stack.clock,
        sleep=stack.sleeps,
    )

    with pytest.raises(ModuleNotConfiguredError):
        await orchestrator.turn_off("A1")

    assert stack.fleet.calls == []


# ----------------------------------------------------------------------
# retry / expire / recovery
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_retry_converges_failed_turn_on(stack: Stack) -> None:
    stack.mark_all_healthy()
    stack.fleet.failing.add((A14, "Power2 On"))
    await stack.orchestrator.turn_on("A2", minutes=15)

    failed_again = await stack.orchestrator.retry("A2")
    assert failed_again is not None and not failed_again.applied
    assert stack.store.get("A2").retry_count == 2

    stack.fleet.failing.clear()
    result = await stack.orchestrator.retry("A2")
    assert result is not None and result.applied
    state = stack.store.get("A2")
    assert state.process_status == ProcessStatus.APPLIED
    assert state.last_error is None


@pytest.mark.asyncio
async def test_retry_deferred_while_module_unhealthy(stack: Stack) -> None:
    _seed(stack, "A2", 15, process_status=ProcessStatus.FAILED, retry_count=1)
    stack.cache.record_error("A_14", A14, "STATUS_READ_FAILED", "timeout")

    assert await stack.orchestrator.retry("A2") is None
    assert stack.fleet.calls == []
    assert stack.store.get("A2").retry_count == 1


@pytest.mark.asyncio
async def test_retry_of_expired_failed_turn_on_turns_it_off(stack: Stack) -> None:
    stack.mark_all_healthy()
    _seed(stack, "A2", 1, process_status=ProcessStatus.FAILED)
    stack.clock.advance(minutes=2)

    result = await stack.orchestrator.retry("A2")

    assert result is not None and result.applied
    assert stack.fleet.commands(PWR14) == ["Power1 On"]
    assert stack.store.get("A2") is None


@pytest.mark.asyncio
async def test_retry_of_failed_turn_off_reruns_full_sequence(stack: Stack) -> None:
    stack.mark_all_healthy()
    _seed(stack, "A1", 10, pending_command=PendingCommand.OFF, process_status=ProcessStatus.FAILED)
    _seed(stack, "A2", 30)

    result = await stack.orchestrator.retry("A1")

    assert result is not None and result.applied
    assert stack.fleet.commands(PWR14) == ["Power1 On"]
    assert stack.fleet.commands(A14) == ["Power2 On"]
    assert stack.store.get("A1") is None


@pytest.mark.asyncio
async def test_retry_ignores_non_failed_units(stack: Stack) -> None:
    stack.mark_all_healthy()
    _seed(stack, "A1", 10)

    assert await stack.orchestrator.retry("A1") is None
    assert await stack.orchestrator.retry("A2") is None
    assert stack.fleet.calls == []


@pytest.mark.asyncio
async def test_expire_only_acts_on_expired_applied_units(stack: Stack) -> None:
    _seed(stack, "A1", 10)

    assert await stack.orchestrator.expire("A1") is None

    stack.clock.advance(minutes=10)
    result = await stack.orchestrator.expire("A1")
    assert result is not None and result.applied
    assert stack.store.get("A1") is None


def test_recover_interrupted_marks_starting_states_failed(stack: Stack) -> None:
    _seed(stack, "A1", 10, process_status=ProcessStatus.STARTING)
    _seed(stack, "A2", 10)

    recovered = stack.orchestrator.recover_interrupted()

    assert recovered == ["A1"]
    assert stack.store.get("A1").process_status == ProcessStatus.FAILED
    assert stack.store.get("A1").last_error == "interrupted"
    assert stack.store.get("A2").process_status == ProcessStatus.APPLIED


# ----------------------------------------------------------------------
# views and configuration
# ----------------------------------------------------------------------


def test_get_status_is_pure_read(stack: Stack) -> None:
    stack.mark_all_healthy()

    status = stack.orchestrator.get_status("c_6")

    assert status.identity.module_id == "C_58"
    assert status.identity.relay == 2
    assert status.module_status is not None and status.module_status.is_healthy
    assert status.memory is None
    assert stack.fleet.calls == []


def test_fleet_and_process_views(stack: Stack) -> None:
    stack.mark_all_healthy()
    _seed(stack, "A1", 10)
    _seed(stack, "B7", None)

    fleet_status = stack.orchestrator.get_all_modules_status()
    report = stack.orchestrator.get_process_status()

    assert set(fleet_status.modules) == set(HOSTS)
    assert {m.id: m.remaining_minutes for m in fleet_status.memory} == {"A1": 10, "B7": None}
    assert report.total == 2
    assert report.generated_at == stack.clock.now
    assert stack.orchestrator.get_memory("a-1").id == "A1"
    assert stack.orchestrator.get_memory("A2") is None

    wire = fleet_status.to_wire()
    assert wire["modules"]["A_14"]["errorCode"] is None
    assert wire["memory"][0]["moduleId"] == "A_14"


@pytest.mark.asyncio
async def test_configure_module_forwards_raw_command(stack: Stack) -> None:
    response = await stack.orchestrator.configure_module("3", "Backlog%20PulseTime1%205")

    assert response == {"Backlog": "Backlog%20PulseTime1%205"}
    assert stack.fleet.raw_calls == [(B14, "Backlog%20PulseTime1%205")]

    await stack.orchestrator.configure_module("192.168.0.99", "Status")
    assert stack.fleet.raw_calls[-1] == ("192.168.0.99", "Status")


@pytest.mark.asyncio
async def test_configure_module_rejects_empty_command(stack: Stack) -> None:
    with pytest.raises(ValueError):
        await stack.orchestrator.configure_module("A_14", "   ")

    assert stack.fleet.raw_calls == []
