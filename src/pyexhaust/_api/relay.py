"""Relay on/off calls.

Commands for one module are always awaited one after another; the relay
hardware must never see overlapping pulses.
"""

from __future__ import annotations

from typing import Any

from pyexhaust._api import commands
from pyexhaust._transport import Transport


async def power_on(transport: Transport, host: str, relay: int) -> Any:
    """Energise *relay* (a momentary pulse, bounded by its PulseTime)."""
    return await transport.send(host, commands.power_on(relay))


async def power_off(transport: Transport, host: str, relay: int) -> Any:
    return await transport.send(host, commands.power_off(relay))


async def force_all_off(transport: Transport, host: str, relay_count: int) -> list[Any]:
    """Send ``Power<N> Off`` to relays ``1..relay_count`` sequentially."""
    results: list[Any] = []
    for relay in range(1, relay_count + 1):
        results.append(await power_off(transport, host, relay))
    return results
