"""Status and PulseTime reads/writes."""

from __future__ import annotations

from typing import Any

from pyexhaust._api import commands
from pyexhaust._transport import Transport


async def read_status(transport: Transport, host: str) -> Any:
    return await transport.send(host, commands.STATUS)


async def read_pulse_time(transport: Transport, host: str) -> Any:
    return await transport.send(host, commands.PULSE_TIME)


async def write_pulse_time(transport: Transport, host: str, relay: int, value: int) -> Any:
    return await transport.send(host, commands.set_pulse_time(relay, value))
