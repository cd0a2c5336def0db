"""Command-line entry point.

Examples::

    python -m pyexhaust run
    python -m pyexhaust on A1 --minutes 10
    python -m pyexhaust off A-1
    python -m pyexhaust status A1
    python -m pyexhaust configure 3 "Backlog%20PulseTime1%205"

Configuration comes from ``EXHAUST_*`` environment variables (see
:meth:`pyexhaust.config.ExhaustConfig.from_env`). One-shot commands run a
single scheduler pass first so module status is known before acting; they
share the state file with a running ``run`` process, so avoid issuing
them while the service is up.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from typing import Any

from pydantic import BaseModel

from pyexhaust.config import ExhaustConfig
from pyexhaust.controller import ExhaustController
from pyexhaust.exceptions import ExhaustError

_LOG = logging.getLogger("pyexhaust")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="pyexhaust", description="Exhaust-fan relay controller")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--state-file", help="Override EXHAUST_STATE_FILE")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the scheduler until interrupted")

    on = sub.add_parser("on", help="Turn a unit on")
    on.add_argument("unit_id")
    on.add_argument("--minutes", type=float, default=None, help="Auto-off after N minutes")

    off = sub.add_parser("off", help="Turn a unit off")
    off.add_argument("unit_id")

    status = sub.add_parser("status", help="Unit status, or every module when no id is given")
    status.add_argument("unit_id", nargs="?")

    sub.add_parser("process", help="Activation memory snapshot")

    configure = sub.add_parser("configure", help="Send a pre-encoded raw command to a module")
    configure.add_argument("module", help="Module id, 1-based index or IPv4 address")
    configure.add_argument("raw_command")

    return parser.parse_args(argv)


def _dump(value: Any) -> None:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True)
    json.dump(value, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


async def _run_service(controller: ExhaustController) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    await controller.start()
    _LOG.info("Exhaust service running")
    await stop.wait()
    await controller.stop()


async def _main(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.state_file:
        overrides["state_file"] = args.state_file
    config = ExhaustConfig.from_env(**overrides)

    async with ExhaustController(config) as controller:
        if args.command == "run":
            await _run_service(controller)
            return 0

        if args.command == "process":
            _dump(controller.get_process_status())
            return 0

        if args.command == "configure":
            _dump(await controller.configure_module(args.module, args.raw_command))
            return 0

        await controller.tick()
        if args.command == "on":
            result = await controller.turn_on(args.unit_id, args.minutes)
            _dump(result)
            return 0 if result.applied else 2
        if args.command == "off":
            result = await controller.turn_off(args.unit_id)
            _dump(result)
            return 0 if result.applied else 2
        if args.unit_id:
            _dump(controller.get_status(args.unit_id))
        else:
            _dump(await controller.get_all_modules_status(refresh=False))
        return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        return asyncio.run(_main(args))
    except (ExhaustError, ValueError) as exc:
        _LOG.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
