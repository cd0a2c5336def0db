"""Module bring-up and status refresh.

:meth:`ModuleInitializer.initialize` drives one relay module to a
known-good state:

1. read ``Status``
2. force every relay off
3. read ``PulseTime`` and correct each relay that differs from the
   expected value
4. re-read ``PulseTime`` and verify every relay
5. record the result in the :class:`ModuleStatusCache`

Each step records its own error code in the cache before raising, so the
scheduler can retry the module on its next tick. Running it against an
already-correct module only costs the read/verify round-trips.
"""

from __future__ import annotations

import logging
from typing import Any

from pyexhaust._api import relay as _relay_api
from pyexhaust._api import status as _status_api
from pyexhaust._constants import EXPECTED_PULSE_TIME, EXPECTED_RELAY_COUNT
from pyexhaust._transport import Transport
from pyexhaust.exceptions import (
    ExhaustTransportError,
    ModuleInitError,
    PowerOffFailedError,
    PulseTimeConfigFailedError,
    PulseTimeReadFailedError,
    PulseTimeVerifyFailedError,
    StatusReadFailedError,
)
from pyexhaust.models.module_status import ModuleStatus, pulse_time_values
from pyexhaust.state.module_cache import ModuleStatusCache

_logger = logging.getLogger(__name__)


class ModuleInitializer:
    def __init__(
        self,
        transport: Transport,
        cache: ModuleStatusCache,
        *,
        expected_pulse_time: int = EXPECTED_PULSE_TIME,
        relay_count: int = EXPECTED_RELAY_COUNT,
    ) -> None:
        self._transport = transport
        self._cache = cache
        self._expected_pulse_time = expected_pulse_time
        self._relay_count = relay_count

    def _fail(
        self,
        error_type: type[ModuleInitError],
        module_id: str,
        host: str,
        message: str,
        cause: BaseException | None = None,
    ) -> ModuleInitError:
        detail = f"{message}: {cause}" if cause is not None else message
        self._cache.record_error(module_id, host, error_type.code, detail)
        _logger.error("Module %s (%s) %s: %s", module_id, host, error_type.code, detail)
        return error_type(f"{module_id}: {detail}", module_id=module_id)

    def _mismatched_relays(self, values: list[Any]) -> list[int]:
        return [
            relay
            for relay in range(1, self._relay_count + 1)
            if (values[relay - 1] if relay - 1 < len(values) else None) != self._expected_pulse_time
        ]

    async def initialize(self, module_id: str, host: str) -> ModuleStatus:
        """Bring *module_id* to a known-good state.

        Raises a :class:`ModuleInitError` subclass naming the failed step.
        """
        _logger.info("Initializing module %s (%s)", module_id, host)

        try:
            status = await _status_api.read_status(self._transport, host)
        except ExhaustTransportError as exc:
            raise self._fail(StatusReadFailedError, module_id, host, "Status read failed", exc) from exc
        if not isinstance(status, dict) or not status:
            raise self._fail(StatusReadFailedError, module_id, host, "Empty Status response")

        try:
            await _relay_api.force_all_off(self._transport, host, self._relay_count)
        except ExhaustTransportError as exc:
            raise self._fail(PowerOffFailedError, module_id, host, "Forcing relays off failed", exc) from exc
        _logger.debug("Module %s relays forced off", module_id)

        try:
            pulse_time = await _status_api.read_pulse_time(self._transport, host)
        except ExhaustTransportError as exc:
            raise self._fail(PulseTimeReadFailedError, module_id, host, "PulseTime read failed", exc) from exc

        try:
            for relay in self._mismatched_relays(pulse_time_values(pulse_time)):
                _logger.info(
                    "Correcting PulseTime%d on %s to %d",
                    relay,
                    module_id,
                    self._expected_pulse_time,
                )
                await _status_api.write_pulse_time(self._transport, host, relay, self._expected_pulse_time)
        except ExhaustTransportError as exc:
            raise self._fail(PulseTimeConfigFailedError, module_id, host, "PulseTime correction failed", exc) from exc

        try:
            verified = await _status_api.read_pulse_time(self._transport, host)
        except ExhaustTransportError as exc:
            raise self._fail(PulseTimeVerifyFailedError, module_id, host, "PulseTime re-read failed", exc) from exc

        values = pulse_time_values(verified)
        mismatched = self._mismatched_relays(values)
        if mismatched:
            raise self._fail(
                PulseTimeVerifyFailedError,
                module_id,
                host,
                f"PulseTime differs from {self._expected_pulse_time} on relay(s) {mismatched} (got {values})",
            )

        entry = self._cache.record_success(module_id, host, status, verified)
        _logger.info("Module %s initialized", module_id)
        return entry

    async def refresh(self, module_id: str, host: str) -> ModuleStatus:
        """Re-read ``Status`` and ``PulseTime`` of a healthy module.

        Failures are recorded as ``STATUS_READ_FAILED`` (which schedules a
        full re-initialization on the next tick) and never raised.
        """
        try:
            status = await _status_api.read_status(self._transport, host)
            pulse_time = await _status_api.read_pulse_time(self._transport, host)
        except ExhaustTransportError as exc:
            _logger.warning("Refreshing module %s (%s) failed: %s", module_id, host, exc)
            return self._cache.record_error(module_id, host, StatusReadFailedError.code, exc)

        if not isinstance(status, dict) or not status:
            _logger.warning("Module %s (%s) returned an empty Status", module_id, host)
            return self._cache.record_error(module_id, host, StatusReadFailedError.code, "Empty Status response")

        return self._cache.record_success(
            module_id,
            host,
            status,
            pulse_time if isinstance(pulse_time, dict) else None,
        )
