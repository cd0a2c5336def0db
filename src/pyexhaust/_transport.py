"""HTTP transport to the relay modules' command endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol
from urllib.parse import quote

import aiohttp
from yarl import URL

from pyexhaust._redact import redact_command, redact_for_log
from pyexhaust.config import ExhaustConfig
from pyexhaust.exceptions import ExhaustTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the command helpers.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`TasmotaTransport`) concrete.
    """

    async def send(self, host: str, command: str) -> Any:
        ...

    async def send_raw(self, host: str, command: str) -> Any:
        ...


class TasmotaTransport:
    """Issue ``GET {scheme}://{host}:{port}/{path}?cmnd=<command>`` requests.

    Every request carries the same total timeout. Timeouts, connection
    errors, non-2xx responses and non-JSON bodies all surface as
    :class:`ExhaustTransportError`.
    """

    def __init__(self, config: ExhaustConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.timeout)

    def build_url(self, host: str) -> str:
        port_part = f":{self._config.port}" if self._config.port else ""
        path = self._config.command_path.strip("/")
        return f"{self._config.scheme}://{host}{port_part}/{path}"

    async def send(self, host: str, command: str) -> Any:
        """Send *command* as the ``cmnd`` query parameter and return the decoded JSON."""
        url = URL(self.build_url(host)).with_query({"cmnd": command})
        return await self._get(url, host=host, command=command)

    async def send_raw(self, host: str, command: str) -> Any:
        """Send an already URL-encoded command without re-encoding it.

        Used for composite ``Backlog`` commands supplied by an operator.
        Characters that are never valid in a query string are still escaped
        so a half-encoded command cannot produce a malformed URL.
        """
        encoded = quote(command, safe="%;=&+/:,'()*!$@?~-._")
        url = URL(f"{self.build_url(host)}?cmnd={encoded}", encoded=True)
        return await self._get(url, host=host, command=command)

    async def _get(self, url: URL, *, host: str, command: str) -> Any:
        safe_command = redact_command(command)
        _logger.debug("GET %s cmnd=%s", host, safe_command)

        try:
            async with self._http.get(url, timeout=self._timeout) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise ExhaustTransportError(
                        f"HTTP {resp.status} from {host} for {safe_command!r}: {text[:200]}",
                        status_code=resp.status,
                        host=host,
                        command=safe_command,
                    )
        except ExhaustTransportError:
            raise
        except asyncio.TimeoutError as exc:
            raise ExhaustTransportError(
                f"Request to {host} for {safe_command!r} timed out after {self._config.timeout}s",
                host=host,
                command=safe_command,
            ) from exc
        except aiohttp.ClientError as exc:
            raise ExhaustTransportError(
                f"Request to {host} for {safe_command!r} failed: {exc}",
                host=host,
                command=safe_command,
            ) from exc

        try:
            result = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ExhaustTransportError(
                f"Invalid JSON from {host} for {safe_command!r}: {text[:200]}",
                host=host,
                command=safe_command,
            ) from exc

        _logger.debug("Response from %s: %s", host, redact_for_log(result, max_string=256))
        return result
