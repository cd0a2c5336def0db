"""Helpers for safe debug logging.

Raw configuration commands forwarded to the relay modules can carry
credentials (Wi-Fi, web UI and MQTT passwords). This module masks those
values and truncates large device payloads before they reach DEBUG logs.
"""

from __future__ import annotations

import re
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "password1",
        "password2",
        "webpassword",
        "mqttpassword",
    }
)

# Matches "<Command> <value>" for secret-bearing commands, plain or
# URL-encoded (%20 separator), up to the next Backlog separator.
_SECRET_COMMAND_RE = re.compile(
    r"(?i)(?<![a-z])(password[12]?|webpassword|mqttpassword)(\s+|%20|\+)([^;]*?)(?=\s*(;|%3B)|$)"
)


def redact_command(command: str) -> str:
    """Mask the value of any secret-bearing command inside *command*."""
    return _SECRET_COMMAND_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}<redacted>", command)


def _redact_value(key: str, value: Any, max_string: int) -> Any:
    if key.lower() in _SENSITIVE_VALUE_KEYS:
        return "<redacted>"
    return redact_for_log(value, max_string=max_string)


def redact_for_log(value: Any, *, max_string: int = 512) -> Any:
    """Return a copy of a decoded module response that is safe to log.

    Secret-bearing keys are masked. String values also go through
    :func:`redact_command` and are cut at *max_string* characters.
    Anything that is not JSON-shaped is returned as its ``repr``.
    """
    if isinstance(value, dict):
        return {str(k): _redact_value(str(k), v, max_string) for k, v in value.items()}
    if isinstance(value, list):
        return [redact_for_log(v, max_string=max_string) for v in value]
    if isinstance(value, str):
        value = redact_command(value)
        return value if len(value) <= max_string else f"{value[:max_string]}...<truncated>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return repr(value)
