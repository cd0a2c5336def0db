"""Controller configuration for pyexhaust."""

from __future__ import annotations

import dataclasses
import math
import os
from pathlib import Path
from typing import Any

from pyexhaust._constants import (
    DEFAULT_COMMAND_PATH,
    DEFAULT_PORT,
    DEFAULT_REARM_DELAY_S,
    DEFAULT_REARM_MIN_REMAINING_MINUTES,
    DEFAULT_SCHEME,
    DEFAULT_STATE_FILE,
    DEFAULT_SWEEP_INTERVAL_S,
    DEFAULT_TIMEOUT_S,
    EXPECTED_PULSE_TIME,
    EXPECTED_RELAY_COUNT,
    MODULE_ORDER,
)
from pyexhaust.exceptions import ExhaustConfigError


def _env_ms_to_seconds(value: str, env_key: str) -> float:
    try:
        return float(value) / 1000.0
    except ValueError as exc:
        raise ExhaustConfigError(f"{env_key} must be numeric, got {value!r}") from exc


def _env_int(value: str, env_key: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise ExhaustConfigError(f"{env_key} must be an integer, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class ExhaustConfig:
    """Controller configuration.

    Parameters
    ----------
    hosts : dict[str, str]
        Network host per module id (``A_14`` ... ``PWR_58``). Modules
        without a host are treated as not configured.
    port : int
        HTTP port of the relay modules.
    scheme : str
        URL scheme used to reach the modules.
    command_path : str
        Path of the module command endpoint (``/cm`` on Tasmota).
    timeout : float
        Total timeout in seconds applied to every device request.
    sweep_interval : float
        Seconds between scheduler ticks.
    rearm_delay : float
        Seconds to wait between successive group-restore commands.
    rearm_min_remaining_minutes : int
        Units with this many minutes left (or fewer) are not re-armed
        after a group power cut.
    expected_pulse_time : int
        PulseTime value every relay must carry after bring-up.
    relay_count : int
        Number of relays per module.
    state_file : Path
        JSON document holding the persisted activation states.
    """

    hosts: dict[str, str] = dataclasses.field(default_factory=dict)
    port: int = DEFAULT_PORT
    scheme: str = DEFAULT_SCHEME
    command_path: str = DEFAULT_COMMAND_PATH
    timeout: float = DEFAULT_TIMEOUT_S
    sweep_interval: float = DEFAULT_SWEEP_INTERVAL_S
    rearm_delay: float = DEFAULT_REARM_DELAY_S
    rearm_min_remaining_minutes: int = DEFAULT_REARM_MIN_REMAINING_MINUTES
    expected_pulse_time: int = EXPECTED_PULSE_TIME
    relay_count: int = EXPECTED_RELAY_COUNT
    state_file: Path = Path(DEFAULT_STATE_FILE)

    def __post_init__(self) -> None:
        normalized: dict[str, str] = {}
        for module_id, host in self.hosts.items():
            key = str(module_id).strip().upper()
            if key not in MODULE_ORDER:
                raise ExhaustConfigError(f"Unknown module id in hosts: {module_id!r}")
            if host and str(host).strip():
                normalized[key] = str(host).strip()
        object.__setattr__(self, "hosts", normalized)
        object.__setattr__(self, "state_file", Path(self.state_file))

        if not math.isfinite(self.timeout) or self.timeout <= 0:
            raise ExhaustConfigError(f"timeout must be positive, got {self.timeout}")
        if not math.isfinite(self.sweep_interval) or self.sweep_interval <= 0:
            raise ExhaustConfigError(f"sweep_interval must be positive, got {self.sweep_interval}")
        if self.rearm_delay < 0:
            raise ExhaustConfigError(f"rearm_delay must not be negative, got {self.rearm_delay}")
        if self.rearm_min_remaining_minutes < 0:
            raise ExhaustConfigError(
                f"rearm_min_remaining_minutes must not be negative, got {self.rearm_min_remaining_minutes}"
            )
        if self.relay_count < 1:
            raise ExhaustConfigError(f"relay_count must be at least 1, got {self.relay_count}")

    @classmethod
    def from_env(cls, **overrides: Any) -> ExhaustConfig:
        """Create configuration from environment variables.

        Reads ``EXHAUST_<MODULE>_HOST`` for every module id in the fixed
        module order, plus the optional ``EXHAUST_*`` tunables. Explicit
        keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        ExhaustConfig
            Populated configuration.
        """
        env = os.environ

        hosts: dict[str, str] = {}
        for module_id in MODULE_ORDER:
            val = env.get(f"EXHAUST_{module_id}_HOST")
            if val:
                hosts[module_id] = val

        # Allow overriding individual hosts via a nested dict
        host_overrides = overrides.pop("hosts", None)
        if isinstance(host_overrides, dict):
            hosts.update(host_overrides)

        config_kwargs: dict[str, Any] = {"hosts": hosts}

        _ENV_STR_MAP = {
            "EXHAUST_SCHEME": "scheme",
            "EXHAUST_COMMAND_PATH": "command_path",
            "EXHAUST_STATE_FILE": "state_file",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_INT_MAP = {
            "EXHAUST_PORT": "port",
            "EXHAUST_REARM_MIN_MINUTES": "rearm_min_remaining_minutes",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = _env_int(val, env_key)

        # The deployment environment historically expresses durations in ms
        _ENV_MS_MAP = {
            "EXHAUST_TIMEOUT_MS": "timeout",
            "EXHAUST_SWEEP_INTERVAL_MS": "sweep_interval",
            "EXHAUST_REARM_DELAY_MS": "rearm_delay",
        }
        for env_key, field_name in _ENV_MS_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = _env_ms_to_seconds(val, env_key)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
