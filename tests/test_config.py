from __future__ import annotations

import os
from pathlib import Path

import pytest

from pyexhaust.config import ExhaustConfig
from pyexhaust.exceptions import ExhaustConfigError


def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("EXHAUST_"):
            monkeypatch.delenv(key, raising=False)


def test_defaults() -> None:
    config = ExhaustConfig()

    assert config.hosts == {}
    assert config.port == 80
    assert config.timeout == 30.0
    assert config.sweep_interval == 60.0
    assert config.rearm_delay == 2.0
    assert config.rearm_min_remaining_minutes == 5
    assert config.expected_pulse_time == 5
    assert config.relay_count == 4
    assert config.state_file == Path("exhaust-state.json")


def test_from_env_reads_hosts_and_converts_milliseconds(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("EXHAUST_A_14_HOST", "10.0.0.1")
    monkeypatch.setenv("EXHAUST_PWR_14_HOST", "10.0.0.7")
    monkeypatch.setenv("EXHAUST_PORT", "8080")
    monkeypatch.setenv("EXHAUST_TIMEOUT_MS", "5000")
    monkeypatch.setenv("EXHAUST_SWEEP_INTERVAL_MS", "15000")
    monkeypatch.setenv("EXHAUST_REARM_DELAY_MS", "500")
    monkeypatch.setenv("EXHAUST_REARM_MIN_MINUTES", "3")
    monkeypatch.setenv("EXHAUST_STATE_FILE", "/var/lib/exhaust/state.json")

    config = ExhaustConfig.from_env()

    assert config.hosts == {"A_14": "10.0.0.1", "PWR_14": "10.0.0.7"}
    assert config.port == 8080
    assert config.timeout == 5.0
    assert config.sweep_interval == 15.0
    assert config.rearm_delay == 0.5
    assert config.rearm_min_remaining_minutes == 3
    assert config.state_file == Path("/var/lib/exhaust/state.json")


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("EXHAUST_A_14_HOST", "10.0.0.1")
    monkeypatch.setenv("EXHAUST_TIMEOUT_MS", "5000")

    config = ExhaustConfig.from_env(timeout=1.5, hosts={"A_14": "10.9.9.9", "b_58": "10.0.0.4"})

    assert config.timeout == 1.5
    assert config.hosts == {"A_14": "10.9.9.9", "B_58": "10.0.0.4"}


def test_from_env_rejects_non_numeric_values(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("EXHAUST_PORT", "eighty")

    with pytest.raises(ExhaustConfigError):
        ExhaustConfig.from_env()


def test_unknown_module_id_is_rejected() -> None:
    with pytest.raises(ExhaustConfigError):
        ExhaustConfig(hosts={"D_14": "10.0.0.1"})


def test_blank_hosts_are_dropped() -> None:
    config = ExhaustConfig(hosts={"A_14": "  ", "a_58": " 10.0.0.2 "})

    assert config.hosts == {"A_58": "10.0.0.2"}


@pytest.mark.parametrize(
    "kwargs",
    [{"timeout": 0}, {"sweep_interval": -1}, {"rearm_delay": -0.1}, {"relay_count": 0}],
)
def test_invalid_tunables_are_rejected(kwargs: dict[str, float]) -> None:
    with pytest.raises(ExhaustConfigError):
        ExhaustConfig(**kwargs)
