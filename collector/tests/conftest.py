"""
Shared test fixtures for collector daemon tests.

Provides environment variable fixtures for CollectorSettings configuration
tests. All collector env vars are cleaned before each test to ensure isolation.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import pytest

# All CollectorSettings environment variable names, used for cleanup.
_ALL_COLLECTOR_ENV_VARS = (
    "INFLUX_URL",
    "INFLUX_ORG",
    "INFLUX_BUCKET",
    "INFLUX_TOKEN",
    "SHELLY_CLOUD_SERVER",
    "SHELLY_CLOUD_AUTH_KEY",
    "LOCAL_DEVICES",
    "POLL_INTERVAL_S",
    "DIRECTORY_REFRESH_S",
    "DEVICE_TIMEOUT_S",
    "CLOUD_TIMEOUT_S",
    "SINK_TIMEOUT_S",
    "CLOUD_BATCH_SIZE",
    "EMIT_ZERO_POWER",
    "HEALTH_PATH",
    "STATS_EVERY_N",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_collector_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all collector env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_COLLECTOR_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set the required InfluxDB variables plus one local device."""
    env = {
        "INFLUX_URL": "http://influxdb:8086",
        "INFLUX_ORG": "home",
        "INFLUX_BUCKET": "power",
        "INFLUX_TOKEN": "influx-token-xyz",
        "LOCAL_DEVICES": '[{"name": "Kitchen", "url": "http://192.168.1.20/status"}]',
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env
