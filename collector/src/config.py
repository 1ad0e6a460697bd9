"""
Collector daemon configuration loaded from a JSON file and environment variables.

Uses Pydantic BaseSettings for env var loading and validation. Values may
come from an optional JSON config file whose keys are the field names;
environment variables (and ``.env``) always take precedence over the file.

Required fields (InfluxDB endpoint and credentials) fail startup when
missing. Out-of-range intervals are clamped to their default with a warning
instead of failing.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

logger = logging.getLogger(__name__)

# (min, max, default) per clamped field.
_CLAMPED_FIELDS: dict[str, tuple[int, int, int]] = {
    "poll_interval_s": (5, 3600, 30),
    "directory_refresh_s": (60, 86400, 3600),
    "cloud_batch_size": (1, 10, 10),
}


class LocalDeviceConfig(BaseModel):
    """A local device entry: metric name and absolute status URL."""

    name: str
    url: str

    @field_validator("url")
    @classmethod
    def url_must_be_http(cls, v: str) -> str:
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError(f"device url must be an http(s) URL (got: '{v}')")
        return v


class CollectorSettings(BaseSettings):
    """Collector daemon configuration.

    Attributes:
        influx_url: InfluxDB v2 base URL, e.g. ``http://influxdb:8086``.
        influx_org: InfluxDB organization.
        influx_bucket: Target bucket.
        influx_token: InfluxDB API token with write access.
        shelly_cloud_server: Shelly Cloud server URL. Empty disables cloud
            polling.
        shelly_cloud_auth_key: Shelly Cloud API key, required with the server.
        local_devices: Local devices to poll (name + status URL).
        poll_interval_s: Seconds between collection cycles (5-3600).
        directory_refresh_s: Seconds between cloud discovery runs (60-86400).
        device_timeout_s: Timeout for local device requests.
        cloud_timeout_s: Timeout for Shelly Cloud requests.
        sink_timeout_s: Timeout for InfluxDB writes.
        cloud_batch_size: Device ids per cloud status request (1-10).
        emit_zero_power: Emit ``power=0.0`` for idle devices. Disable to
            drop totals that sum to exactly zero.
        health_path: Liveness marker file path.
        stats_every_n: Write attempts between success-rate log lines.
        log_level: Root log level.
    """

    influx_url: str
    influx_org: str
    influx_bucket: str
    influx_token: str
    shelly_cloud_server: str = ""
    shelly_cloud_auth_key: str = ""
    local_devices: list[LocalDeviceConfig] = []
    poll_interval_s: int = 30
    directory_refresh_s: int = 3600
    device_timeout_s: float = 5.0
    cloud_timeout_s: float = 15.0
    sink_timeout_s: float = 5.0
    cloud_batch_size: int = 10
    emit_zero_power: bool = True
    health_path: str = "/data/health.json"
    stats_every_n: int = 100
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Let the environment override values passed from the config file."""
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @field_validator("influx_url")
    @classmethod
    def influx_url_must_be_http(cls, v: str) -> str:
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError(f"INFLUX_URL must be an http(s) URL (got: '{v}')")
        return v.rstrip("/")

    @field_validator("shelly_cloud_server")
    @classmethod
    def cloud_server_must_be_https(cls, v: str) -> str:
        if v and not v.lower().startswith("https://"):
            raise ValueError(
                f"SHELLY_CLOUD_SERVER must use HTTPS (got: '{v[:30]}')"
            )
        return v.rstrip("/")

    @field_validator(*_CLAMPED_FIELDS, mode="after")
    @classmethod
    def clamp_to_default(cls, v: int, info: ValidationInfo) -> int:
        """Replace out-of-range values with the field default."""
        lo, hi, default = _CLAMPED_FIELDS[info.field_name]
        if not lo <= v <= hi:
            logger.warning(
                "%s=%s outside %s..%s, using default %s",
                info.field_name.upper(),
                v,
                lo,
                hi,
                default,
            )
            return default
        return v

    @field_validator("device_timeout_s", "cloud_timeout_s", "sink_timeout_s")
    @classmethod
    def timeout_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be > 0")
        return v

    @field_validator("stats_every_n")
    @classmethod
    def stats_every_n_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("STATS_EVERY_N must be >= 1")
        return v

    @model_validator(mode="after")
    def _check_sources(self) -> CollectorSettings:
        """Require complete cloud credentials and at least one device source."""
        if bool(self.shelly_cloud_server) != bool(self.shelly_cloud_auth_key):
            raise ValueError(
                "SHELLY_CLOUD_SERVER and SHELLY_CLOUD_AUTH_KEY must be set together"
            )
        if not self.local_devices and not self.cloud_enabled:
            raise ValueError(
                "no devices configured: set LOCAL_DEVICES or the Shelly Cloud settings"
            )
        return self

    @property
    def cloud_enabled(self) -> bool:
        return bool(self.shelly_cloud_server and self.shelly_cloud_auth_key)


def load_settings(path: str | Path | None = None) -> CollectorSettings:
    """Build settings from an optional JSON config file plus the environment.

    Args:
        path: JSON file whose top-level keys are CollectorSettings field
            names. A missing file is not an error.

    Raises:
        pydantic.ValidationError: On missing required values or invalid
            fields.
        ValueError: If the config file is not a JSON object.
    """
    file_values: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if config_path.is_file():
            file_values = json.loads(config_path.read_text(encoding="utf-8"))
            if not isinstance(file_values, dict):
                raise ValueError(f"config file {config_path} must hold a JSON object")
            logger.info("Loaded config file %s", config_path)
        else:
            logger.info("Config file %s not found, using environment only", config_path)
    return CollectorSettings(**file_values)
