"""
Pydantic models and counters shared by the collector components.

Defines the Device record polled by the collector, the CanonicalMetric
produced by the normalizer, and the process-lifetime RunStatistics kept
by the collection loop.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, model_validator


class DeviceSource(str, Enum):
    """Where a device's status is fetched from."""

    LOCAL = "local"
    CLOUD = "cloud"


class Device(BaseModel):
    """One monitored power meter.

    Attributes:
        id: Stable identifier. The status URL for local devices, the
            vendor-assigned id for cloud devices.
        name: Human label, used as the ``device`` tag of emitted metrics.
        source: Local network or Shelly Cloud.
        endpoint: Status URL, only set for local devices.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    source: DeviceSource
    endpoint: str | None = None

    @classmethod
    def local(cls, name: str, url: str) -> Device:
        """Build a local device; its id is the status URL."""
        return cls(id=url, name=name, source=DeviceSource.LOCAL, endpoint=url)

    @classmethod
    def cloud(cls, device_id: str, name: str) -> Device:
        """Build a cloud device from a discovery entry."""
        return cls(id=device_id, name=name, source=DeviceSource.CLOUD)


class CanonicalMetric(BaseModel):
    """A normalized power/temperature reading for one device.

    Attributes:
        device_name: Device tag for the metric line.
        total_power_w: Sum of all channel readings in watts, or None when
            no channel was found.
        per_channel_w: One value per physical channel, in channel order.
            Empty for device families that only report a total.
        temperature_c: Device temperature in degrees Celsius.
    """

    model_config = ConfigDict(frozen=True)

    device_name: str
    total_power_w: float | None = None
    per_channel_w: tuple[float, ...] = ()
    temperature_c: float | None = None

    @model_validator(mode="after")
    def _has_payload(self) -> CanonicalMetric:
        """Reject metrics that carry neither power nor temperature."""
        if self.total_power_w is None and self.temperature_c is None:
            raise ValueError("metric needs a total power or a temperature")
        return self


@dataclass
class RunStatistics:
    """Process-lifetime write counters for the collection loop."""

    attempts: int = 0
    successes: int = 0
    failures: int = 0

    def record(self, ok: bool) -> None:
        self.attempts += 1
        if ok:
            self.successes += 1
        else:
            self.failures += 1

    @property
    def success_rate(self) -> float:
        """Percentage of successful writes, 0.0 before the first attempt."""
        if self.attempts == 0:
            return 0.0
        return self.successes * 100.0 / self.attempts
