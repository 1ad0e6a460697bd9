"""
Device directory: the set of devices polled by each collection cycle.

Local devices come from configuration and never change. Cloud devices are
rediscovered on every refresh and replace the previous cloud set wholesale;
a failed discovery leaves the cloud set empty until the next refresh. Only
power-metering families are kept (type containing "EM", "PM" or "3EM").

The directory does not own the refresh timer; the collection loop decides
when to call :meth:`DeviceDirectory.refresh`.

CHANGELOG:
- 2026-10-17: Unexpected discovery errors also empty the cloud set
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from collector.src.cloud import CloudApiError
from collector.src.models import Device

if TYPE_CHECKING:
    from collector.src.cloud import CloudClient

logger = logging.getLogger(__name__)

METER_FAMILY_TAGS: tuple[str, ...] = ("EM", "PM", "3EM")
"""Case-sensitive substrings that mark a cloud device type as a power meter."""


@dataclass(frozen=True)
class DeviceSet:
    """Directory snapshot partitioned by source."""

    local: tuple[Device, ...] = ()
    cloud: tuple[Device, ...] = ()

    def __len__(self) -> int:
        return len(self.local) + len(self.cloud)


def is_meter_type(device_type: object) -> bool:
    """Return True if a cloud device type belongs to a known meter family."""
    if not isinstance(device_type, str):
        return False
    return any(tag in device_type for tag in METER_FAMILY_TAGS)


class DeviceDirectory:
    """Cached device list merging static local devices with cloud discovery.

    Args:
        local_devices: Devices polled over the local network.
        cloud_client: Shelly Cloud client, or None when cloud polling is off.
    """

    def __init__(
        self,
        local_devices: Iterable[Device],
        cloud_client: CloudClient | None = None,
    ) -> None:
        self._local = tuple(local_devices)
        self._cloud_client = cloud_client
        self._snapshot = DeviceSet(local=self._local)

    def current_devices(self) -> DeviceSet:
        """Return the cached snapshot without any I/O."""
        return self._snapshot

    async def refresh(self) -> DeviceSet:
        """Rediscover cloud devices and replace the cached snapshot.

        Never raises: discovery failures produce an empty cloud set.
        """
        cloud = await self._discover_cloud()
        self._snapshot = DeviceSet(local=self._local, cloud=cloud)
        logger.info(
            "Device directory refreshed: %d local, %d cloud",
            len(self._local),
            len(cloud),
        )
        return self._snapshot

    async def _discover_cloud(self) -> tuple[Device, ...]:
        if self._cloud_client is None:
            return ()

        try:
            entries = await self._cloud_client.discover_devices()
        except (httpx.HTTPError, CloudApiError) as exc:
            logger.warning("Cloud device discovery failed: %s", exc)
            return ()
        except Exception:
            logger.error("Cloud device discovery error", exc_info=True)
            return ()

        devices: list[Device] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            device_id = entry.get("id")
            if device_id is None or not is_meter_type(entry.get("type")):
                continue
            device_id = str(device_id)
            name = entry.get("name") or device_id
            devices.append(Device.cloud(device_id, str(name)))
        return tuple(devices)
