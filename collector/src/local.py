"""
HTTP poller for Shelly devices reachable on the local network.

Issues one unauthenticated GET per device against its configured status URL
and returns the decoded JSON object. Never raises: network errors, non-200
answers and unparseable bodies are logged with the device name and reported
as ``None`` so the caller can move on to the next device.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from collector.src.models import Device

logger = logging.getLogger(__name__)

DEVICE_TIMEOUT_S: float = 5.0
"""Default timeout per local status request in seconds."""


class LocalPoller:
    """Sequential status fetcher for local devices.

    Args:
        timeout_s: Request timeout in seconds (default 5).
    """

    def __init__(self, timeout_s: float = DEVICE_TIMEOUT_S) -> None:
        self._timeout_s = timeout_s

    async def poll(self, device: Device) -> dict[str, Any] | None:
        """Fetch the raw status of *device*.

        Returns:
            The decoded JSON object, or ``None`` on any error.
        """
        if not device.endpoint:
            logger.warning("Device '%s' has no status endpoint, skipping", device.name)
            return None

        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await client.get(device.endpoint)
        except httpx.HTTPError as exc:
            logger.warning("Device '%s': status request failed: %s", device.name, exc)
            return None

        if response.status_code != 200:
            logger.warning(
                "Device '%s': status request returned HTTP %d",
                device.name,
                response.status_code,
            )
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Device '%s': status body is not valid JSON", device.name)
            return None

        if not isinstance(data, dict):
            logger.warning("Device '%s': status body is not a JSON object", device.name)
            return None
        return data
