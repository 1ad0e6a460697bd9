"""
Unit tests for the device directory.

Tests verify:
- Local devices are always present and unchanged.
- Cloud devices are filtered by meter family (EM, PM, 3EM substrings).
- Each refresh replaces the cloud set wholesale.
- Discovery failures yield an empty cloud set without raising.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from collector.src.cloud import CloudApiError
from collector.src.directory import DeviceDirectory, is_meter_type
from collector.src.models import Device, DeviceSource

_LOCAL = [
    Device.local("Kitchen", "http://192.168.1.20/status"),
    Device.local("Garage", "http://192.168.1.21/status"),
]


def _cloud_client(*results: object) -> MagicMock:
    client = MagicMock()
    client.discover_devices = AsyncMock(side_effect=list(results))
    return client


class TestMeterFamilies:
    @pytest.mark.parametrize("device_type", ["SHEM-3", "SNPM-001PCEU16", "Pro3EM", "SPEM-003CEBEU"])
    def test_meter_types_kept(self, device_type: str) -> None:
        assert is_meter_type(device_type)

    @pytest.mark.parametrize("device_type", ["SHSW-1", "SHHT-1", "shem-3", "", None, 42])
    def test_other_types_dropped(self, device_type: object) -> None:
        assert not is_meter_type(device_type)


class TestLocalOnly:
    def test_current_devices_before_refresh(self) -> None:
        directory = DeviceDirectory(_LOCAL)
        snapshot = directory.current_devices()
        assert snapshot.local == tuple(_LOCAL)
        assert snapshot.cloud == ()

    @pytest.mark.asyncio
    async def test_refresh_without_cloud_client(self) -> None:
        directory = DeviceDirectory(_LOCAL)
        snapshot = await directory.refresh()
        assert snapshot.local == tuple(_LOCAL)
        assert snapshot.cloud == ()
        assert len(snapshot) == 2


class TestCloudRefresh:
    @pytest.mark.asyncio
    async def test_filters_and_builds_cloud_devices(self) -> None:
        client = _cloud_client(
            [
                {"id": "a1", "name": "Main Meter", "type": "SHEM-3"},
                {"id": "b2", "name": "Light", "type": "SHSW-1"},
                {"id": "c3", "name": "", "type": "SNPM-001PCEU16"},
                {"name": "No id", "type": "SHEM"},
                "not-an-object",
            ]
        )
        directory = DeviceDirectory(_LOCAL, cloud_client=client)

        snapshot = await directory.refresh()

        assert [d.id for d in snapshot.cloud] == ["a1", "c3"]
        assert snapshot.cloud[0].name == "Main Meter"
        assert snapshot.cloud[0].source is DeviceSource.CLOUD
        # Nameless devices are tagged with their id.
        assert snapshot.cloud[1].name == "c3"
        assert directory.current_devices() is snapshot

    @pytest.mark.asyncio
    async def test_refresh_replaces_cloud_set(self) -> None:
        client = _cloud_client(
            [
                {"id": "a1", "name": "A", "type": "SHEM-3"},
                {"id": "b2", "name": "B", "type": "SHEM-3"},
            ],
            [{"id": "c3", "name": "C", "type": "SHEM-3"}],
        )
        directory = DeviceDirectory(_LOCAL, cloud_client=client)

        await directory.refresh()
        snapshot = await directory.refresh()

        assert [d.id for d in snapshot.cloud] == ["c3"]
        assert snapshot.local == tuple(_LOCAL)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [httpx.ConnectError("down"), httpx.ReadTimeout("slow"), CloudApiError("HTTP 500")],
    )
    async def test_discovery_failure_empties_cloud_set(self, error: Exception) -> None:
        client = _cloud_client([{"id": "a1", "name": "A", "type": "SHEM-3"}], error)
        directory = DeviceDirectory(_LOCAL, cloud_client=client)

        first = await directory.refresh()
        assert len(first.cloud) == 1

        second = await directory.refresh()

        assert second.cloud == ()
        assert second.local == tuple(_LOCAL)

    @pytest.mark.asyncio
    async def test_unexpected_discovery_error_empties_cloud_set(self) -> None:
        client = _cloud_client(
            [{"id": "c1", "name": "Meter", "type": "SHEM"}],
            RuntimeError("boom"),
        )
        directory = DeviceDirectory(_LOCAL, cloud_client=client)

        await directory.refresh()
        second = await directory.refresh()

        assert second.cloud == ()
        assert directory.current_devices().cloud == ()
        assert directory.current_devices().local == tuple(_LOCAL)
