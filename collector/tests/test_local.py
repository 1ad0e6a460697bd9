"""
Unit tests for the local device poller.

Tests verify:
- GET to the device endpoint with the configured timeout.
- Decoded JSON object returned on HTTP 200.
- Network errors, non-200, invalid JSON and non-object bodies yield None
  and log the device name.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from collector.src.local import LocalPoller
from collector.src.models import Device

_DEVICE = Device.local("Kitchen", "http://192.168.1.20/status")


def _make_client(
    status_code: int = 200,
    body: object = None,
    json_error: bool = False,
    side_effect: Exception | None = None,
) -> AsyncMock:
    mock_response = MagicMock()
    mock_response.status_code = status_code
    if json_error:
        mock_response.json = MagicMock(side_effect=ValueError("bad json"))
    else:
        mock_response.json = MagicMock(return_value=body)

    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.get = AsyncMock(side_effect=side_effect)
    else:
        mock_client.get = AsyncMock(return_value=mock_response)
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


class TestLocalPollerSuccess:
    @pytest.mark.asyncio
    async def test_returns_status_object(self) -> None:
        body = {"meters": [{"power": 12.5}]}
        mock_client = _make_client(body=body)

        with patch(
            "collector.src.local.httpx.AsyncClient", return_value=mock_client
        ) as mock_cls:
            result = await LocalPoller(timeout_s=5.0).poll(_DEVICE)

        assert result == body
        mock_cls.assert_called_once_with(timeout=5.0)
        mock_client.get.assert_awaited_once_with("http://192.168.1.20/status")


class TestLocalPollerFailures:
    @pytest.mark.asyncio
    async def test_connect_error_returns_none(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        mock_client = _make_client(side_effect=httpx.ConnectError("unreachable"))

        with (
            patch("collector.src.local.httpx.AsyncClient", return_value=mock_client),
            caplog.at_level(logging.WARNING, logger="collector.src.local"),
        ):
            result = await LocalPoller().poll(_DEVICE)

        assert result is None
        assert "Kitchen" in caplog.text

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self) -> None:
        mock_client = _make_client(side_effect=httpx.ConnectTimeout("timeout"))

        with patch("collector.src.local.httpx.AsyncClient", return_value=mock_client):
            assert await LocalPoller().poll(_DEVICE) is None

    @pytest.mark.asyncio
    async def test_non_200_returns_none(self) -> None:
        mock_client = _make_client(status_code=404, body={})

        with patch("collector.src.local.httpx.AsyncClient", return_value=mock_client):
            assert await LocalPoller().poll(_DEVICE) is None

    @pytest.mark.asyncio
    async def test_invalid_json_returns_none(self) -> None:
        mock_client = _make_client(json_error=True)

        with patch("collector.src.local.httpx.AsyncClient", return_value=mock_client):
            assert await LocalPoller().poll(_DEVICE) is None

    @pytest.mark.asyncio
    async def test_non_object_body_returns_none(self) -> None:
        mock_client = _make_client(body=[1, 2, 3])

        with patch("collector.src.local.httpx.AsyncClient", return_value=mock_client):
            assert await LocalPoller().poll(_DEVICE) is None

    @pytest.mark.asyncio
    async def test_device_without_endpoint_returns_none(self) -> None:
        cloud_device = Device.cloud("abc123", "Remote")

        with patch("collector.src.local.httpx.AsyncClient") as mock_cls:
            assert await LocalPoller().poll(cloud_device) is None
            mock_cls.assert_not_called()
