"""
Shelly Cloud API client and batch status poller.

The cloud API limits status requests to 10 device ids, so cloud devices are
split into fixed-size chunks ``[i, i+10)`` in their original order and each
chunk is fetched with one POST.

Operations:
- chunked(seq, size): Split a sequence into order-preserving chunks.
- CloudClient.discover_devices(): GET /v2/devices, list of {id, name, type}.
- CloudClient.fetch_status(ids): POST /v2/devices/status, {id: raw status}.
- CloudPoller.poll_chunk(ids): One chunk, ``None`` when the chunk failed.
- CloudPoller.poll_batch(ids, max_batch_size): All chunks, merged.

A failed chunk is skipped in full: no retry and no per-device fallback. Ids
missing from a successful answer are left out without an error.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_BATCH_SIZE: int = 10
"""Maximum ids per status request accepted by the Shelly Cloud API."""

CLOUD_TIMEOUT_S: float = 15.0
"""Default timeout for cloud discovery and status requests in seconds."""


class CloudApiError(Exception):
    """The Shelly Cloud API answered with an error or a malformed body."""


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """Split *items* into consecutive chunks of at most *size* elements.

    Raises:
        ValueError: If *size* is smaller than 1.
    """
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class CloudClient:
    """Thin HTTPS client for the two Shelly Cloud endpoints used here.

    Args:
        server: Cloud server base URL, e.g.
            ``https://shelly-42-eu.shelly.cloud``.
        auth_key: API key sent as a Bearer token.
        timeout_s: Request timeout in seconds (default 15).
    """

    def __init__(
        self,
        server: str,
        auth_key: str,
        timeout_s: float = CLOUD_TIMEOUT_S,
    ) -> None:
        self._server = server.rstrip("/")
        self._auth_key = auth_key
        self._timeout_s = timeout_s

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._auth_key}"}

    async def discover_devices(self) -> list[dict[str, Any]]:
        """List the devices registered on the cloud account.

        Returns:
            Device entries, each carrying at least ``id`` and ``type``.

        Raises:
            httpx.HTTPError: On transport failures.
            CloudApiError: On a non-200 answer or a malformed body.
        """
        async with httpx.AsyncClient(timeout=self._timeout_s) as client:
            response = await client.get(
                f"{self._server}/v2/devices",
                headers=self._headers(),
            )
        body = _decode(response, "device discovery")

        if isinstance(body, dict):
            body = body.get("data", body.get("devices"))
        if not isinstance(body, list):
            raise CloudApiError("device discovery: expected a list of devices")
        return [entry for entry in body if isinstance(entry, dict)]

    async def fetch_status(self, device_ids: Sequence[str]) -> dict[str, Any]:
        """Fetch raw status for up to MAX_BATCH_SIZE devices.

        Raises:
            ValueError: If more than MAX_BATCH_SIZE ids are passed.
            httpx.HTTPError: On transport failures.
            CloudApiError: On a non-200 answer or a body without ``data``.
        """
        if len(device_ids) > MAX_BATCH_SIZE:
            raise ValueError(
                f"at most {MAX_BATCH_SIZE} ids per status request, got {len(device_ids)}"
            )
        async with httpx.AsyncClient(timeout=self._timeout_s) as client:
            response = await client.post(
                f"{self._server}/v2/devices/status",
                json={"ids": list(device_ids)},
                headers=self._headers(),
            )
        body = _decode(response, "batch status")

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise CloudApiError("batch status: response has no 'data' object")
        return data


def _decode(response: httpx.Response, operation: str) -> Any:
    """Check the status code and decode a JSON body."""
    if response.status_code != 200:
        raise CloudApiError(f"{operation}: HTTP {response.status_code}")
    try:
        return response.json()
    except ValueError as exc:
        raise CloudApiError(f"{operation}: body is not valid JSON") from exc


class CloudPoller:
    """Batch status poller on top of a :class:`CloudClient`.

    Args:
        client: The cloud API client.
        max_batch_size: Ids per request, capped at MAX_BATCH_SIZE.
    """

    def __init__(self, client: CloudClient, max_batch_size: int = MAX_BATCH_SIZE) -> None:
        self._client = client
        self.max_batch_size = max(1, min(max_batch_size, MAX_BATCH_SIZE))

    async def poll_chunk(self, device_ids: Sequence[str]) -> dict[str, Any] | None:
        """Fetch one chunk of device statuses.

        Returns:
            Mapping of device id to raw status, or ``None`` if the whole
            chunk failed.
        """
        if not device_ids:
            return {}
        try:
            return await self._client.fetch_status(device_ids)
        except (httpx.HTTPError, CloudApiError) as exc:
            logger.warning(
                "Cloud status chunk of %d devices failed, skipping: %s",
                len(device_ids),
                exc,
            )
            return None

    async def poll_batch(
        self,
        device_ids: Sequence[str],
        max_batch_size: int | None = None,
        shutdown_event: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        """Fetch statuses for all *device_ids*, one request per chunk.

        Failed chunks contribute nothing. When *shutdown_event* is set the
        remaining chunks are not requested.

        Convenience API for one-shot callers. The collection loop chunks the
        cloud set itself so it can write each chunk before requesting the
        next; it still calls :meth:`poll_chunk` for every request.
        """
        size = min(max_batch_size or self.max_batch_size, MAX_BATCH_SIZE)
        merged: dict[str, Any] = {}
        for chunk in chunked(device_ids, size):
            if shutdown_event is not None and shutdown_event.is_set():
                break
            statuses = await self.poll_chunk(chunk)
            if statuses is None:
                continue
            for device_id in chunk:
                if device_id in statuses:
                    merged[device_id] = statuses[device_id]
        return merged
