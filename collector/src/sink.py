"""
InfluxDB v2 writer for canonical metrics.

Serializes a CanonicalMetric into one line of InfluxDB line protocol and
POSTs it to ``{influx_url}/api/v2/write`` with Token authentication. A write
is attempted exactly once; failures are logged and reported as ``False``.
There is no buffering or retry, a failed write is a lost sample.

Line format::

    shelly,device=<name> power_l1=<v>,...,power_lN=<v>,power=<v>,temperature=<v>

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from collector.src.models import CanonicalMetric

logger = logging.getLogger(__name__)

MEASUREMENT = "shelly"
SINK_TIMEOUT_S: float = 5.0


def _format_value(value: float) -> str:
    """Shortest round-trip decimal form, e.g. ``650.2`` or ``0.0``."""
    return repr(float(value))


def to_line_protocol(metric: CanonicalMetric) -> str:
    """Serialize *metric* into a single line-protocol record.

    Fields are emitted in a fixed order: per-channel ``power_l<n>``, then
    ``power`` when a total is present, then ``temperature`` when present.
    The device name is written as-is.
    """
    fields = [
        f"power_l{idx}={_format_value(value)}"
        for idx, value in enumerate(metric.per_channel_w, start=1)
    ]
    if metric.total_power_w is not None:
        fields.append(f"power={_format_value(metric.total_power_w)}")
    if metric.temperature_c is not None:
        fields.append(f"temperature={_format_value(metric.temperature_c)}")
    return f"{MEASUREMENT},device={metric.device_name} {','.join(fields)}"


class InfluxSink:
    """Writes metrics to an InfluxDB v2 bucket, one request per metric.

    Args:
        url: InfluxDB base URL, e.g. ``http://influxdb:8086``.
        org: Organization name.
        bucket: Bucket name.
        token: API token with write permission on the bucket.
        timeout_s: Request timeout in seconds (default 5).
    """

    def __init__(
        self,
        url: str,
        org: str,
        bucket: str,
        token: str,
        timeout_s: float = SINK_TIMEOUT_S,
    ) -> None:
        self._write_url = f"{url.rstrip('/')}/api/v2/write"
        self._params = {"org": org, "bucket": bucket}
        self._token = token
        self._timeout_s = timeout_s

    async def write(self, metric: CanonicalMetric) -> bool:
        """Send one metric.

        Returns:
            ``True`` when InfluxDB accepted the line (2xx), ``False`` on a
            network error or any other status.
        """
        line = to_line_protocol(metric)
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await client.post(
                    self._write_url,
                    params=self._params,
                    content=line.encode("utf-8"),
                    headers={
                        "Authorization": f"Token {self._token}",
                        "Content-Type": "text/plain; charset=utf-8",
                    },
                )
        except httpx.HTTPError as exc:
            logger.warning("Write for device '%s' failed: %s", metric.device_name, exc)
            return False

        if 200 <= response.status_code < 300:
            logger.debug("Wrote: %s", line)
            return True

        logger.warning(
            "Write for device '%s' rejected (HTTP %d): %s",
            metric.device_name,
            response.status_code,
            response.text[:200],
        )
        return False
