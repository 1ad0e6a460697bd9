"""
Collector daemon main loop for the Shelly-to-InfluxDB pipeline.

A single asyncio task runs one collection cycle per poll interval:

1. Refresh the device directory when the refresh interval has elapsed.
2. Poll local devices one after another: fetch -> normalize -> write.
3. Poll cloud devices chunk by chunk (max 10 ids per request), then
   normalize and write each device of the chunk in order.
4. Write the liveness marker and, every N write attempts, log the
   aggregate success rate.
5. Sleep until the next cycle.

Every device and every chunk is its own unit of work: an exception in one is
logged and never ends the loop. Graceful shutdown on SIGTERM/SIGINT sets an
asyncio.Event that is checked between devices, between chunks and between
cycles; in-flight requests are never interrupted. On shutdown the sleep is
skipped and the final statistics are logged.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import hashlib
import json
import logging
import signal
import sys
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from collector.src.cloud import MAX_BATCH_SIZE, chunked
from collector.src.models import RunStatistics
from collector.src.normalizer import normalize

if TYPE_CHECKING:
    from collector.src.cloud import CloudPoller
    from collector.src.directory import DeviceDirectory
    from collector.src.health import HealthWriter
    from collector.src.local import LocalPoller
    from collector.src.models import Device
    from collector.src.sink import InfluxSink

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging for the collector daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible token fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: object) -> None:
    """Log a config summary at startup, excluding secrets.

    Tokens are reduced to a length and hash fingerprint.

    Args:
        settings: A CollectorSettings instance (or any object with the same attrs).
    """
    logger.info(
        "Collector starting with config: "
        "influx_url=%s, influx_org=%s, influx_bucket=%s, "
        "shelly_cloud_server=%s, local_devices=%s, "
        "poll_interval_s=%s, directory_refresh_s=%s, "
        "cloud_batch_size=%s, emit_zero_power=%s, health_path=%s, "
        "influx_token_masked=%s, cloud_key_masked=%s",
        settings.influx_url,  # type: ignore[union-attr]
        settings.influx_org,  # type: ignore[union-attr]
        settings.influx_bucket,  # type: ignore[union-attr]
        settings.shelly_cloud_server or "disabled",  # type: ignore[union-attr]
        [d.name for d in settings.local_devices],  # type: ignore[union-attr]
        settings.poll_interval_s,  # type: ignore[union-attr]
        settings.directory_refresh_s,  # type: ignore[union-attr]
        settings.cloud_batch_size,  # type: ignore[union-attr]
        settings.emit_zero_power,  # type: ignore[union-attr]
        settings.health_path,  # type: ignore[union-attr]
        _masked_token(settings.influx_token),  # type: ignore[union-attr]
        _masked_token(settings.shelly_cloud_auth_key),  # type: ignore[union-attr]
    )


# ---------------------------------------------------------------------------
# Collection loop
# ---------------------------------------------------------------------------


class Collector:
    """Owns the polling state and drives collection cycles.

    Args:
        directory: Device directory to poll.
        local_poller: Fetches status from local devices.
        cloud_poller: Fetches status chunks from Shelly Cloud, or None.
        sink: Metric writer.
        poll_interval_s: Seconds between cycles.
        directory_refresh_s: Seconds between directory refreshes.
        health: Liveness marker writer, or None to skip it.
        batch_size: Cloud ids per request, kept within 1..10.
        emit_zero_power: Passed to the normalizer.
        stats_every_n: Write attempts between success-rate log lines.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        *,
        directory: DeviceDirectory,
        local_poller: LocalPoller,
        cloud_poller: CloudPoller | None,
        sink: InfluxSink,
        poll_interval_s: float,
        directory_refresh_s: float,
        health: HealthWriter | None = None,
        batch_size: int = MAX_BATCH_SIZE,
        emit_zero_power: bool = True,
        stats_every_n: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.directory = directory
        self.local_poller = local_poller
        self.cloud_poller = cloud_poller
        self.sink = sink
        self.health = health
        self.poll_interval_s = poll_interval_s
        self.directory_refresh_s = directory_refresh_s
        self.batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
        self.emit_zero_power = emit_zero_power
        self.stats_every_n = stats_every_n
        self.stats = RunStatistics()
        self._clock = clock
        self._last_refresh: float | None = None
        self._next_report = stats_every_n

    # -- single units of work ------------------------------------------------

    def _refresh_due(self) -> bool:
        if self._last_refresh is None:
            return True
        return self._clock() >= self._last_refresh + self.directory_refresh_s

    async def _emit(self, device: Device, raw: Any) -> None:
        """Normalize one raw status and write it, recording the outcome."""
        if not isinstance(raw, dict):
            logger.warning("Device '%s': status is not a JSON object", device.name)
            return
        metric = normalize(device.name, raw, emit_zero_power=self.emit_zero_power)
        if metric is None:
            logger.warning("Device '%s': no power or temperature data, skipping", device.name)
            return
        ok = await self.sink.write(metric)
        self.stats.record(ok)

    async def _poll_local(self, device: Device) -> None:
        try:
            raw = await self.local_poller.poll(device)
            if raw is None:
                return
            await self._emit(device, raw)
        except Exception:
            logger.error("Local device '%s' poll error", device.name, exc_info=True)

    async def _poll_cloud_chunk(self, chunk: list[Device]) -> None:
        try:
            statuses = await self.cloud_poller.poll_chunk([d.id for d in chunk])  # type: ignore[union-attr]
        except Exception:
            logger.error("Cloud chunk poll error", exc_info=True)
            return
        if statuses is None:
            return
        for device in chunk:
            raw = statuses.get(device.id)
            if raw is None:
                continue
            try:
                await self._emit(device, raw)
            except Exception:
                logger.error("Cloud device '%s' emit error", device.name, exc_info=True)

    # -- cycle -----------------------------------------------------------------

    async def run_cycle(self, shutdown_event: asyncio.Event) -> None:
        """Execute one complete collection cycle.

        Stops early, without writing the liveness marker, when
        *shutdown_event* is set between devices or chunks.
        """
        if self._refresh_due():
            try:
                await self.directory.refresh()
            except Exception:
                logger.error("Device directory refresh error", exc_info=True)
            self._last_refresh = self._clock()

        devices = self.directory.current_devices()

        for device in devices.local:
            if shutdown_event.is_set():
                logger.info("Shutdown requested, skipping remaining local devices")
                break
            await self._poll_local(device)

        if self.cloud_poller is not None:
            for chunk in chunked(devices.cloud, self.batch_size):
                if shutdown_event.is_set():
                    logger.info("Shutdown requested, skipping remaining cloud chunks")
                    break
                await self._poll_cloud_chunk(chunk)

        if shutdown_event.is_set():
            return

        if self.health is not None:
            try:
                self.health.record_cycle(self.stats)
            except Exception:
                logger.warning("Failed to write health file", exc_info=True)

        if self.stats.attempts >= self._next_report:
            self._log_stats("Write statistics")
            while self._next_report <= self.stats.attempts:
                self._next_report += self.stats_every_n

    def _log_stats(self, prefix: str) -> None:
        logger.info(
            "%s: attempts=%d, successes=%d, failures=%d, success_rate=%.1f%%",
            prefix,
            self.stats.attempts,
            self.stats.successes,
            self.stats.failures,
            self.stats.success_rate,
        )

    async def run(self, shutdown_event: asyncio.Event, *, once: bool = False) -> None:
        """Run cycles until *shutdown_event* is set (or after one cycle).

        Sleeps for poll_interval_s between cycles; the sleep ends early when
        the shutdown event is set.
        """
        logger.info("Collection loop started (interval=%ss)", self.poll_interval_s)
        while not shutdown_event.is_set():
            await self.run_cycle(shutdown_event)
            if once or shutdown_event.is_set():
                break
            # Use wait with timeout so we can check shutdown between sleeps
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    shutdown_event.wait(),
                    timeout=self.poll_interval_s,
                )
        self._log_stats("Collection loop stopped")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def build_collector(settings: Any) -> Collector:
    """Wire up all components from a CollectorSettings instance."""
    from collector.src.cloud import CloudClient, CloudPoller
    from collector.src.directory import DeviceDirectory
    from collector.src.health import HealthWriter
    from collector.src.local import LocalPoller
    from collector.src.models import Device
    from collector.src.sink import InfluxSink

    cloud_client = None
    cloud_poller = None
    if settings.cloud_enabled:
        cloud_client = CloudClient(
            settings.shelly_cloud_server,
            settings.shelly_cloud_auth_key,
            timeout_s=settings.cloud_timeout_s,
        )
        cloud_poller = CloudPoller(cloud_client, max_batch_size=settings.cloud_batch_size)

    directory = DeviceDirectory(
        [Device.local(d.name, d.url) for d in settings.local_devices],
        cloud_client=cloud_client,
    )

    return Collector(
        directory=directory,
        local_poller=LocalPoller(timeout_s=settings.device_timeout_s),
        cloud_poller=cloud_poller,
        sink=InfluxSink(
            settings.influx_url,
            settings.influx_org,
            settings.influx_bucket,
            settings.influx_token,
            timeout_s=settings.sink_timeout_s,
        ),
        poll_interval_s=settings.poll_interval_s,
        directory_refresh_s=settings.directory_refresh_s,
        health=HealthWriter(settings.health_path),
        batch_size=settings.cloud_batch_size,
        emit_zero_power=settings.emit_zero_power,
        stats_every_n=settings.stats_every_n,
    )


async def async_main(config_path: str | None = None, once: bool = False) -> int:
    """Async entrypoint: load config, build components, run the loop.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.

    Returns:
        Process exit code: 0 on clean shutdown, 1 on configuration errors.
    """
    configure_logging()

    from collector.src.config import load_settings

    try:
        settings = load_settings(config_path)
    except (ValidationError, ValueError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    configure_logging(settings.log_level)
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    collector = build_collector(settings)
    await collector.run(shutdown_event, once=once)
    logger.info("Shutdown complete")
    return 0


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, finishing current step")
    shutdown_event.set()


def main(argv: list[str] | None = None) -> None:
    """Synchronous entrypoint for the collector daemon."""
    parser = argparse.ArgumentParser(description="Shelly power meter collector")
    parser.add_argument(
        "--config",
        default="config.json",
        help="JSON config file; environment variables override it (default: config.json)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single collection cycle and exit",
    )
    args = parser.parse_args(argv)
    sys.exit(asyncio.run(async_main(args.config, once=args.once)))


if __name__ == "__main__":
    main()
