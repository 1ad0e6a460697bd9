"""
Liveness marker writer for the collector daemon.

Writes a small JSON file after every completed collection cycle:
- status: Always ``"alive"``.
- ts: ISO timestamp of the completed cycle.
- attempts / successes / failures: Process-lifetime write counters.

Docker HEALTHCHECK or an external monitor can compare ``ts`` against the
poll interval to detect a stalled collector.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collector.src.models import RunStatistics


class HealthWriter:
    """Writes the liveness marker file.

    Args:
        path: Filesystem path for the marker file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_cycle_ts: str | None = None

    @property
    def last_cycle_ts(self) -> str | None:
        return self._last_cycle_ts

    def record_cycle(self, stats: RunStatistics) -> None:
        """Record a completed cycle and rewrite the marker file."""
        self._last_cycle_ts = datetime.now(tz=UTC).isoformat()
        self._write(
            {
                "status": "alive",
                "ts": self._last_cycle_ts,
                "attempts": stats.attempts,
                "successes": stats.successes,
                "failures": stats.failures,
            }
        )

    def _write(self, data: dict[str, object]) -> None:
        """Write via a temp file so readers never see a partial file."""
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps(data))
        os.replace(tmp, self.path)
