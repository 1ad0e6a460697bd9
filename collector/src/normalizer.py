"""
Pure normalizer that converts a raw Shelly status payload into a CanonicalMetric.

Shelly device families report power in different shapes. The recognized
shapes form a closed table evaluated in priority order; the first shape whose
key holds a non-empty list wins and the others are not consulted:

1. ``emeters``  -- multi-phase energy meters (3EM). Per-channel + total.
2. ``meters``   -- plug-style meters (Plug, 1PM, 2.5). Per-channel + total.
3. ``switches`` -- Gen2 switch list. ``apower`` summed into the total only.

Temperature is read from ``temperature.tC``, falling back to ``tmp.tC``.

This is a pure function: no side effects, no I/O, no clock.

CHANGELOG:
- 2026-10-17: Skip NaN and infinite readings
- 2026-10-17: Keep exact 0 W totals unless emit_zero_power is disabled
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

from collector.src.models import CanonicalMetric

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelShape:
    """A recognized channel-list layout.

    Attributes:
        name: Short label used in debug logs.
        keys: Payload keys that may hold the channel list.
        power_field: Field holding watts within each list entry.
        per_channel: Whether each entry is emitted as ``power_l<n>``.
    """

    name: str
    keys: tuple[str, ...]
    power_field: str
    per_channel: bool


SHAPES: tuple[ChannelShape, ...] = (
    ChannelShape("multi_phase", ("emeters",), "power", per_channel=True),
    ChannelShape("plug", ("meters",), "power", per_channel=True),
    ChannelShape("switch", ("switches",), "apower", per_channel=False),
)
"""Recognized shapes in priority order."""

_TEMPERATURE_PATHS: tuple[tuple[str, str], ...] = (
    ("temperature", "tC"),
    ("tmp", "tC"),
)


def _as_number(value: Any) -> float | None:
    """Return *value* as a finite float, or None (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    if not math.isfinite(number):
        return None
    return number


def _match_shape(raw: dict[str, Any]) -> tuple[ChannelShape, list[Any]] | None:
    """Find the first shape whose key holds a non-empty list."""
    for shape in SHAPES:
        for key in shape.keys:
            entries = raw.get(key)
            if isinstance(entries, list) and entries:
                return shape, entries
    return None


def _extract_temperature(raw: dict[str, Any]) -> float | None:
    for outer, inner in _TEMPERATURE_PATHS:
        block = raw.get(outer)
        if isinstance(block, dict):
            value = _as_number(block.get(inner))
            if value is not None:
                return value
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize(
    device_name: str,
    raw: dict[str, Any],
    *,
    emit_zero_power: bool = True,
) -> CanonicalMetric | None:
    """Convert a raw status payload into a CanonicalMetric.

    Args:
        device_name: Label to embed as the metric's device tag.
        raw: Decoded JSON status object from the device or the cloud API.
        emit_zero_power: When False, a total that sums to exactly 0 W is
            dropped, matching older collectors that only wrote non-zero
            power.

    Returns:
        A :class:`CanonicalMetric`, or ``None`` when neither power channels
        nor a temperature could be found.
    """
    total: float | None = None
    channels: list[float] = []

    matched = _match_shape(raw)
    if matched is not None:
        shape, entries = matched
        found = False
        running = 0.0
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            value = _as_number(entry.get(shape.power_field))
            if value is None:
                continue
            found = True
            running += value
            if shape.per_channel:
                channels.append(value)
        if found:
            total = running
        logger.debug(
            "Device '%s': matched shape '%s' with %d entries",
            device_name,
            shape.name,
            len(entries),
        )

    if total == 0.0 and not emit_zero_power:
        total = None

    temperature = _extract_temperature(raw)

    if total is None and temperature is None:
        logger.debug("Device '%s': no power or temperature in payload", device_name)
        return None

    return CanonicalMetric(
        device_name=device_name,
        total_power_w=total,
        per_channel_w=tuple(channels),
        temperature_c=temperature,
    )
