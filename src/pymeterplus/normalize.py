"""Status normalization.

Converts the two raw payload shapes (BLE advertisement, OpenAPI body) into
one :class:`~pymeterplus.models.reading.CanonicalReading`. Pure: no I/O and
no failure path. Absent fields stay absent; out-of-range temperatures are
clamped instead of rejected.
"""

from __future__ import annotations

import time

from pymeterplus._constants import LOW_BATTERY_THRESHOLD, TEMPERATURE_MAX_C, TEMPERATURE_MIN_C
from pymeterplus.models.advertisement import RawAdvertisement
from pymeterplus.models.reading import CanonicalReading, Transport
from pymeterplus.models.status import RawApiBody

RawPayload = RawAdvertisement | RawApiBody


def clamp_temperature(value: float | None) -> float | None:
    if value is None:
        return None
    return max(TEMPERATURE_MIN_C, min(TEMPERATURE_MAX_C, float(value)))


def is_low_battery(battery_percent: int | None, previous: bool) -> bool:
    """Recompute the low-battery flag, keeping *previous* when battery is absent."""
    if battery_percent is None:
        return previous
    return battery_percent < LOW_BATTERY_THRESHOLD


def normalize(
    raw: RawPayload | CanonicalReading,
    *,
    previous: CanonicalReading | None = None,
    sampled_at: int | None = None,
) -> CanonicalReading:
    """Build a canonical reading from *raw*.

    Parameters
    ----------
    raw
        Decoded advertisement, OpenAPI body, or an already canonical reading
        (which normalizes to itself).
    previous
        Last published reading; supplies ``is_low_battery`` when *raw*
        carries no battery level.
    sampled_at
        Sample timestamp in epoch seconds. Defaults to now.
    """
    if isinstance(raw, CanonicalReading):
        return raw.model_copy(update={"temperature_celsius": clamp_temperature(raw.temperature_celsius)})

    if sampled_at is None:
        sampled_at = int(time.time())
    previous_low = previous.is_low_battery if previous is not None else False

    humidity = float(raw.humidity_percent) if raw.humidity_percent is not None else None

    if isinstance(raw, RawAdvertisement):
        return CanonicalReading(
            temperature_celsius=clamp_temperature(raw.temperature_celsius),
            relative_humidity_percent=humidity,
            battery_percent=raw.battery_percent,
            is_low_battery=is_low_battery(raw.battery_percent, previous_low),
            sampled_at_unix_seconds=sampled_at,
            source=Transport.BROADCAST,
        )

    return CanonicalReading(
        temperature_celsius=clamp_temperature(raw.temperature_celsius),
        relative_humidity_percent=humidity,
        battery_percent=None,
        is_low_battery=previous_low,
        sampled_at_unix_seconds=sampled_at,
        source=Transport.API,
    )
