"""Canonical reading and presentation/history value types."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Transport(StrEnum):
    BROADCAST = "broadcast"
    API = "api"


class Characteristic(StrEnum):
    """Presentation-side characteristics a meter exposes."""

    CURRENT_TEMPERATURE = "current_temperature"
    CURRENT_RELATIVE_HUMIDITY = "current_relative_humidity"
    BATTERY_LEVEL = "battery_level"
    STATUS_LOW_BATTERY = "status_low_battery"


class CanonicalReading(BaseModel):
    """Transport-agnostic meter reading.

    Produced once per successful refresh cycle by
    :func:`pymeterplus.normalize.normalize`.

    Parameters
    ----------
    temperature_celsius : float or None
        Temperature in °C, clamped to ``[-273.15, 100]``.
    relative_humidity_percent : float or None
        Relative humidity in percent. ``<= 0`` marks an unreliable sample.
    battery_percent : int or None
        Battery level; only reported over BLE.
    is_low_battery : bool
        ``True`` when the battery is below 15 %.
    sampled_at_unix_seconds : int
        When the reading was normalized.
    source : Transport
        Transport that produced the raw payload.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    temperature_celsius: float | None = None
    relative_humidity_percent: float | None = None
    battery_percent: int | None = None
    is_low_battery: bool = False
    sampled_at_unix_seconds: int
    source: Transport

    @property
    def humidity_is_reliable(self) -> bool:
        return self.relative_humidity_percent is not None and self.relative_humidity_percent > 0


class HistoryEntry(BaseModel):
    """One history sample: ``{"time": ..., "humidity": ..., "temp": ...}``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    time: int
    humidity: float | None = None
    temperature: float | None = Field(default=None, serialization_alias="temp")

    def to_payload(self) -> dict[str, float | int]:
        return self.model_dump(by_alias=True, exclude_none=True)
