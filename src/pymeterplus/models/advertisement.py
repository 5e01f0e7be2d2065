"""Decoded BLE advertisement model."""

from __future__ import annotations

from pydantic import Field

from pymeterplus.models._base import MeterBaseModel


class RawAdvertisement(MeterBaseModel):
    """One well-formed Meter advertisement captured by a scan session.

    Parameters
    ----------
    source_address : str
        Advertiser address, lowercased.
    temperature_celsius : float or None
        Temperature in °C as broadcast (not clamped).
    humidity_percent : int or None
        Relative humidity in percent.
    battery_percent : int or None
        Battery level in percent.
    model_code : str
        Device-class discriminator (``"i"`` for Meter Plus).
    fahrenheit : bool
        Display-unit flag set on the device; readings are always in °C.
    """

    source_address: str = Field(validation_alias="address")
    temperature_celsius: float | None = None
    humidity_percent: int | None = Field(default=None, validation_alias="humidity")
    battery_percent: int | None = Field(default=None, validation_alias="battery")
    model_code: str = Field(validation_alias="model")
    fahrenheit: bool = False
