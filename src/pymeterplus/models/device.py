"""Accessory information for a configured meter."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from pymeterplus._constants import JP_DEVICE_TYPE, MODEL_NUMBER, MODEL_NUMBER_JP
from pymeterplus.config import DeviceSettings


def model_number(device_type: str) -> str:
    if device_type == JP_DEVICE_TYPE:
        return MODEL_NUMBER_JP
    return MODEL_NUMBER


def firmware_revision(device: DeviceSettings, *, cached: str | None, fallback: str) -> str:
    """Cached revision wins, then the configured firmware, then *fallback*."""
    if cached:
        return cached
    if device.firmware:
        return device.firmware
    return fallback


class AccessoryInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    manufacturer: str = "SwitchBot"
    model: str
    serial_number: str
    firmware_revision: str

    @classmethod
    def for_device(cls, device: DeviceSettings, *, cached_firmware: str | None = None) -> AccessoryInfo:
        from pymeterplus import __version__

        return cls(
            model=model_number(device.device_type),
            serial_number=device.device_id,
            firmware_revision=firmware_revision(device, cached=cached_firmware, fallback=__version__),
        )
