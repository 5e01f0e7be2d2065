"""Data models for meter payloads and readings."""

from pymeterplus.models._base import MeterBaseModel
from pymeterplus.models.advertisement import RawAdvertisement
from pymeterplus.models.device import AccessoryInfo, firmware_revision, model_number
from pymeterplus.models.reading import CanonicalReading, Characteristic, HistoryEntry, Transport
from pymeterplus.models.status import DeviceStatusResponse, RawApiBody

__all__ = [
    "AccessoryInfo",
    "CanonicalReading",
    "Characteristic",
    "DeviceStatusResponse",
    "HistoryEntry",
    "MeterBaseModel",
    "RawAdvertisement",
    "RawApiBody",
    "Transport",
    "firmware_revision",
    "model_number",
]
