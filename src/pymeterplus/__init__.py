"""pymeterplus - Async refresh engine for SwitchBot Meter Plus sensors over BLE and the OpenAPI."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pymeterplus")
except PackageNotFoundError:
    __version__ = "0+local"
from pymeterplus.api import ApiFetcher
from pymeterplus.ble import ScanSession, decode_advertisement
from pymeterplus.config import (
    DeviceConfig,
    DeviceSettings,
    PlatformOptions,
    ble_address_from_device_id,
    resolve_device_config,
)
from pymeterplus.engine import CycleOutcome, RefreshEngine, RefreshState
from pymeterplus.exceptions import (
    MeterApiError,
    MeterCommunicationError,
    MeterConfigError,
    MeterError,
    MeterScanError,
    ScanFailureReason,
)
from pymeterplus.models import (
    AccessoryInfo,
    CanonicalReading,
    Characteristic,
    HistoryEntry,
    RawAdvertisement,
    RawApiBody,
    Transport,
)
from pymeterplus.normalize import normalize
from pymeterplus.router import TransportRouter
from pymeterplus.scheduler import RefreshScheduler
from pymeterplus.sinks import CachedPresentationSink, HistorySink, NullHistorySink, PresentationSink

__all__ = [
    "__version__",
    "AccessoryInfo",
    "ApiFetcher",
    "CachedPresentationSink",
    "CanonicalReading",
    "Characteristic",
    "CycleOutcome",
    "DeviceConfig",
    "DeviceSettings",
    "HistoryEntry",
    "HistorySink",
    "MeterApiError",
    "MeterCommunicationError",
    "MeterConfigError",
    "MeterError",
    "MeterScanError",
    "NullHistorySink",
    "PlatformOptions",
    "PresentationSink",
    "RawAdvertisement",
    "RawApiBody",
    "RefreshEngine",
    "RefreshScheduler",
    "RefreshState",
    "ScanFailureReason",
    "ScanSession",
    "Transport",
    "TransportRouter",
    "ble_address_from_device_id",
    "decode_advertisement",
    "normalize",
    "resolve_device_config",
]
