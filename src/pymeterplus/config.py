"""Platform and device configuration for pymeterplus."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from pymeterplus._constants import (
    BASE_URL,
    DEFAULT_REFRESH_PERIOD_SECONDS,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SCAN_WINDOW_SECONDS,
)
from pymeterplus.exceptions import MeterConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _optional_int(value: Any, field_name: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise MeterConfigError(f"{field_name} must be an integer, got {value!r}") from exc


def _optional_float(value: Any, field_name: str) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise MeterConfigError(f"{field_name} must be a number, got {value!r}") from exc


def ble_address_from_device_id(device_id: str) -> str:
    """Convert a SwitchBot device id (``"C1A2B3C4D5E6"``) to a BLE MAC address."""
    compact = device_id.strip().replace(":", "").lower()
    return ":".join(compact[i : i + 2] for i in range(0, len(compact), 2))


@dataclasses.dataclass(frozen=True)
class PlatformOptions:
    """Platform-wide options shared by every configured meter.

    Parameters
    ----------
    open_token : str or None
        SwitchBot OpenAPI token. Without it the API transport is never used.
    refresh_period_seconds : int or None
        Default refresh period for devices that don't set their own.
    scan_window_seconds : int or None
        Default BLE scan window for devices that don't set their own.
    logging : str or None
        Default device logging mode (``standard``, ``debug``, ``none``).
    debug_mode : bool
        Host debug mode; forces ``debugMode`` logging for every device.
    api_base_url : str
        OpenAPI base URL.
    request_timeout : float
        Total timeout in seconds for one status request.
    """

    open_token: str | None = None
    refresh_period_seconds: int | None = None
    scan_window_seconds: int | None = None
    logging: str | None = None
    debug_mode: bool = False
    api_base_url: str = BASE_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @property
    def credential_configured(self) -> bool:
        return bool(self.open_token and self.open_token.strip())

    @classmethod
    def from_env(cls, **overrides: Any) -> PlatformOptions:
        """Create platform options from ``METERPLUS_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        kwargs: dict[str, Any] = {}

        token = env.get("METERPLUS_OPEN_TOKEN")
        if token is not None:
            kwargs["open_token"] = token
        base_url = env.get("METERPLUS_API_BASE_URL")
        if base_url is not None:
            kwargs["api_base_url"] = base_url
        log_mode = env.get("METERPLUS_LOGGING")
        if log_mode is not None:
            kwargs["logging"] = log_mode

        refresh_env = env.get("METERPLUS_REFRESH_RATE")
        if refresh_env is not None:
            kwargs["refresh_period_seconds"] = _optional_int(refresh_env, "METERPLUS_REFRESH_RATE")
        scan_env = env.get("METERPLUS_SCAN_DURATION")
        if scan_env is not None:
            kwargs["scan_window_seconds"] = _optional_int(scan_env, "METERPLUS_SCAN_DURATION")
        timeout_env = env.get("METERPLUS_REQUEST_TIMEOUT")
        if timeout_env:
            kwargs["request_timeout"] = _optional_float(timeout_env, "METERPLUS_REQUEST_TIMEOUT")

        kwargs["debug_mode"] = _env_bool(env.get("METERPLUS_DEBUG_MODE"), False)

        kwargs.update(overrides)
        return cls(**kwargs)


@dataclasses.dataclass(frozen=True)
class DeviceSettings:
    """Per-device settings exactly as configured (before resolution)."""

    device_id: str
    device_name: str = ""
    device_type: str = "Meter Plus"
    ble: bool = False
    scan_duration: int | None = None
    refresh_rate: int | None = None
    logging: str | None = None
    hide_temperature: bool = False
    hide_humidity: bool = False
    history: bool = False
    custom_ble_address: str | None = None
    firmware: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> DeviceSettings:
        """Build settings from a homebridge-style device dict.

        Accepts ``deviceId``, ``deviceName``, ``deviceType``, ``ble``,
        ``scanDuration``, ``refreshRate``, ``logging``, ``history``,
        ``customBLEaddress``, ``firmware`` and a nested ``meter`` dict with
        ``hide_temperature`` / ``hide_humidity``.
        """
        device_id = data.get("deviceId")
        if not isinstance(device_id, str) or not device_id.strip():
            raise MeterConfigError("deviceId is required")
        meter = data.get("meter")
        meter_opts: Mapping[str, Any] = meter if isinstance(meter, Mapping) else {}
        return cls(
            device_id=device_id.strip(),
            device_name=str(data.get("deviceName") or ""),
            device_type=str(data.get("deviceType") or "Meter Plus"),
            ble=bool(data.get("ble", False)),
            scan_duration=_optional_int(data.get("scanDuration"), "scanDuration"),
            refresh_rate=_optional_int(data.get("refreshRate"), "refreshRate"),
            logging=data.get("logging") or None,
            hide_temperature=bool(meter_opts.get("hide_temperature", False)),
            hide_humidity=bool(meter_opts.get("hide_humidity", False)),
            history=bool(data.get("history", False)),
            custom_ble_address=data.get("customBLEaddress") or None,
            firmware=data.get("firmware") or None,
        )


@dataclasses.dataclass(frozen=True)
class DeviceConfig:
    """Resolved, immutable configuration for one refresh engine.

    Built once by :func:`resolve_device_config`; changing any setting means
    building a new engine.
    """

    device_id: str
    display_name: str
    uses_broadcast_transport: bool
    scan_window_seconds: int
    refresh_period_seconds: int
    hide_temperature: bool
    hide_humidity: bool
    target_address: str
    logging: str = "standard"
    history_enabled: bool = False
    diagnostic_address: str | None = None
    credential_configured: bool = False

    def __post_init__(self) -> None:
        if not self.device_id:
            raise MeterConfigError("device_id must be non-empty")
        if self.scan_window_seconds < 1:
            raise MeterConfigError(f"scan_window_seconds must be >= 1, got {self.scan_window_seconds}")
        if self.refresh_period_seconds < 1:
            raise MeterConfigError(f"refresh_period_seconds must be >= 1, got {self.refresh_period_seconds}")

    @property
    def debug_logging(self) -> bool:
        return "debug" in self.logging


def resolve_logging_mode(device: DeviceSettings, platform: PlatformOptions) -> str:
    if platform.debug_mode:
        return "debugMode"
    if device.logging:
        return device.logging
    if platform.logging:
        return platform.logging
    return "standard"


def resolve_device_config(device: DeviceSettings, platform: PlatformOptions) -> DeviceConfig:
    """Apply device > platform > hardcoded precedence and freeze the result."""
    if device.scan_duration:
        scan_window = device.scan_duration
    elif platform.scan_window_seconds:
        scan_window = platform.scan_window_seconds
    else:
        scan_window = DEFAULT_SCAN_WINDOW_SECONDS

    if device.refresh_rate:
        refresh_period = device.refresh_rate
    elif platform.refresh_period_seconds:
        refresh_period = platform.refresh_period_seconds
    else:
        refresh_period = DEFAULT_REFRESH_PERIOD_SECONDS

    return DeviceConfig(
        device_id=device.device_id,
        display_name=device.device_name or device.device_id,
        uses_broadcast_transport=device.ble,
        scan_window_seconds=scan_window,
        refresh_period_seconds=refresh_period,
        hide_temperature=device.hide_temperature,
        hide_humidity=device.hide_humidity,
        target_address=ble_address_from_device_id(device.device_id),
        logging=resolve_logging_mode(device, platform),
        history_enabled=device.history,
        diagnostic_address=device.custom_ble_address,
        credential_configured=platform.credential_configured,
    )
