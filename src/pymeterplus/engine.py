"""Dual-transport refresh engine.

One :meth:`RefreshEngine.run_cycle` asks the router for the current
transport, harvests a raw payload (BLE scan or OpenAPI fetch), normalizes it
and publishes the result. Transport failures are handled here: a failed scan
falls back to the API within the same cycle when a token is configured,
otherwise the visible characteristics are marked as failed. Nothing a
transport raises escapes a cycle.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Callable
from enum import StrEnum

import aiohttp

from pymeterplus._logging import DeviceLogAdapter
from pymeterplus._transport import OpenApiTransport
from pymeterplus.api import ApiFetcher
from pymeterplus.ble import ScanSession
from pymeterplus.config import DeviceConfig, DeviceSettings, PlatformOptions, resolve_device_config
from pymeterplus.exceptions import MeterApiError, MeterConfigError, MeterError, MeterScanError
from pymeterplus.models.reading import CanonicalReading, Characteristic, HistoryEntry, Transport
from pymeterplus.normalize import RawPayload, normalize
from pymeterplus.router import TransportRouter
from pymeterplus.sinks import CharacteristicValue, HistorySink, NullHistorySink, PresentationSink

_logger = logging.getLogger(__name__)

_BATTERY_CHARACTERISTICS = frozenset({Characteristic.BATTERY_LEVEL, Characteristic.STATUS_LOW_BATTERY})


class CycleOutcome(StrEnum):
    PUBLISHED = "published"
    FAILED = "failed"
    SKIPPED_NO_CREDENTIAL = "skipped_no_credential"
    SKIPPED_BUSY = "skipped_busy"


@dataclasses.dataclass(frozen=True)
class RefreshState:
    """Point-in-time view of the engine state."""

    in_progress: bool
    forced_to_api: bool
    last_reading: CanonicalReading | None


def visible_characteristics(config: DeviceConfig) -> frozenset[Characteristic]:
    """Characteristics the presentation layer exposes for *config*.

    Battery characteristics only exist when the meter is read over BLE.
    """
    visible: set[Characteristic] = set()
    if not config.hide_temperature:
        visible.add(Characteristic.CURRENT_TEMPERATURE)
    if not config.hide_humidity:
        visible.add(Characteristic.CURRENT_RELATIVE_HUMIDITY)
    if config.uses_broadcast_transport:
        visible.add(Characteristic.BATTERY_LEVEL)
        visible.add(Characteristic.STATUS_LOW_BATTERY)
    return frozenset(visible)


class RefreshEngine:
    """Refresh the cached reading of one meter.

    Usage::

        engine = RefreshEngine(config, presentation=sink, api_fetcher=fetcher)
        outcome = await engine.run_cycle()
    """

    def __init__(
        self,
        config: DeviceConfig,
        *,
        presentation: PresentationSink,
        history: HistorySink | None = None,
        scan_session: ScanSession | None = None,
        api_fetcher: ApiFetcher | None = None,
        router: TransportRouter | None = None,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        if config.credential_configured and api_fetcher is None:
            raise MeterConfigError("An OpenAPI token is configured but no ApiFetcher was provided")
        self._config = config
        self._log = logger or DeviceLogAdapter(_logger, config.display_name, config.logging)
        self._presentation = presentation
        self._history = history or NullHistorySink()
        self._scan = scan_session or ScanSession(
            logger=self._log,
            debug=config.debug_logging,
            diagnostic_address=config.diagnostic_address,
        )
        self._fetcher = api_fetcher
        self._router = router or TransportRouter(
            uses_broadcast_transport=config.uses_broadcast_transport,
            credential_configured=config.credential_configured,
        )
        self._clock = clock
        self._visible = visible_characteristics(config)
        self._single_flight = False
        self._last_reading: CanonicalReading | None = None
        self._last_battery: int | None = None

    @classmethod
    def create(
        cls,
        device: DeviceSettings,
        platform: PlatformOptions,
        *,
        presentation: PresentationSink,
        history: HistorySink | None = None,
        http_session: aiohttp.ClientSession | None = None,
    ) -> RefreshEngine:
        """Resolve configuration once and wire the production collaborators.

        *http_session* is required when an OpenAPI token is configured. A
        history sink is only attached when the device enables history.
        """
        config = resolve_device_config(device, platform)
        fetcher: ApiFetcher | None = None
        log = DeviceLogAdapter(_logger, config.display_name, config.logging)
        if config.credential_configured:
            if http_session is None:
                raise MeterConfigError("http_session is required when an OpenAPI token is configured")
            fetcher = ApiFetcher(OpenApiTransport(platform, http_session), logger=log)
        log.info("Config: %s", dataclasses.asdict(config))
        return cls(
            config,
            presentation=presentation,
            history=history if config.history_enabled else None,
            api_fetcher=fetcher,
            logger=log,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def config(self) -> DeviceConfig:
        return self._config

    @property
    def router(self) -> TransportRouter:
        return self._router

    @property
    def in_progress(self) -> bool:
        return self._single_flight

    @property
    def last_reading(self) -> CanonicalReading | None:
        return self._last_reading

    @property
    def state(self) -> RefreshState:
        return RefreshState(
            in_progress=self._single_flight,
            forced_to_api=self._router.forced_to_api,
            last_reading=self._last_reading,
        )

    async def aclose(self) -> None:
        await self._scan.aclose()

    # ------------------------------------------------------------------
    # Refresh cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleOutcome:
        """Run one refresh cycle; never raises transport errors."""
        # Check-and-set with no await in between: the single-flight slot.
        if self._single_flight:
            self._log.debug("Refresh already in progress, skipping")
            return CycleOutcome.SKIPPED_BUSY
        self._single_flight = True
        try:
            if self._router.select() is Transport.BROADCAST:
                return await self._refresh_broadcast()
            return await self._refresh_api()
        finally:
            self._single_flight = False

    async def _refresh_broadcast(self) -> CycleOutcome:
        self._log.debug("BLE RefreshStatus, address: %s", self._config.target_address)
        try:
            advertisement = await self._scan.run(self._config.target_address, self._config.scan_window_seconds)
        except MeterScanError as exc:
            self._log.error("failed refreshStatus with BLE Connection")
            self._log.debug("BLE failure reason=%s: %s", exc.reason, exc)
            if not self._router.record_scan_failure():
                self._publish_failure(exc)
                return CycleOutcome.FAILED
            self._log.warning("Using OpenAPI Connection")
            return await self._refresh_api()

        self._publish(advertisement)
        return CycleOutcome.PUBLISHED

    async def _refresh_api(self) -> CycleOutcome:
        if not self._router.credential_configured or self._fetcher is None:
            self._log.debug("No OpenAPI token configured, skipping refresh")
            return CycleOutcome.SKIPPED_NO_CREDENTIAL

        self._log.debug("OpenAPI RefreshStatus")
        try:
            body = await self._fetcher.run(self._config.device_id)
        except MeterApiError as exc:
            self._log.error("failed refreshStatus with OpenAPI Connection")
            self._log.debug("OpenAPI failure: %s", exc)
            self._publish_failure(exc)
            return CycleOutcome.FAILED

        self._publish(body)
        return CycleOutcome.PUBLISHED

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def _publish(self, raw: RawPayload) -> None:
        reading = normalize(raw, previous=self._last_reading, sampled_at=int(self._clock()))
        self._last_reading = reading
        if reading.battery_percent is not None:
            self._last_battery = reading.battery_percent

        values = self._presentation_values(reading)
        self._presentation.publish_values(values)
        self._log.debug("updateCharacteristic %s", {str(k): v for k, v in values.items()})

        if reading.humidity_is_reliable:
            self._history.add_entry(self._history_entry(reading))
        else:
            self._log.debug("Humidity %s is unreliable, not recorded in history", reading.relative_humidity_percent)

    def _publish_failure(self, error: MeterError) -> None:
        failed = self._visible
        # Battery characteristics carry no value until a scan has reported one.
        if self._last_battery is None:
            failed = failed - _BATTERY_CHARACTERISTICS
        if failed:
            self._presentation.publish_failure(failed, error)

    def _presentation_values(self, reading: CanonicalReading) -> dict[Characteristic, CharacteristicValue]:
        # The API never reports battery: re-send the last scanned level so a
        # success clears any failure marker on the battery characteristics.
        battery = reading.battery_percent if reading.battery_percent is not None else self._last_battery
        candidates: dict[Characteristic, CharacteristicValue | None] = {
            Characteristic.CURRENT_TEMPERATURE: reading.temperature_celsius,
            Characteristic.CURRENT_RELATIVE_HUMIDITY: reading.relative_humidity_percent,
            Characteristic.BATTERY_LEVEL: battery,
        }
        if battery is not None:
            candidates[Characteristic.STATUS_LOW_BATTERY] = reading.is_low_battery
        return {key: value for key, value in candidates.items() if key in self._visible and value is not None}

    def _history_entry(self, reading: CanonicalReading) -> HistoryEntry:
        return HistoryEntry(
            time=reading.sampled_at_unix_seconds,
            humidity=None if self._config.hide_humidity else reading.relative_humidity_percent,
            temperature=None if self._config.hide_temperature else reading.temperature_celsius,
        )
