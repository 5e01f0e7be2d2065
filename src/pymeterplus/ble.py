"""BLE advertisement decoding and the time-boxed scan session."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from pymeterplus._constants import (
    DIAGNOSTIC_SCAN_SECONDS,
    METER_PLUS_MODEL_CODE,
    METER_SERVICE_DATA_LENGTH,
    SERVICE_DATA_UUIDS,
)
from pymeterplus.exceptions import MeterScanError, ScanFailureReason
from pymeterplus.models.advertisement import RawAdvertisement

_logger = logging.getLogger(__name__)

DetectionCallback = Callable[[BLEDevice, AdvertisementData], None]


class Scanner(Protocol):
    """The slice of :class:`bleak.BleakScanner` a scan session needs."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


ScannerFactory = Callable[[DetectionCallback], Scanner]


def _bleak_scanner(callback: DetectionCallback) -> Scanner:
    return BleakScanner(detection_callback=callback)


def parse_meter_service_data(data: bytes) -> dict[str, Any] | None:
    """Decode the 6-byte Meter service data block.

    Layout::

        byte 0  bits 0-6  model code (ASCII)
        byte 2  bits 0-6  battery %
        byte 3  bits 0-3  temperature tenths
        byte 4  bit  7    temperature sign (1 = positive)
                bits 0-6  temperature integer part
        byte 5  bit  7    fahrenheit display flag
                bits 0-6  humidity %

    Returns ``None`` for blocks of the wrong length.
    """
    if len(data) != METER_SERVICE_DATA_LENGTH:
        return None
    byte2, byte3, byte4, byte5 = data[2], data[3], data[4], data[5]
    sign = 1 if byte4 & 0b10000000 else -1
    temperature = sign * ((byte4 & 0b01111111) + (byte3 & 0b00001111) / 10)
    return {
        "model": chr(data[0] & 0b01111111),
        "temperature_celsius": round(temperature, 1),
        "fahrenheit": bool(byte5 & 0b10000000),
        "humidity": byte5 & 0b01111111,
        "battery": byte2 & 0b01111111,
    }


def decode_advertisement(address: str, service_data: Mapping[str, bytes]) -> RawAdvertisement | None:
    """Return the decoded advertisement, or ``None`` if it is not a Meter packet."""
    for uuid in SERVICE_DATA_UUIDS:
        payload = service_data.get(uuid)
        if payload is None:
            continue
        parsed = parse_meter_service_data(bytes(payload))
        if parsed is None:
            return None
        return RawAdvertisement.model_validate({"address": address.lower(), **parsed})
    return None


class ScanSession:
    """Harvest one advertisement from a target meter within a bounded window.

    Each :meth:`run` opens its own scanner, closes it as soon as the first
    well-formed advertisement from the target arrives, and always stops it
    before returning.

    When *debug* is set and a *diagnostic_address* is configured, every run
    also starts a background listener that logs every advertisement of the
    same model for :data:`DIAGNOSTIC_SCAN_SECONDS`. It is independent of the
    primary result and its failures are only logged.
    """

    def __init__(
        self,
        *,
        model_code: str = METER_PLUS_MODEL_CODE,
        scanner_factory: ScannerFactory | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        debug: bool = False,
        diagnostic_address: str | None = None,
        diagnostic_seconds: float = DIAGNOSTIC_SCAN_SECONDS,
    ) -> None:
        self._model_code = model_code
        self._scanner_factory = scanner_factory or _bleak_scanner
        self._log = logger or _logger
        self._debug = debug
        self._diagnostic_address = diagnostic_address
        self._diagnostic_seconds = diagnostic_seconds
        self._diagnostic_tasks: set[asyncio.Task[None]] = set()

    @property
    def diagnostics_running(self) -> bool:
        return bool(self._diagnostic_tasks)

    async def run(self, target_address: str, window_seconds: float) -> RawAdvertisement:
        """Scan for up to *window_seconds* and return the first matching advertisement.

        Raises
        ------
        MeterScanError
            ``ADAPTER_UNAVAILABLE`` if the scanner cannot start,
            ``NO_MATCH`` if the window elapses without a match.
        """
        target = target_address.lower()
        captured: asyncio.Future[RawAdvertisement] = asyncio.get_running_loop().create_future()

        def _on_advertisement(device: BLEDevice, advertisement_data: AdvertisementData) -> None:
            if captured.done():
                return
            address = device.address.lower()
            if address != target:
                return
            decoded = decode_advertisement(address, advertisement_data.service_data)
            if decoded is None or decoded.model_code != self._model_code:
                return
            if self._debug:
                self._log.info("BLE Address Found: %s", address)
            captured.set_result(decoded)

        try:
            scanner = self._scanner_factory(_on_advertisement)
            await scanner.start()
        except (BleakError, OSError) as exc:
            raise MeterScanError(
                f"Could not start BLE scan: {exc}",
                reason=ScanFailureReason.ADAPTER_UNAVAILABLE,
                address=target,
            ) from exc

        self._start_diagnostics()
        try:
            advertisement = await asyncio.wait_for(captured, timeout=window_seconds)
        except TimeoutError:
            raise MeterScanError(
                f"No advertisement from {target} within {window_seconds}s",
                reason=ScanFailureReason.NO_MATCH,
                address=target,
            ) from None
        finally:
            await self._stop(scanner)

        self._log.debug("serviceData: %s", advertisement.model_dump(exclude={"raw"}))
        return advertisement

    async def _stop(self, scanner: Scanner) -> None:
        try:
            await scanner.stop()
        except (BleakError, OSError):
            self._log.debug("BLE scanner stop failed", exc_info=True)

    def _start_diagnostics(self) -> None:
        if not (self._debug and self._diagnostic_address) or self._diagnostic_tasks:
            return
        task = asyncio.create_task(self._diagnostic_listen())
        self._diagnostic_tasks.add(task)
        task.add_done_callback(self._diagnostic_tasks.discard)

    async def _diagnostic_listen(self) -> None:
        def _on_advertisement(device: BLEDevice, advertisement_data: AdvertisementData) -> None:
            decoded = decode_advertisement(device.address, advertisement_data.service_data)
            if decoded is None or decoded.model_code != self._model_code:
                return
            self._log.warning(json.dumps(decoded.model_dump(exclude={"raw"}), indent=2))

        try:
            scanner = self._scanner_factory(_on_advertisement)
            await scanner.start()
            try:
                await asyncio.sleep(self._diagnostic_seconds)
            finally:
                await scanner.stop()
        except asyncio.CancelledError:
            raise
        except Exception:
            self._log.debug("Diagnostic BLE scan failed", exc_info=True)

    async def aclose(self) -> None:
        """Cancel any running diagnostic listener."""
        tasks = list(self._diagnostic_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
