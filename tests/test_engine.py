from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import pytest
from bleak.exc import BleakError

from pymeterplus.ble import ScanSession
from pymeterplus.config import DeviceConfig, DeviceSettings, PlatformOptions
from pymeterplus.engine import CycleOutcome, RefreshEngine, visible_characteristics
from pymeterplus.exceptions import (
    MeterApiError,
    MeterConfigError,
    MeterError,
    MeterScanError,
    ScanFailureReason,
)
from pymeterplus.models.advertisement import RawAdvertisement
from pymeterplus.models.reading import Characteristic, HistoryEntry, Transport
from pymeterplus.models.status import RawApiBody
from pymeterplus.sinks import CachedPresentationSink, NullHistorySink

ALL = frozenset(Characteristic)
READINGS = frozenset({Characteristic.CURRENT_TEMPERATURE, Characteristic.CURRENT_RELATIVE_HUMIDITY})


def make_config(**overrides: Any) -> DeviceConfig:
    fields: dict[str, Any] = {
        "device_id": "C1A2B3C4D5E6",
        "display_name": "Office",
        "uses_broadcast_transport": True,
        "scan_window_seconds": 1,
        "refresh_period_seconds": 60,
        "hide_temperature": False,
        "hide_humidity": False,
        "target_address": "c1:a2:b3:c4:d5:e6",
        "credential_configured": True,
    }
    fields.update(overrides)
    return DeviceConfig(**fields)


def advertisement(*, humidity: int = 45, battery: int = 80, temperature: float = 21.5) -> RawAdvertisement:
    return RawAdvertisement.model_validate(
        {
            "address": "c1:a2:b3:c4:d5:e6",
            "temperature_celsius": temperature,
            "humidity": humidity,
            "battery": battery,
            "model": "i",
        }
    )


@dataclass
class FakeScanSession:
    results: list[RawAdvertisement | Exception] = field(default_factory=list)
    calls: list[tuple[str, float]] = field(default_factory=list)
    gate: asyncio.Event | None = None

    async def run(self, target_address: str, window_seconds: float) -> RawAdvertisement:
        self.calls.append((target_address, window_seconds))
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result

    async def aclose(self) -> None:
        return None


@dataclass
class FakeFetcher:
    results: list[RawApiBody | Exception] = field(default_factory=list)
    calls: list[str] = field(default_factory=list)

    async def run(self, device_id: str) -> RawApiBody:
        self.calls.append(device_id)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


@dataclass
class RecordingSink:
    values: list[dict[Characteristic, Any]] = field(default_factory=list)
    failures: list[tuple[frozenset[Characteristic], MeterError]] = field(default_factory=list)

    def publish_values(self, values: Mapping[Characteristic, Any]) -> None:
        self.values.append(dict(values))

    def publish_failure(self, characteristics: frozenset[Characteristic], error: MeterError) -> None:
        self.failures.append((characteristics, error))


@dataclass
class RecordingHistory:
    entries: list[HistoryEntry] = field(default_factory=list)

    def add_entry(self, entry: HistoryEntry) -> None:
        self.entries.append(entry)


def no_match() -> MeterScanError:
    return MeterScanError("no match", reason=ScanFailureReason.NO_MATCH)


def make_engine(
    config: DeviceConfig,
    *,
    scan: FakeScanSession | None = None,
    fetcher: FakeFetcher | None = None,
) -> tuple[RefreshEngine, RecordingSink, RecordingHistory]:
    sink = RecordingSink()
    history = RecordingHistory()
    if fetcher is None and config.credential_configured:
        fetcher = FakeFetcher(results=[MeterApiError("unexpected fetch")])
    engine = RefreshEngine(
        config,
        presentation=sink,
        history=history,
        scan_session=scan or FakeScanSession(results=[advertisement()]),  # type: ignore[arg-type]
        api_fetcher=fetcher,  # type: ignore[arg-type]
        clock=lambda: 1_700_000_000.0,
    )
    return engine, sink, history


# ------------------------------------------------------------------
# Broadcast path
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_broadcast_success_publishes_and_records_history() -> None:
    scan = FakeScanSession(results=[advertisement()])
    engine, sink, history = make_engine(make_config(), scan=scan, fetcher=FakeFetcher())

    outcome = await engine.run_cycle()

    assert outcome is CycleOutcome.PUBLISHED
    assert scan.calls == [("c1:a2:b3:c4:d5:e6", 1)]
    assert sink.values == [
        {
            Characteristic.CURRENT_TEMPERATURE: 21.5,
            Characteristic.CURRENT_RELATIVE_HUMIDITY: 45.0,
            Characteristic.BATTERY_LEVEL: 80,
            Characteristic.STATUS_LOW_BATTERY: False,
        }
    ]
    assert history.entries == [HistoryEntry(time=1_700_000_000, humidity=45.0, temperature=21.5)]
    assert engine.last_reading is not None
    assert engine.last_reading.source is Transport.BROADCAST
    assert engine.in_progress is False


@pytest.mark.parametrize(("battery", "low"), [(10, True), (20, False)])
@pytest.mark.asyncio
async def test_broadcast_low_battery(battery: int, low: bool) -> None:
    engine, sink, _ = make_engine(make_config(), scan=FakeScanSession(results=[advertisement(battery=battery)]))

    await engine.run_cycle()

    assert sink.values[0][Characteristic.STATUS_LOW_BATTERY] is low


@pytest.mark.asyncio
async def test_scan_failure_with_credential_falls_back_in_same_cycle() -> None:
    scan = FakeScanSession(results=[no_match()])
    fetcher = FakeFetcher(results=[RawApiBody.model_validate({"temperature": 19.0, "humidity": 50})])
    engine, sink, history = make_engine(make_config(), scan=scan, fetcher=fetcher)

    outcome = await engine.run_cycle()

    assert outcome is CycleOutcome.PUBLISHED
    assert len(scan.calls) == 1
    assert fetcher.calls == ["C1A2B3C4D5E6"]
    assert engine.router.select() is Transport.API
    assert engine.state.forced_to_api is True
    # No battery level has been scanned yet, so none is published.
    assert sink.values == [
        {Characteristic.CURRENT_TEMPERATURE: 19.0, Characteristic.CURRENT_RELATIVE_HUMIDITY: 50.0}
    ]
    assert len(history.entries) == 1


@pytest.mark.asyncio
async def test_fallback_is_sticky_across_successful_api_cycles() -> None:
    scan = FakeScanSession(results=[no_match()])
    fetcher = FakeFetcher(results=[RawApiBody.model_validate({"temperature": 19.0, "humidity": 50})])
    engine, _, _ = make_engine(make_config(), scan=scan, fetcher=fetcher)

    for _ in range(4):
        assert await engine.run_cycle() is CycleOutcome.PUBLISHED

    assert len(scan.calls) == 1
    assert len(fetcher.calls) == 4
    assert engine.router.select() is Transport.API


@pytest.mark.asyncio
async def test_fallback_fetch_failure_publishes_error_marker() -> None:
    scan = FakeScanSession(results=[no_match()])
    error = MeterApiError("HTTP 500", status_code=500)
    engine, sink, history = make_engine(make_config(), scan=scan, fetcher=FakeFetcher(results=[error]))

    outcome = await engine.run_cycle()

    assert outcome is CycleOutcome.FAILED
    assert sink.values == []
    assert sink.failures == [(READINGS, error)]
    assert history.entries == []
    assert engine.router.select() is Transport.API


@pytest.mark.asyncio
async def test_scan_failure_without_credential_publishes_error() -> None:
    error = MeterScanError("adapter", reason=ScanFailureReason.ADAPTER_UNAVAILABLE)
    engine, sink, history = make_engine(
        make_config(credential_configured=False),
        scan=FakeScanSession(results=[error]),
    )

    outcome = await engine.run_cycle()

    assert outcome is CycleOutcome.FAILED
    assert sink.failures == [(READINGS, error)]
    assert history.entries == []
    assert engine.router.select() is Transport.BROADCAST
    assert engine.state.forced_to_api is False


@pytest.mark.asyncio
async def test_low_battery_flag_survives_api_fallback() -> None:
    scan = FakeScanSession(results=[advertisement(battery=5), no_match()])
    fetcher = FakeFetcher(results=[RawApiBody.model_validate({"temperature": 19.0, "humidity": 50})])
    engine, _, _ = make_engine(make_config(), scan=scan, fetcher=fetcher)

    await engine.run_cycle()
    await engine.run_cycle()

    assert engine.last_reading is not None
    assert engine.last_reading.source is Transport.API
    assert engine.last_reading.is_low_battery is True


@pytest.mark.asyncio
async def test_scanner_construction_failure_falls_back_to_api() -> None:
    def failing_factory(callback: Any) -> Any:
        raise BleakError("No Bluetooth adapters found.")

    fetcher = FakeFetcher(results=[RawApiBody.model_validate({"temperature": 21.5, "humidity": 45})])
    engine = RefreshEngine(
        make_config(),
        presentation=RecordingSink(),
        scan_session=ScanSession(scanner_factory=failing_factory),
        api_fetcher=fetcher,  # type: ignore[arg-type]
    )

    assert await engine.run_cycle() is CycleOutcome.PUBLISHED
    assert fetcher.calls == ["C1A2B3C4D5E6"]
    assert engine.router.select() is Transport.API


@pytest.mark.asyncio
async def test_api_success_clears_markers_after_fallback_failure() -> None:
    body = RawApiBody.model_validate({"temperature": 19.0, "humidity": 50})
    error = MeterApiError("HTTP 500", status_code=500)
    sink = CachedPresentationSink()
    engine = RefreshEngine(
        make_config(),
        presentation=sink,
        scan_session=FakeScanSession(results=[no_match()]),  # type: ignore[arg-type]
        api_fetcher=FakeFetcher(results=[error, body, body]),  # type: ignore[arg-type]
    )

    assert await engine.run_cycle() is CycleOutcome.FAILED
    assert sink.failed() == READINGS

    assert await engine.run_cycle() is CycleOutcome.PUBLISHED
    assert sink.failed() == frozenset()
    assert sink.get(Characteristic.BATTERY_LEVEL) is None


@pytest.mark.asyncio
async def test_api_success_resends_last_scanned_battery() -> None:
    body = RawApiBody.model_validate({"temperature": 19.0, "humidity": 50})
    error = MeterApiError("HTTP 500", status_code=500)
    sink = CachedPresentationSink()
    engine = RefreshEngine(
        make_config(),
        presentation=sink,
        scan_session=FakeScanSession(results=[advertisement(battery=12), no_match()]),  # type: ignore[arg-type]
        api_fetcher=FakeFetcher(results=[error, body]),  # type: ignore[arg-type]
    )

    assert await engine.run_cycle() is CycleOutcome.PUBLISHED
    assert await engine.run_cycle() is CycleOutcome.FAILED
    assert sink.failed() == ALL

    assert await engine.run_cycle() is CycleOutcome.PUBLISHED
    assert sink.failed() == frozenset()
    assert sink.get(Characteristic.BATTERY_LEVEL) == 12
    assert sink.get(Characteristic.STATUS_LOW_BATTERY) is True
    assert sink.get(Characteristic.CURRENT_TEMPERATURE) == 19.0


# ------------------------------------------------------------------
# API path
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_api_without_credential_is_silent_skip() -> None:
    config = make_config(uses_broadcast_transport=False, credential_configured=False)
    scan = FakeScanSession(results=[advertisement()])
    engine, sink, history = make_engine(config, scan=scan)

    outcome = await engine.run_cycle()

    assert outcome is CycleOutcome.SKIPPED_NO_CREDENTIAL
    assert scan.calls == []
    assert sink.values == []
    assert sink.failures == []
    assert history.entries == []


@pytest.mark.asyncio
async def test_api_scenario_reading() -> None:
    config = make_config(uses_broadcast_transport=False)
    fetcher = FakeFetcher(results=[RawApiBody.model_validate({"temperature": 21.5, "humidity": 45})])
    engine, sink, _ = make_engine(config, fetcher=fetcher)

    await engine.run_cycle()

    reading = engine.last_reading
    assert reading is not None
    assert reading.temperature_celsius == 21.5
    assert reading.relative_humidity_percent == 45
    assert reading.battery_percent is None
    # No battery characteristics without BLE.
    assert set(sink.values[0]) == {Characteristic.CURRENT_TEMPERATURE, Characteristic.CURRENT_RELATIVE_HUMIDITY}


@pytest.mark.asyncio
async def test_api_failure_marks_only_visible_characteristics() -> None:
    config = make_config(uses_broadcast_transport=False, hide_temperature=True)
    error = MeterApiError("offline", status_code=161)
    engine, sink, history = make_engine(config, fetcher=FakeFetcher(results=[error]))

    assert await engine.run_cycle() is CycleOutcome.FAILED

    assert sink.failures == [(frozenset({Characteristic.CURRENT_RELATIVE_HUMIDITY}), error)]
    assert history.entries == []


# ------------------------------------------------------------------
# History gating and visibility
# ------------------------------------------------------------------


@pytest.mark.parametrize("humidity", [0, -1])
@pytest.mark.asyncio
async def test_unreliable_humidity_is_not_recorded(humidity: int) -> None:
    engine, sink, history = make_engine(make_config(), scan=FakeScanSession(results=[advertisement(humidity=humidity)]))

    assert await engine.run_cycle() is CycleOutcome.PUBLISHED

    assert sink.values[0][Characteristic.CURRENT_RELATIVE_HUMIDITY] == humidity
    assert history.entries == []


@pytest.mark.asyncio
async def test_missing_humidity_is_not_recorded() -> None:
    config = make_config(uses_broadcast_transport=False)
    fetcher = FakeFetcher(results=[RawApiBody.model_validate({"temperature": 21.5})])
    engine, sink, history = make_engine(config, fetcher=fetcher)

    await engine.run_cycle()

    assert sink.values == [{Characteristic.CURRENT_TEMPERATURE: 21.5}]
    assert history.entries == []


@pytest.mark.asyncio
async def test_hidden_temperature_is_not_published_or_recorded() -> None:
    engine, sink, history = make_engine(make_config(hide_temperature=True))

    await engine.run_cycle()

    assert Characteristic.CURRENT_TEMPERATURE not in sink.values[0]
    assert history.entries[0].to_payload() == {"time": 1_700_000_000, "humidity": 45.0}


def test_visible_characteristics() -> None:
    assert visible_characteristics(make_config()) == ALL
    assert visible_characteristics(make_config(uses_broadcast_transport=False, hide_humidity=True)) == frozenset(
        {Characteristic.CURRENT_TEMPERATURE}
    )


# ------------------------------------------------------------------
# Single flight
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_second_cycle_is_skipped_while_first_in_flight() -> None:
    gate = asyncio.Event()
    scan = FakeScanSession(results=[advertisement()], gate=gate)
    engine, sink, _ = make_engine(make_config(), scan=scan)

    first = asyncio.create_task(engine.run_cycle())
    await asyncio.sleep(0)
    assert engine.in_progress is True
    assert engine.state.in_progress is True

    assert await engine.run_cycle() is CycleOutcome.SKIPPED_BUSY

    gate.set()
    assert await first is CycleOutcome.PUBLISHED
    assert len(scan.calls) == 1
    assert len(sink.values) == 1
    assert engine.in_progress is False


@pytest.mark.asyncio
async def test_in_progress_cleared_when_cycle_crashes() -> None:
    engine, _, _ = make_engine(make_config(), scan=FakeScanSession(results=[RuntimeError("bug")]))

    with pytest.raises(RuntimeError):
        await engine.run_cycle()

    assert engine.in_progress is False


# ------------------------------------------------------------------
# Construction
# ------------------------------------------------------------------


def test_credential_requires_fetcher() -> None:
    with pytest.raises(MeterConfigError):
        RefreshEngine(make_config(), presentation=RecordingSink())


def test_create_requires_http_session_with_token() -> None:
    with pytest.raises(MeterConfigError):
        RefreshEngine.create(
            DeviceSettings(device_id="C1A2B3C4D5E6", ble=True),
            PlatformOptions(open_token="token"),
            presentation=CachedPresentationSink(),
        )


def test_create_without_history_uses_null_sink() -> None:
    engine = RefreshEngine.create(
        DeviceSettings(device_id="C1A2B3C4D5E6", ble=True, history=False),
        PlatformOptions(),
        presentation=CachedPresentationSink(),
        history=RecordingHistory(),
    )

    assert isinstance(engine._history, NullHistorySink)  # noqa: SLF001
    assert engine.config.credential_configured is False
    assert engine.router.select() is Transport.BROADCAST


@pytest.mark.asyncio
async def test_create_with_token_builds_fetcher() -> None:
    engine = RefreshEngine.create(
        DeviceSettings(device_id="C1A2B3C4D5E6", ble=False, history=True),
        PlatformOptions(open_token="token"),
        presentation=CachedPresentationSink(),
        history=RecordingHistory(),
        http_session=object(),  # type: ignore[arg-type]
    )

    assert engine._fetcher is not None  # noqa: SLF001
    assert isinstance(engine._history, RecordingHistory)  # noqa: SLF001
    assert engine.router.select() is Transport.API
