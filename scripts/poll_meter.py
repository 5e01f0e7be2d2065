#!/usr/bin/env python3
"""Poll a SwitchBot Meter Plus from the command line.

Runs the same refresh engine a host platform would use:
1) resolve device/platform settings (METERPLUS_* env vars + flags),
2) run one refresh cycle, or keep refreshing on the configured period,
3) print the cached characteristic values after every cycle.

Credential sourcing:
- METERPLUS_OPEN_TOKEN enables the OpenAPI transport and the BLE fallback.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path

import aiohttp

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pymeterplus import (  # noqa: E402
    AccessoryInfo,
    CachedPresentationSink,
    DeviceSettings,
    HistoryEntry,
    MeterConfigError,
    PlatformOptions,
    RefreshEngine,
    RefreshScheduler,
)


class PrintingHistorySink:
    def add_entry(self, entry: HistoryEntry) -> None:
        print(f"[history] {json.dumps(entry.to_payload())}")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Refresh a Meter Plus over BLE or the SwitchBot OpenAPI.")
    parser.add_argument("device_id", help="SwitchBot device id (12 hex digits, BLE address without colons).")
    parser.add_argument("--name", default="", help="Display name used in log lines.")
    parser.add_argument("--ble", action="store_true", help="Read BLE advertisements instead of the OpenAPI.")
    parser.add_argument("--scan-duration", type=int, default=None, help="BLE scan window in seconds.")
    parser.add_argument("--refresh-rate", type=int, default=None, help="Refresh period in seconds.")
    parser.add_argument(
        "--address",
        default=None,
        help="With --verbose, log every Meter Plus advertisement for ~10s after each scan (diagnostic listener).",
    )
    parser.add_argument("--history", action="store_true", help="Print history entries.")
    parser.add_argument(
        "--watch",
        type=int,
        default=0,
        help="Keep refreshing for N seconds (0 = single cycle).",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


def _print_values(sink: CachedPresentationSink) -> None:
    stamp = time.strftime("%H:%M:%S")
    values = {str(key): value for key, value in sink.snapshot().items()}
    failed = sorted(str(key) for key in sink.failed())
    print(f"[{stamp}] values={json.dumps(values)} failed={failed}")


async def _run(args: argparse.Namespace) -> int:
    platform = PlatformOptions.from_env(debug_mode=args.verbose)
    device = DeviceSettings(
        device_id=args.device_id,
        device_name=args.name,
        ble=args.ble,
        scan_duration=args.scan_duration,
        refresh_rate=args.refresh_rate,
        logging="debug" if args.verbose else None,
        history=args.history,
        custom_ble_address=args.address,
    )
    sink = CachedPresentationSink()

    async with aiohttp.ClientSession() as http_session:
        try:
            engine = RefreshEngine.create(
                device,
                platform,
                presentation=sink,
                history=PrintingHistorySink(),
                http_session=http_session,
            )
        except MeterConfigError as exc:
            print(f"[poll] configuration error: {exc}", file=sys.stderr)
            return 2

        info = AccessoryInfo.for_device(device)
        print(f"[poll] {info.manufacturer} {info.model} firmware={info.firmware_revision}")

        try:
            if args.watch <= 0:
                outcome = await engine.run_cycle()
                print(f"[poll] outcome={outcome}")
                _print_values(sink)
                return 0 if not sink.failed() else 1

            scheduler = RefreshScheduler(engine)
            scheduler.start()
            deadline = time.monotonic() + args.watch
            while time.monotonic() < deadline:
                await asyncio.sleep(1)
                _print_values(sink)
            await scheduler.stop()
            print(f"[poll] dispatched={scheduler.dispatched} dropped={scheduler.dropped}")
            return 0
        finally:
            await engine.aclose()


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
