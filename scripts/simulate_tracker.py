#!/usr/bin/env python3
"""Simulated tracked device for exercising the sampling pipeline.

Runs a :class:`locatr.SamplingLoop` against a random-walk capability
provider. Samples go to the configured PostgREST store (``LOCATR_*``
environment variables) or, with ``--dry-run``, to an in-memory store.

Typical use:
1) start this script with a device code,
2) open the same code with ``scripts/watch_device.py``,
3) watch the trail grow every ``--interval`` seconds.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import random
import signal
import sys
from dataclasses import dataclass
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))


def _maybe_reexec_with_project_venv() -> None:
    candidate_env = (_repo / ".venv").resolve()
    candidate_python = candidate_env / "bin" / "python"
    if not candidate_python.exists():
        return

    current_prefix = Path(sys.prefix).resolve()
    if current_prefix == candidate_env:
        return
    if os.environ.get("LOCATR_SIMULATOR_REEXEC") == "1":
        return

    env = dict(os.environ)
    env["LOCATR_SIMULATOR_REEXEC"] = "1"
    os.execve(str(candidate_python), [str(candidate_python), *sys.argv], env)


_maybe_reexec_with_project_venv()

from locatr import (  # noqa: E402
    DeviceDescriptor,
    LocationSample,
    LocatrConfig,
    LocatrError,
    MemorySampleStore,
    PermissionState,
    PositionFix,
    RestSampleStore,
    SampleStore,
    SamplingLoop,
    describe_error,
    generate_device_code,
)

_LOG = logging.getLogger("locatr.simulator")

# Roughly 11 m of latitude.
_STEP_DEGREES = 0.0001


@dataclass
class RandomWalkProvider:
    """Capability provider wandering around a starting point."""

    latitude: float
    longitude: float
    battery: float = 100.0
    drain_per_fix: float = 0.2
    fail_rate: float = 0.0
    model: str = "Simulator"
    platform: str = sys.platform

    async def request_location_permission(self) -> PermissionState:
        return PermissionState.GRANTED

    async def get_current_fix(self, timeout: float, *, high_accuracy: bool = True) -> PositionFix:
        if random.random() < self.fail_rate:
            # Longer than any sane fix timeout; the loop skips the cycle.
            await asyncio.sleep(timeout + 1)
        self.latitude = max(-90.0, min(90.0, self.latitude + random.uniform(-1, 1) * _STEP_DEGREES))
        self.longitude = max(-180.0, min(180.0, self.longitude + random.uniform(-1, 1) * _STEP_DEGREES))
        self.battery = max(0.0, self.battery - self.drain_per_fix)
        accuracy = random.uniform(3.0, 8.0) if high_accuracy else random.uniform(20.0, 60.0)
        return PositionFix(latitude=self.latitude, longitude=self.longitude, accuracy=accuracy)

    async def get_battery_level(self) -> int | None:
        return round(self.battery)

    async def get_device_descriptor(self) -> DeviceDescriptor:
        return DeviceDescriptor(model=self.model, platform=self.platform)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Simulate a tracked device reporting its location.")
    parser.add_argument(
        "--code",
        default=None,
        help="Device code to report under (default: a newly generated code).",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between samples (default: LOCATR_SAMPLE_INTERVAL or 30).",
    )
    parser.add_argument(
        "--start",
        default="40.7128,-74.0060",
        help="Starting position as 'lat,lon'.",
    )
    parser.add_argument(
        "--fail-rate",
        type=float,
        default=0.0,
        help="Probability that a fix never arrives (exercises the fix timeout).",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Write to an in-memory store instead of the configured store.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_sample(code: str, sample: LocationSample) -> None:
    battery = "?" if sample.battery_level is None else f"{sample.battery_level}%"
    accuracy = "?" if sample.accuracy is None else f"{sample.accuracy:.0f}m"
    print(
        f"[sim] {code} {sample.captured_at:%H:%M:%S} "
        f"lat={sample.latitude:.6f} lon={sample.longitude:.6f} acc={accuracy} battery={battery}"
    )


async def _simulate(args: argparse.Namespace, config: LocatrConfig, store: SampleStore) -> int:
    lat_text, _, lon_text = args.start.partition(",")
    provider = RandomWalkProvider(latitude=float(lat_text), longitude=float(lon_text), fail_rate=args.fail_rate)
    code = args.code or generate_device_code()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, stop_event.set)

    def on_error(error: LocatrError) -> None:
        print(f"[sim] {describe_error(error)}: {error}", file=sys.stderr)

    async with SamplingLoop(
        store,
        provider,
        config=config,
        on_sample=lambda sample: _print_sample(code, sample),
        on_error=on_error,
    ) as sampler:
        try:
            await sampler.start(code)
        except LocatrError as exc:
            print(f"[sim] Start failed: {describe_error(exc)} ({exc})", file=sys.stderr)
            return 2
        print(f"[sim] Reporting as {code} every {config.sample_interval:g}s (Ctrl+C to stop)")

        timeout = args.duration if args.duration > 0 else None
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout)
        await sampler.stop()
        await sampler.drain()

    session = sampler.session
    print("[sim] Summary")
    print(f"[sim]   samples_written : {session.samples_written}")
    print(f"[sim]   cycles_failed   : {session.cycles_failed}")
    print(f"[sim]   cycles_dropped  : {session.cycles_dropped}")
    return 0


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, object] = {}
    if args.interval is not None:
        overrides["sample_interval"] = args.interval
    config = LocatrConfig.from_env(**overrides).validate()

    if args.dry_run:
        return await _simulate(args, config, MemorySampleStore())
    if not config.store_url:
        print("[sim] LOCATR_STORE_URL is not set; use --dry-run for a local run", file=sys.stderr)
        return 2
    async with RestSampleStore(config) as store:
        return await _simulate(args, config, store)


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except LocatrError as exc:  # pragma: no cover - configuration/network interaction
        _LOG.error("Simulator failed: %s", exc)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
