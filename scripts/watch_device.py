#!/usr/bin/env python3
"""Follow a device's live trail from the command line.

Resolves a device code against the configured store (``LOCATR_*``
environment variables), prints the bootstrap history, then follows new
samples through the MQTT insert feed. With ``--html`` the Leaflet map is
rewritten after every change so a browser tab can be refreshed to watch
the trail grow.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import signal
import sys
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
    if os.environ.get("LOCATR_WATCH_REEXEC") == "1":
        return

    env = dict(os.environ)
    env["LOCATR_WATCH_REEXEC"] = "1"
    os.execve(str(candidate_python), [str(candidate_python), *sys.argv], env)


_maybe_reexec_with_project_venv()

from locatr import (  # noqa: E402
    LoadError,
    LocationSample,
    LocatrConfig,
    LocatrError,
    RestSampleStore,
    TrailViewer,
    ViewState,
    describe_error,
)

_LOG = logging.getLogger("locatr.watch")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show and follow the location trail of a device code.")
    parser.add_argument("code", help="Device code to watch.")
    parser.add_argument(
        "--html",
        type=Path,
        default=None,
        help="Write the Leaflet map to this file after every change.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Print the bootstrap history and exit without following the live feed.",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _format_sample(sample: LocationSample) -> str:
    battery = "?" if sample.battery_level is None else f"{sample.battery_level}%"
    accuracy = "?" if sample.accuracy is None else f"{sample.accuracy:.0f}m"
    return (
        f"{sample.captured_at:%Y-%m-%d %H:%M:%S} "
        f"lat={sample.latitude:.6f} lon={sample.longitude:.6f} acc={accuracy} battery={battery}"
    )


def _print_view(view: ViewState) -> None:
    device = view.device
    if device is None:
        return
    summary = view.summary()
    print(f"[watch] {device.display_name} ({device.device_code})")
    print(f"[watch]   samples     : {summary.sample_count}")
    if summary.last_update is not None:
        print(f"[watch]   last update : {summary.last_update:%Y-%m-%d %H:%M:%S} UTC")
    if summary.latest_battery is not None:
        low = " (low)" if summary.low_battery else ""
        print(f"[watch]   battery     : {summary.latest_battery}%{low}")
    for sample in view.samples:
        print(f"[watch]   {_format_sample(sample)}")


async def _run(args: argparse.Namespace) -> int:
    config = LocatrConfig.from_env(**({"mqtt_enabled": False} if args.once else {})).validate()
    if not config.store_url:
        print("[watch] LOCATR_STORE_URL is not set", file=sys.stderr)
        return 2
    if not args.once and not config.mqtt_enabled:
        print("[watch] LOCATR_MQTT_ENABLED is off; following needs the insert feed (or use --once)", file=sys.stderr)
        return 2

    following = False

    def on_change(view: ViewState) -> None:
        # Live inserts append exactly one sample per change.
        if following and view.samples:
            print(f"[watch] + {_format_sample(view.samples[-1])}")
        if args.html is not None:
            args.html.write_text(viewer.renderer.to_html(title=f"Live Location Map - {args.code}"), encoding="utf-8")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, stop_event.set)

    async with RestSampleStore(config) as store, TrailViewer(store, config=config, on_change=on_change) as viewer:
        try:
            view = await viewer.open(args.code)
        except LoadError as exc:
            if viewer.view.device is None:
                print(f"[watch] {describe_error(exc)}: {exc}", file=sys.stderr)
                return 2
            print(f"[watch] {describe_error(exc)}: {exc}; following new samples only", file=sys.stderr)
            view = viewer.view
        except LocatrError as exc:
            print(f"[watch] {describe_error(exc)}: {exc}", file=sys.stderr)
            return 2

        _print_view(view)
        if args.html is not None:
            print(f"[watch] Map written to {args.html}")
        if args.once:
            return 0

        following = True
        print("[watch] Following live samples (Ctrl+C to stop)")
        timeout = args.duration if args.duration > 0 else None
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout)
        print(f"[watch] Live samples accepted={viewer.feed.accepted} discarded={viewer.feed.discarded}")
    return 0


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except LocatrError as exc:  # pragma: no cover - configuration/network interaction
        _LOG.error("Watch failed: %s", exc)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
