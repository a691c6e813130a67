#!/usr/bin/env python3
"""Realtime probe for the dispatch backend.

Connects as one driver, optionally joins booking rooms, and prints every
inbound event together with connection state changes. Credentials come
from the command line or ``DRIVERLINK_DRIVER_ID``/``DRIVERLINK_TOKEN``;
the endpoint from the usual ``DRIVERLINK_*`` configuration variables.

Use this to check which events the backend pushes and how often.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydriverlink import ConnectionManager, ConnectionState, DriverLinkConfig, InboundEvent


@dataclass
class ProbeStats:
    started_at: float
    total_events: int = 0
    per_event: dict[str, int] = field(default_factory=dict)
    connects: int = 0
    drops: int = 0
    last_event_at: float | None = None

    def on_event(self, name: str, now: float) -> float | None:
        previous = self.last_event_at
        self.total_events += 1
        self.per_event[name] = self.per_event.get(name, 0) + 1
        self.last_event_at = now
        return None if previous is None else now - previous


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print realtime events pushed to a driver.",
    )
    parser.add_argument(
        "--driver-id",
        default=os.environ.get("DRIVERLINK_DRIVER_ID"),
        help="Driver id (default: $DRIVERLINK_DRIVER_ID).",
    )
    parser.add_argument(
        "--token",
        default=os.environ.get("DRIVERLINK_TOKEN"),
        help="Bearer token (default: $DRIVERLINK_TOKEN).",
    )
    parser.add_argument(
        "--booking",
        action="append",
        default=[],
        help="Booking room to join. Repeat for several rooms.",
    )
    parser.add_argument(
        "--event",
        action="append",
        default=[],
        help="Extra inbound event name to print. Repeat for several names.",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Pretty-print event payloads.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_summary(stats: ProbeStats) -> None:
    runtime = time.time() - stats.started_at
    print("[probe] Summary")
    print(f"[probe]   runtime_s    : {runtime:.1f}")
    print(f"[probe]   connects     : {stats.connects}")
    print(f"[probe]   drops        : {stats.drops}")
    print(f"[probe]   total_events : {stats.total_events}")
    for name, count in sorted(stats.per_event.items()):
        print(f"[probe]     {name}: {count}")


async def _run(args: argparse.Namespace, stats: ProbeStats) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop.set)
        except NotImplementedError:  # pragma: no cover - Windows
            pass

    async with ConnectionManager(DriverLinkConfig.from_env()) as link:

        def printer(name: str) -> Callable[[Any], None]:
            def _print(payload: Any) -> None:
                now = time.time()
                delta = stats.on_event(name, now)
                ts_text = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(now))
                gap_text = "first" if delta is None else f"{delta:.1f}s"
                print(f"[probe] {name} at {ts_text} gap={gap_text}")
                print(json.dumps(payload, indent=2 if args.json else None, ensure_ascii=False, sort_keys=True))

            return _print

        def on_state(state: ConnectionState) -> None:
            if state is ConnectionState.CONNECTED:
                stats.connects += 1
            elif state is ConnectionState.DISCONNECTED and stats.connects:
                stats.drops += 1
            print(f"[probe] state={state}")

        for name in [*InboundEvent, *args.event]:
            link.events.on(name, printer(str(name)))
        link.events.connection_state.subscribe(on_state)

        link.connect(args.driver_id, args.token)
        for booking_id in args.booking:
            link.join_booking_room(booking_id)

        try:
            await asyncio.wait_for(stop.wait(), timeout=args.duration or None)
        except TimeoutError:
            print(f"[probe] Reached --duration={args.duration}s, stopping.")


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if not args.driver_id or not args.token:
        print("[probe] --driver-id and --token are required", file=sys.stderr)
        return 2

    stats = ProbeStats(started_at=time.time())
    try:
        asyncio.run(_run(args, stats))
    except KeyboardInterrupt:
        pass
    _print_summary(stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
