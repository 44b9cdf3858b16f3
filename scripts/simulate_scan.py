from __future__ import annotations

import argparse
import asyncio
import json

from laundry_core.config import get_scan_config
from laundry_core.scanning.backends.stub import StubScanTransport
from laundry_core.scanning.coordinator import ScanSessionCoordinator
from laundry_core.scanning.models import ScannedTag, ScanOptions
from laundry_core.scanning.ranges import SCAN_RANGE_ORDER


async def _run(args: argparse.Namespace) -> None:
    config = get_scan_config()
    transport = StubScanTransport(config)
    coordinator = ScanSessionCoordinator(transport, config)
    done = asyncio.Event()

    def on_tag(tag: ScannedTag) -> None:
        print(f"{tag.id}  rssi={tag.signal_strength:.0f}")
        if args.max_tags and len(coordinator.seen_ids) >= args.max_tags:
            done.set()

    await coordinator.start(
        on_tag,
        ScanOptions(range_key=args.range, max_tags=args.max_tags or None),
        on_error=lambda exc: print(f"reader error: {exc}"),
    )
    transport.start_simulation(args.interval, seed=args.seed)
    try:
        await asyncio.wait_for(done.wait(), timeout=args.duration)
    except asyncio.TimeoutError:
        pass
    status = await coordinator.status()
    await coordinator.close()
    print(json.dumps(status.model_dump(mode="json"), indent=2))


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a simulated RFID scan session")
    parser.add_argument("--range", choices=SCAN_RANGE_ORDER, default=None)
    parser.add_argument("--interval", type=float, default=0.2, help="Seconds between simulated reads")
    parser.add_argument("--duration", type=float, default=5.0, help="Stop after this many seconds")
    parser.add_argument("--max-tags", type=int, default=0, help="Stop after accepting this many tags")
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
