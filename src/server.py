"""Background runner for the order fulfillment engine.

Runs two periodic jobs in one process:
- OrderSweep: promotes paid pending orders to confirmed and stale confirmed
  orders to processing
- OutboxDispatcher: sends notifications still pending in the outbox

Usage:
    python src/server.py                      # Run both loops until interrupted
    python src/server.py --once               # One sweep and one dispatch pass, then exit
    python src/server.py --interval 60        # Override SWEEP_INTERVAL_SECONDS
"""

import argparse
import asyncio
import json

from order_fulfillment.domain import fulfillment
from order_fulfillment.order.sweep import SweepScheduler
from order_fulfillment.services import build_services


def _scheduler(args) -> SweepScheduler:
    fulfillment.init()
    return SweepScheduler(
        fulfillment,
        build_services(),
        interval=args.interval,
        outbox_interval=args.outbox_interval,
    )


def main():
    parser = argparse.ArgumentParser(description="Order fulfillment background runner")
    parser.add_argument("--once", action="store_true", help="Run a single pass of each job and exit")
    parser.add_argument("--interval", type=float, help="Seconds between sweep passes")
    parser.add_argument("--outbox-interval", type=float, help="Seconds between outbox dispatch passes")
    args = parser.parse_args()

    scheduler = _scheduler(args)
    if args.once:
        sweep = scheduler.sweep_once()
        dispatch = scheduler.dispatch_once()
        print(json.dumps({"sweep": sweep.to_dict(), "outbox": dispatch.to_dict()}, indent=2))
        return

    try:
        asyncio.run(scheduler.run())
    except KeyboardInterrupt:
        scheduler.stop()


if __name__ == "__main__":
    main()
