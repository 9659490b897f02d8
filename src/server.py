"""Protean Engine runner for the marketplace domain.

Starts Engine workers that process events asynchronously when the domain
runs with ``event_processing = "async"`` (the production overlay):
- OutboxProcessor: polls the outbox table and publishes events to the broker
- StreamSubscriptions: reads streams and invokes projectors and event handlers

Usage:
    python src/server.py
    python src/server.py --test-mode   # Drain pending messages and exit
"""

import argparse
import asyncio

from protean.server.engine import Engine

from marketplace.domain import marketplace
from marketplace.utils.logging import configure_logging


async def run(test_mode: bool = False):
    marketplace.init()
    engine = Engine(marketplace, test_mode=test_mode)
    await engine.run()


def main():
    parser = argparse.ArgumentParser(description="Marketplace Engine runner")
    parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Process whatever is pending and exit instead of running forever",
    )
    args = parser.parse_args()

    configure_logging()
    asyncio.run(run(test_mode=args.test_mode))


if __name__ == "__main__":
    main()
