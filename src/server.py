"""Protean Engine runner for the dropship domain.

Starts the Engine workers that process commands and events asynchronously
when ``PROTEAN_ENV=production``:
- OutboxProcessor: polls the outbox table, publishes events to Redis Streams
- StreamSubscriptions: reads Redis Streams and invokes event handlers

Each handler (submission, webhooks, retry, sync, pricing) gets its own
subscription, so a slow supplier upload never holds up the others.

Usage:
    python src/server.py
"""

import argparse
import asyncio

from protean.server.engine import Engine


def _get_domain():
    from dropship.domain import dropship
    from dropship.utils.logging import configure_logging

    configure_logging()
    dropship.init()
    return dropship


async def run(test_mode: bool = False):
    engine = Engine(_get_domain(), test_mode=test_mode)
    await engine.run()


def main():
    parser = argparse.ArgumentParser(description="Dropship Engine runner")
    parser.add_argument("--test-mode", action="store_true", help="Process pending messages once and exit")
    args = parser.parse_args()

    asyncio.run(run(test_mode=args.test_mode))


if __name__ == "__main__":
    main()
