#!/usr/bin/env python3
"""
Print Coinbase Pro WebSocket feed messages.

Usage examples (after `pip install -e .`):
  python scripts/feed_printer.py
  python scripts/feed_printer.py --products BTC-USD,ETH-USD --channels ticker,heartbeat --sandbox
  python scripts/feed_printer.py --channels user --auth --duration 60
"""

import asyncio
import argparse
import json
import sys

from core.config import settings
from core.exceptions import CoinbaseError
from core.logging import setup_logging
from exchanges.coinbase_pro import (
    CoinbaseAuth,
    CoinbaseWebSocketFeed,
    SANDBOX_FEED_URL,
)


async def print_feed(feed: CoinbaseWebSocketFeed, products, channels) -> None:
    await feed.subscribe(products, channels)
    async for message in feed:
        print(json.dumps(message))


async def main() -> int:
    parser = argparse.ArgumentParser(description="Print messages from the Coinbase Pro WebSocket feed")
    parser.add_argument("--products", default="BTC-USD", help="Comma-separated product ids (default: BTC-USD)")
    parser.add_argument("--channels", default="heartbeat", help="Comma-separated channels (default: heartbeat)")
    parser.add_argument("--sandbox", action="store_true", help="Use the sandbox feed")
    parser.add_argument("--auth", action="store_true", help="Sign the subscription with COINBASE_API_* settings")
    parser.add_argument("--duration", type=int, default=0, help="Seconds to run (0 = until the feed closes)")
    args = parser.parse_args()

    setup_logging()

    url = SANDBOX_FEED_URL if args.sandbox else settings.feed_url
    products = [p.strip() for p in args.products.split(",") if p.strip()]
    channels = [c.strip() for c in args.channels.split(",") if c.strip()]

    try:
        auth = CoinbaseAuth.from_settings() if args.auth else None
        async with CoinbaseWebSocketFeed(url, auth=auth) as feed:
            if args.duration > 0:
                await asyncio.wait_for(print_feed(feed, products, channels), timeout=args.duration)
            else:
                await print_feed(feed, products, channels)
    except asyncio.TimeoutError:
        print("[Info] Duration reached; stopping.")
    except CoinbaseError as e:
        print(f"[Error] {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n[Info] Interrupted. Bye.")
        sys.exit(0)
