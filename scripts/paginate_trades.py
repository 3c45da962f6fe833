#!/usr/bin/env python3
"""
Walk the trade history of a product page by page.

The client never throttles; this script sleeps between pages to stay under
the public rate limit (3 requests/second).

Usage examples (after `pip install -e .`):
  python scripts/paginate_trades.py --product BTC-USD --pages 5
  python scripts/paginate_trades.py --product ETH-USD --limit 100 --delay 0.5 --sandbox
"""

import asyncio
import argparse
import sys

from core.exceptions import CoinbaseError
from core.logging import setup_logging
from exchanges.coinbase_pro import PublicClient, MAIN_URL, SANDBOX_URL


async def main() -> int:
    parser = argparse.ArgumentParser(description="Paginate Coinbase Pro trades for a product")
    parser.add_argument("--product", default="BTC-USD", help="Product id (default: BTC-USD)")
    parser.add_argument("--limit", type=int, default=100, help="Trades per page (max 100)")
    parser.add_argument("--pages", type=int, default=3, help="Stop after this many pages (0 = all)")
    parser.add_argument("--delay", type=float, default=0.4, help="Seconds to wait between pages")
    parser.add_argument("--sandbox", action="store_true", help="Use the sandbox REST API")
    args = parser.parse_args()

    setup_logging()

    async with PublicClient(SANDBOX_URL if args.sandbox else MAIN_URL) as client:
        count = 0
        try:
            async for page in client.get_trades(args.product).limit(args.limit).paginate():
                if not page:
                    break
                count += 1
                first, last = page[0]["trade_id"], page[-1]["trade_id"]
                print(f"[Page {count}] {len(page)} trades ({first} .. {last})")
                if args.pages and count >= args.pages:
                    break
                await asyncio.sleep(args.delay)
        except CoinbaseError as e:
            print(f"[Error] after {count} page(s): {e}", file=sys.stderr)
            return 1
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n[Info] Interrupted. Bye.")
        sys.exit(0)
