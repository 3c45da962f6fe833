"""
Coinbase Pro Connector

Async bindings for the Coinbase Pro REST API and WebSocket feed:
- auth.py: HMAC-SHA256 request signer
- request.py: Deferred request handles returned by endpoint methods
- paginator.py: Cursor pagination over cb-after / cb-before headers
- api_client.py: PublicClient and AuthenticatedClient
- ws_client.py: WebSocket feed subscription and message stream

Example:
    from exchanges.coinbase_pro import PublicClient, SANDBOX_URL

    async with PublicClient(SANDBOX_URL) as client:
        print(await client.get_time())
"""

from core.config import MAIN_URL, SANDBOX_URL, MAIN_FEED_URL, SANDBOX_FEED_URL
from .auth import AuthHeaders, CoinbaseAuth
from .api_client import AuthenticatedClient, PublicClient
from .paginator import Paginator
from .request import RequestBuilder, PaginatedRequest
from .ws_client import (
    Channels,
    CoinbaseWebSocketFeed,
    connect,
    connect_authenticated,
)

__all__ = [
    "MAIN_URL",
    "SANDBOX_URL",
    "MAIN_FEED_URL",
    "SANDBOX_FEED_URL",
    "AuthHeaders",
    "CoinbaseAuth",
    "PublicClient",
    "AuthenticatedClient",
    "Paginator",
    "RequestBuilder",
    "PaginatedRequest",
    "Channels",
    "CoinbaseWebSocketFeed",
    "connect",
    "connect_authenticated",
]
