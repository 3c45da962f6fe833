"""
Coinbase Pro WebSocket Feed

This module provides async streaming of the Coinbase Pro WebSocket feed.
It handles:
- Connecting to the production, sandbox or a custom feed URL
- Sending subscribe/unsubscribe messages (signed for authenticated feeds)
- Parsing every inbound text frame as JSON

There is no automatic reconnect or resubscription: a dropped connection
ends the message stream with an error and the caller decides what to do.

Channels:
    heartbeat, status, ticker, level2, user, matches, full

WebSocket Documentation:
    https://docs.pro.coinbase.com/#websocket-feed

Usage:
    async with CoinbaseWebSocketFeed(SANDBOX_FEED_URL) as feed:
        await feed.subscribe(["BTC-USD"], [Channels.TICKER, Channels.HEARTBEAT])
        async for message in feed:
            if message["type"] == "ticker":
                print(message["price"])
"""

import asyncio
import json
from typing import Any, AsyncGenerator, Dict, Optional, Sequence, Union

import aiohttp

from core.config import settings, MAIN_FEED_URL, SANDBOX_FEED_URL
from core.exceptions import ConnectionClosedError, ResponseParseError, WebSocketError
from core.logging import get_logger, log_websocket_event
from core.schemas import SubscribeMessage
from exchanges.coinbase_pro.auth import CoinbaseAuth


__all__ = [
    "Channels",
    "CoinbaseWebSocketFeed",
    "connect",
    "connect_authenticated",
    "MAIN_FEED_URL",
    "SANDBOX_FEED_URL",
]


class Channels:
    """Feed channel names."""

    HEARTBEAT = "heartbeat"
    STATUS = "status"
    TICKER = "ticker"
    LEVEL2 = "level2"
    USER = "user"
    MATCHES = "matches"
    FULL = "full"


Channel = Union[str, Dict[str, Any]]


class CoinbaseWebSocketFeed:
    """
    Async client for the Coinbase Pro WebSocket feed.

    Messages of every type (subscriptions, heartbeat, ticker, l2update,
    match, ...) are yielded as parsed dictionaries; branch on message["type"].

    Attributes:
        url: Feed URL
        auth: Optional signer for authenticated subscriptions
        heartbeat: Seconds between transport-level pings (None disables)
        session: aiohttp ClientSession for the WebSocket
        ws: Active WebSocket connection

    Example:
        >>> feed = await connect(SANDBOX_FEED_URL)
        >>> await feed.subscribe(["BTC-USD"], [Channels.LEVEL2])
        >>> async for message in feed:
        ...     print(message["type"])

    Notes:
        - subscribe() returns once the message is written; acknowledgements
          arrive in the stream as {"type": "subscriptions", ...}
        - Exiting the context or calling close() ends iteration normally
    """

    def __init__(
        self,
        url: Optional[str] = None,
        auth: Optional[CoinbaseAuth] = None,
        heartbeat: Optional[int] = None
    ):
        """
        Args:
            url: Feed URL (defaults to settings.feed_url)
            auth: Signer used to authenticate subscriptions (enables the user
                channel and private fields on the full channel)
            heartbeat: Ping interval in seconds (defaults to settings.ws_heartbeat)
        """
        self.url = url or settings.feed_url
        self.auth = auth
        heartbeat = settings.ws_heartbeat if heartbeat is None else heartbeat
        self.heartbeat = heartbeat or None

        self.session: Optional[aiohttp.ClientSession] = None
        self.ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._closing = False

        self.logger = get_logger(__name__)

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ============================================
    # WebSocket Connection Management
    # ============================================

    async def connect(self) -> "CoinbaseWebSocketFeed":
        """
        Establish the WebSocket connection.

        Returns:
            Self, connected

        Raises:
            WebSocketError: If the handshake fails

        Notes:
            - An already open socket is closed before reconnecting
        """
        if self.ws and not self.ws.closed:
            self.logger.info(f"Closing previous connection to {self.url}")
            await self.ws.close(code=aiohttp.WSCloseCode.OK, message=b"reconnecting")

        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
        self._closing = False

        self.logger.info(f"Connecting to {self.url}")

        try:
            self.ws = await self.session.ws_connect(self.url, heartbeat=self.heartbeat)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log_websocket_event("error", f"Failed to connect to {self.url}: {e}")
            await self.session.close()
            raise WebSocketError(f"Failed to connect to {self.url}: {e}") from e

        log_websocket_event("connected", self.url)
        return self

    async def close(self) -> None:
        """
        Send a normal close frame and release the session.

        Notes:
            - Safe to call multiple times
            - A listen() in progress finishes without error
        """
        self._closing = True

        if self.ws and not self.ws.closed:
            await self.ws.close(code=aiohttp.WSCloseCode.OK, message=b"closed manually")
            log_websocket_event("closed", self.url)

        if self.session and not self.session.closed:
            await self.session.close()
            self.logger.debug(f"Session closed for {self.url}")

    # ============================================
    # Subscriptions
    # ============================================

    async def subscribe(self, product_ids: Sequence[str], channels: Sequence[Channel]) -> None:
        """
        Subscribe to channels for a list of products.

        Args:
            product_ids: Products (e.g., ["BTC-USD", "ETH-USD"])
            channels: Channel names, or channel objects such as
                {"name": "ticker", "product_ids": ["ETH-BTC"]}

        Raises:
            RuntimeError: If not connected
            AuthenticationError: If the subscription cannot be signed
            WebSocketError: If the message cannot be written
        """
        auth_fields = self.auth.feed_signature() if self.auth else {}
        message = SubscribeMessage(
            type="subscribe",
            product_ids=list(product_ids),
            channels=list(channels),
            **auth_fields
        )
        await self._send(message)

    async def unsubscribe(self, product_ids: Sequence[str], channels: Sequence[Channel]) -> None:
        """Unsubscribe from channels for a list of products."""
        message = SubscribeMessage(
            type="unsubscribe",
            product_ids=list(product_ids),
            channels=list(channels)
        )
        await self._send(message)

    async def _send(self, message: SubscribeMessage) -> None:
        if not self.ws or self.ws.closed:
            raise RuntimeError("WebSocket not connected. Call connect() or use 'async with' statement.")

        try:
            await self.ws.send_str(message.to_json())
        except (aiohttp.ClientError, ConnectionResetError) as e:
            raise WebSocketError(f"Failed to send {message.type}: {e}") from e

        channel_names = [c if isinstance(c, str) else c.get("name") for c in message.channels]
        log_websocket_event(
            message.type,
            f"{','.join(message.product_ids) or '-'} | {','.join(channel_names)}"
        )

    # ============================================
    # Message Streaming
    # ============================================

    def __aiter__(self):
        return self.listen()

    async def listen(self) -> AsyncGenerator[Dict[str, Any], None]:
        """
        Yield every feed message, parsed from JSON.

        Yields:
            Dict[str, Any]: Parsed message

        Raises:
            RuntimeError: If not connected
            ResponseParseError: If a text frame is not valid JSON
            WebSocketError: On a transport error
            ConnectionClosedError: If the exchange closes or drops the connection

        Message Types:
            - WSMsgType.TEXT: JSON data (yielded)
            - WSMsgType.BINARY: not used by the feed (logged and skipped)
            - WSMsgType.CLOSE/CLOSING/CLOSED: end of stream
            - WSMsgType.ERROR: transport error
        """
        if not self.ws:
            raise RuntimeError("WebSocket not connected. Call connect() or use 'async with' statement.")

        async for msg in self.ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    data = json.loads(msg.data)
                except json.JSONDecodeError as e:
                    self.logger.error(f"Failed to parse JSON: {msg.data[:100]}... Error: {e}")
                    raise ResponseParseError(f"Malformed feed message: {e}", body=msg.data) from e

                if isinstance(data, dict):
                    self.logger.debug(f"Received message: {data.get('type', 'unknown')}")
                yield data

            elif msg.type == aiohttp.WSMsgType.BINARY:
                self.logger.warning(f"Server sent non-text frame ({len(msg.data)} bytes); skipping")

            elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                break

            elif msg.type == aiohttp.WSMsgType.ERROR:
                error = self.ws.exception()
                log_websocket_event("error", str(error))
                raise WebSocketError(f"WebSocket error: {error}") from error

        if not self._closing:
            code = self.ws.close_code
            log_websocket_event("error", f"Connection closed by exchange (code {code})")
            raise ConnectionClosedError(f"Feed connection closed (code {code})", code=code)

        self.logger.info(f"WebSocket listener stopped for {self.url}")


# ============================================
# Convenience Connectors
# ============================================

async def connect(url: Optional[str] = None) -> CoinbaseWebSocketFeed:
    """
    Open a public feed connection.

    Example:
        >>> feed = await connect(SANDBOX_FEED_URL)
        >>> await feed.subscribe(["BTC-USD"], [Channels.HEARTBEAT])
    """
    return await CoinbaseWebSocketFeed(url).connect()


async def connect_authenticated(
    key: str,
    secret: str,
    passphrase: str,
    url: Optional[str] = None
) -> CoinbaseWebSocketFeed:
    """
    Open a feed connection whose subscriptions are signed with the given
    credentials.

    Example:
        >>> feed = await connect_authenticated("key", "secret", "pass", SANDBOX_FEED_URL)
        >>> await feed.subscribe(["BTC-USD"], [Channels.USER])
    """
    return await CoinbaseWebSocketFeed(url, auth=CoinbaseAuth(key, secret, passphrase)).connect()
