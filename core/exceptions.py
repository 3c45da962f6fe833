"""
Client Exceptions

All errors raised by the Coinbase Pro client derive from CoinbaseError, so
callers can catch everything with one clause or branch on the subclass.

Taxonomy:
    - TransportError: connection, DNS or timeout failure before a response
    - APIError: the exchange answered with a non-2xx status
    - ResponseParseError: the body could not be decoded as JSON
    - AuthenticationError: the request could not be signed
    - WebSocketError: feed transport failure
    - ConnectionClosedError: the feed was closed by the remote side

Nothing here is retried by the client. The caller decides recovery policy.
"""

from typing import Optional


class CoinbaseError(Exception):
    """Base exception for every client error."""
    pass


class TransportError(CoinbaseError):
    """Request never produced a response (network, DNS, timeout)."""
    pass


class APIError(CoinbaseError):
    """
    Non-success HTTP status returned by the exchange.

    Attributes:
        status: HTTP status code
        message: Exchange-supplied reason (the "message" field when present)
        body: Raw response body
    """

    def __init__(self, status: int, message: str, body: str = ""):
        self.status = status
        self.message = message
        self.body = body
        super().__init__(f"Status Code: {status}, Reason: {message}")


class ResponseParseError(CoinbaseError):
    """Response or feed message body is not valid JSON."""

    def __init__(self, message: str, body: str = ""):
        self.body = body
        super().__init__(message)


class AuthenticationError(CoinbaseError):
    """Failed to sign a request (e.g. secret is not valid base64)."""
    pass


class WebSocketError(CoinbaseError):
    """WebSocket feed transport or protocol failure."""
    pass


class ConnectionClosedError(WebSocketError):
    """Feed connection was closed by the exchange or dropped."""

    def __init__(self, message: str, code: Optional[int] = None):
        self.code = code
        super().__init__(message)
