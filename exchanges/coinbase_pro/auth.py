"""
Coinbase Pro HMAC Authentication

Signs private REST requests and authenticated feed subscriptions.

Authentication Flow:
    1. Base64-decode the API secret to get the HMAC key
    2. Build the prehash string: "{timestamp}{METHOD}{request_path}{body}"
    3. Sign with HMAC-SHA256 and base64-encode the digest
    4. Set headers: CB-ACCESS-KEY, CB-ACCESS-SIGN, CB-ACCESS-TIMESTAMP,
       CB-ACCESS-PASSPHRASE

The request path includes the query string and the body is the exact JSON
text sent on the wire. Timestamps are Unix seconds; the exchange accepts a
request only within 30 seconds of its own clock.

Usage:
    auth = CoinbaseAuth(key="...", secret="...", passphrase="...")
    headers = auth.get_headers("GET", "/accounts")
"""

import base64
import binascii
import hashlib
import hmac
from dataclasses import dataclass
from typing import Dict, Optional, Union

from pydantic import ValidationError

from core.config import settings
from core.exceptions import AuthenticationError
from core.schemas import Credentials
from core.utils.time import current_utc_timestamp


FEED_VERIFY_PATH = "/users/self/verify"


@dataclass(frozen=True)
class AuthHeaders:
    """Coinbase Pro authentication headers for one request."""

    key: str
    signature: str
    timestamp: str
    passphrase: str

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary for HTTP request headers."""
        return {
            "CB-ACCESS-KEY": self.key,
            "CB-ACCESS-SIGN": self.signature,
            "CB-ACCESS-TIMESTAMP": self.timestamp,
            "CB-ACCESS-PASSPHRASE": self.passphrase,
        }

    def __repr__(self) -> str:
        return (
            f"AuthHeaders(key='{self.key[:8]}...', "
            f"timestamp='{self.timestamp}', "
            f"signature='{self.signature[:12]}...')"
        )


class CoinbaseAuth:
    """
    HMAC-SHA256 request signer.

    Stateless apart from the credentials, so one instance can be shared by
    any number of clients and feeds.
    """

    def __init__(self, key: str, secret: str, passphrase: str):
        """
        Args:
            key: API key
            secret: Base64-encoded API secret
            passphrase: API passphrase

        Raises:
            AuthenticationError: If a credential is missing
        """
        try:
            self.credentials = Credentials(key=key, secret=secret, passphrase=passphrase)
        except ValidationError as e:
            raise AuthenticationError(f"Invalid credentials: {e.error_count()} error(s)") from e

    @classmethod
    def from_settings(cls) -> "CoinbaseAuth":
        """
        Create CoinbaseAuth from COINBASE_API_KEY / COINBASE_API_SECRET /
        COINBASE_API_PASSPHRASE.

        Raises:
            AuthenticationError: If credentials are not configured
        """
        if not settings.has_credentials:
            raise AuthenticationError(
                "COINBASE_API_KEY, COINBASE_API_SECRET and COINBASE_API_PASSPHRASE must be set"
            )
        return cls(
            key=settings.coinbase_api_key,
            secret=settings.coinbase_api_secret,
            passphrase=settings.coinbase_api_passphrase,
        )

    @property
    def key(self) -> str:
        return self.credentials.key

    def _hmac_key(self) -> bytes:
        try:
            return base64.b64decode(self.credentials.secret.get_secret_value(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise AuthenticationError(f"API secret is not valid base64: {e}") from e

    def signature(self, timestamp: str, method: str, request_path: str, body: str = "") -> str:
        """
        Compute the base64 HMAC-SHA256 signature of one request.

        Raises:
            AuthenticationError: If the secret cannot be decoded
        """
        message = f"{timestamp}{method.upper()}{request_path}{body}"
        digest = hmac.new(self._hmac_key(), message.encode("utf-8"), hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")

    def sign(
        self,
        method: str,
        request_path: str,
        body: str = "",
        timestamp: Optional[Union[int, str]] = None
    ) -> AuthHeaders:
        """
        Sign a request.

        Args:
            method: HTTP method
            request_path: Path including query string (e.g. "/orders?status=open")
            body: Exact JSON text of the request body ("" when none)
            timestamp: Unix seconds (defaults to now)

        Returns:
            AuthHeaders for the request
        """
        timestamp = str(current_utc_timestamp() if timestamp is None else timestamp)
        return AuthHeaders(
            key=self.credentials.key,
            signature=self.signature(timestamp, method, request_path, body),
            timestamp=timestamp,
            passphrase=self.credentials.passphrase.get_secret_value(),
        )

    def get_headers(
        self,
        method: str,
        request_path: str,
        body: str = "",
        timestamp: Optional[Union[int, str]] = None
    ) -> Dict[str, str]:
        """Sign a request and return the headers as a dictionary."""
        return self.sign(method, request_path, body, timestamp).to_dict()

    def feed_signature(self, timestamp: Optional[Union[int, str]] = None) -> Dict[str, str]:
        """
        Auth fields for an authenticated feed subscription.

        The feed verifies a signature of GET /users/self/verify.

        Returns:
            {"key", "passphrase", "timestamp", "signature"}
        """
        headers = self.sign("GET", FEED_VERIFY_PATH, "", timestamp)
        return {
            "key": headers.key,
            "passphrase": headers.passphrase,
            "timestamp": headers.timestamp,
            "signature": headers.signature,
        }

    def __repr__(self) -> str:
        return f"CoinbaseAuth(key='{self.key[:8]}...')"
