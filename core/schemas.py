"""
Client Data Schemas

This module defines Pydantic models for the data the client itself handles.
Exchange payloads (accounts, orders, book snapshots, feed messages) are not
modelled: they are returned to the caller as plain JSON values.

Models:
    - Credentials: API key, secret and passphrase (immutable)
    - RequestDescriptor: method, path, query parameters and optional body of
      one REST call
    - ApiResponse: status, headers and raw text of one REST response
    - SubscribeMessage: outbound WebSocket subscribe/unsubscribe message
"""

import json
from typing import Any, Dict, List, Literal, Optional, Union
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from core.exceptions import ResponseParseError


# ============================================
# Credentials
# ============================================

class Credentials(BaseModel):
    """
    Coinbase Pro API credentials.

    Supplied once at client construction and never modified. The secret and
    passphrase are SecretStr so they do not leak through repr() or logs.

    Attributes:
        key: API key
        secret: Base64-encoded API secret
        passphrase: API passphrase chosen when the key was created
    """

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1, description="API key")
    secret: SecretStr = Field(..., description="Base64-encoded API secret")
    passphrase: SecretStr = Field(..., description="API passphrase")

    @field_validator("secret", "passphrase")
    @classmethod
    def validate_not_empty(cls, v: SecretStr) -> SecretStr:
        """Ensure secret and passphrase are set"""
        if not v.get_secret_value():
            raise ValueError("must not be empty")
        return v


# ============================================
# REST Request / Response
# ============================================

def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return [_query_value(v) for v in value]
    return str(value)


class RequestDescriptor(BaseModel):
    """
    One REST call: method, path, query parameters and optional JSON body.

    Query parameters with a None value are omitted. List values are sent as
    repeated keys (e.g. status=open&status=pending).

    Example:
        >>> req = RequestDescriptor(method="GET", path="/orders", params={"status": ["open", "done"]})
        >>> req.request_path()
        '/orders?status=open&status=done'
    """

    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    params: Dict[str, Any] = Field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        """Ensure method is uppercase"""
        return v.upper()

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Ensure path is absolute"""
        if not v.startswith("/"):
            raise ValueError(f"Request path must start with '/': {v!r}")
        return v

    def query_string(self) -> str:
        pairs = [(k, _query_value(v)) for k, v in self.params.items() if v is not None]
        return urlencode(pairs, doseq=True)

    def request_path(self) -> str:
        """Path plus query string, exactly as signed and sent."""
        query = self.query_string()
        return f"{self.path}?{query}" if query else self.path

    def body_text(self) -> str:
        """Compact JSON body, or an empty string when there is no body."""
        if self.body is None:
            return ""
        payload = {k: v for k, v in self.body.items() if v is not None}
        return json.dumps(payload, separators=(",", ":"))

    def with_params(self, **updates: Any) -> "RequestDescriptor":
        """
        Return a copy with query parameters replaced.

        A None value removes the parameter.
        """
        params = dict(self.params)
        for name, value in updates.items():
            if value is None:
                params.pop(name, None)
            else:
                params[name] = value
        return self.model_copy(update={"params": params})


class ApiResponse(BaseModel):
    """
    Raw REST response as received from the transport.

    Attributes:
        status: HTTP status code
        headers: Response headers with lower-cased names
        text: Response body
    """

    status: int
    headers: Dict[str, str] = Field(default_factory=dict)
    text: str = ""

    @field_validator("headers")
    @classmethod
    def lowercase_headers(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Header names are case-insensitive"""
        return {name.lower(): value for name, value in v.items()}

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    def json_body(self) -> Any:
        """
        Decode the body as JSON.

        Raises:
            ResponseParseError: If the body is empty or not valid JSON
        """
        try:
            return json.loads(self.text)
        except (json.JSONDecodeError, TypeError) as e:
            raise ResponseParseError(
                f"Malformed response body (HTTP {self.status}): {e}",
                body=self.text
            ) from e


# ============================================
# WebSocket Feed
# ============================================

class SubscribeMessage(BaseModel):
    """
    Outbound subscribe/unsubscribe message for the WebSocket feed.

    Channels are either channel names or channel objects of the form
    {"name": "ticker", "product_ids": ["ETH-USD"]}. The auth fields are only
    present on authenticated subscriptions and are omitted otherwise.

    Example:
        >>> SubscribeMessage(product_ids=["BTC-USD"], channels=["heartbeat"]).to_json()
        '{"type":"subscribe","product_ids":["BTC-USD"],"channels":["heartbeat"]}'
    """

    type: Literal["subscribe", "unsubscribe"] = "subscribe"
    product_ids: List[str] = Field(default_factory=list)
    channels: List[Union[str, Dict[str, Any]]]

    key: Optional[str] = None
    passphrase: Optional[str] = None
    timestamp: Optional[str] = None
    signature: Optional[str] = None

    @field_validator("channels")
    @classmethod
    def validate_channels(cls, v: List[Union[str, Dict[str, Any]]]) -> List[Union[str, Dict[str, Any]]]:
        """Ensure at least one channel is named"""
        if not v:
            raise ValueError("At least one channel is required")
        return v

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)
