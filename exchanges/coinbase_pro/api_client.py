"""
Coinbase Pro REST API Client

This module provides async HTTP clients for the Coinbase Pro REST API.
It handles:
- Session management (async context manager)
- Request signing for private endpoints
- Mapping of HTTP failures to client exceptions
- One method per documented endpoint, each returning a deferred handle

API Documentation:
    https://docs.pro.coinbase.com/

Rate Limits:
    - Public endpoints: 3 requests/second per IP
    - Private endpoints: 5 requests/second per profile
    - This client does not retry or throttle; pace requests in the caller

Usage:
    async with PublicClient() as client:
        products = await client.get_products()
        book = await client.get_product_order_book("BTC-USD").level(2)

    async with AuthenticatedClient(key, secret, passphrase, SANDBOX_URL) as client:
        accounts = await client.list_accounts()
"""

import asyncio
from typing import Any, Dict, Optional, Sequence, Union
from urllib.parse import quote

import aiohttp
from yarl import URL

from core.config import settings, MAIN_URL, SANDBOX_URL
from core.exceptions import APIError, AuthenticationError, ResponseParseError, TransportError
from core.logging import get_logger, log_api_request, log_api_response
from core.schemas import ApiResponse, RequestDescriptor
from core.utils.time import to_iso8601
from exchanges.coinbase_pro.auth import CoinbaseAuth
from exchanges.coinbase_pro.request import (
    BookRequest,
    CancelAllRequest,
    CandleRequest,
    ListOrdersRequest,
    OrderRequest,
    PaginatedRequest,
    ReportRequest,
    RequestBuilder,
    TimeLike,
)


__all__ = ["PublicClient", "AuthenticatedClient", "MAIN_URL", "SANDBOX_URL"]

Number = Union[int, float, str]

VALID_GRANULARITIES = (60, 300, 900, 3600, 21600, 86400)


def _segment(value: str) -> str:
    """Percent-encode a value used as a single path segment."""
    return quote(str(value), safe="")


def _amount(value: Number) -> str:
    """Decimal amounts are sent as strings to avoid float rounding on the wire."""
    return str(value)


def _exactly_one(**options: Any) -> str:
    chosen = [name for name, value in options.items() if value is not None]
    if len(chosen) != 1:
        raise ValueError(f"Exactly one of {', '.join(options)} is required, got {len(chosen)}")
    return chosen[0]


def _side(value: str) -> str:
    side = value.lower()
    if side not in ("buy", "sell"):
        raise ValueError(f"Order side must be 'buy' or 'sell', got {value!r}")
    return side


def _error_message(response: ApiResponse) -> str:
    try:
        data = response.json_body()
    except ResponseParseError:
        return response.text or f"HTTP {response.status}"
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text


class PublicClient:
    """
    Async HTTP client for the public (unauthenticated) Coinbase Pro endpoints.

    Attributes:
        url: REST base URL (production, sandbox, or a custom one)
        timeout: Total timeout for one request in seconds
        session: aiohttp ClientSession for HTTP requests
        logger: Logger instance for debugging

    Example:
        >>> async with PublicClient(SANDBOX_URL) as client:
        ...     ticker = await client.get_product_ticker("BTC-USD")
        ...     print(ticker["price"])

    Notes:
        - Endpoint methods do no I/O; they return handles to await
        - Handles must be awaited while the client session is open
    """

    def __init__(self, url: Optional[str] = None, timeout: Optional[int] = None):
        """
        Args:
            url: REST base URL (defaults to settings.rest_url)
            timeout: Request timeout in seconds (defaults to settings.request_timeout)
        """
        self.url = (url or settings.rest_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout
        self.session: Optional[aiohttp.ClientSession] = None
        self.logger = get_logger(__name__)

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        self.session = aiohttp.ClientSession()
        self.logger.debug(f"{type(self).__name__} session created for {self.url}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session. Safe to call multiple times."""
        if self.session and not self.session.closed:
            await self.session.close()
            self.logger.debug(f"{type(self).__name__} session closed")

    # ============================================
    # Transport
    # ============================================

    async def _send(self, request: RequestDescriptor, headers: Dict[str, str]) -> ApiResponse:
        """
        Send one request and return the raw response.

        Raises:
            RuntimeError: If the session is not open
            TransportError: On connection failure or timeout
            ResponseParseError: If the body is not valid UTF-8
        """
        if not self.session or self.session.closed:
            raise RuntimeError("Client session not initialized or closed. Use 'async with' statement.")

        # Query is already encoded; the exact path is part of the signature
        url = URL(f"{self.url}{request.request_path()}", encoded=True)
        body = request.body_text()

        try:
            async with self.session.request(
                request.method,
                url,
                data=body.encode("utf-8") if body else None,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                raw = await resp.read()
                try:
                    text = raw.decode("utf-8")
                except UnicodeDecodeError as e:
                    raise ResponseParseError(
                        f"Response body is not UTF-8 (HTTP {resp.status})"
                    ) from e
                return ApiResponse(status=resp.status, headers=dict(resp.headers), text=text)

        except asyncio.TimeoutError as e:
            self.logger.error(f"Timeout on {request.method} {request.path}")
            raise TransportError(f"Timeout on {request.method} {request.path}") from e

        except aiohttp.ClientError as e:
            self.logger.error(f"Request failed on {request.method} {request.path}: {e}")
            raise TransportError(f"Request failed on {request.method} {request.path}: {e}") from e

    async def _execute(
        self,
        request: RequestDescriptor,
        auth: Optional[CoinbaseAuth] = None
    ) -> ApiResponse:
        """
        Sign (when auth is given), send, and check the status of one request.

        Raises:
            AuthenticationError: If signing fails
            TransportError: On connection failure or timeout
            APIError: On a non-2xx status
        """
        request_path = request.request_path()
        body = request.body_text()

        headers = {"Accept": "application/json"}
        if body:
            headers["Content-Type"] = "application/json"
        if auth is not None:
            headers.update(auth.get_headers(request.method, request_path, body))

        log_api_request(request.method, request_path, signed=auth is not None)
        started = asyncio.get_running_loop().time()

        response = await self._send(request, headers)

        log_api_response(
            request.method,
            request_path,
            response.status,
            asyncio.get_running_loop().time() - started
        )

        if not response.ok:
            message = _error_message(response)
            self.logger.error(f"HTTP {response.status} on {request.method} {request.path}: {message}")
            raise APIError(response.status, message, response.text)

        return response

    def _build(
        self,
        handle: type,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        auth: Optional[CoinbaseAuth] = None
    ) -> Any:
        request = RequestDescriptor(method=method, path=path, params=params or {}, body=body)
        return handle(self, request, auth)

    # ============================================
    # Public Endpoints
    # ============================================

    def get_products(self) -> RequestBuilder:
        """
        List available currency pairs for trading.

        Endpoint:
            GET /products
        """
        return self._build(RequestBuilder, "GET", "/products")

    def get_product_order_book(self, product_id: str) -> BookRequest:
        """
        Order book for a product. Use .level(1|2|3) to choose aggregation.

        Endpoint:
            GET /products/<product-id>/book

        Example:
            >>> book = await client.get_product_order_book("BTC-USD").level(2)
            >>> print(book["bids"][0])
        """
        return self._build(BookRequest, "GET", f"/products/{_segment(product_id)}/book")

    def get_product_ticker(self, product_id: str) -> RequestBuilder:
        """
        Snapshot of the last trade, best bid/ask and 24h volume.

        Endpoint:
            GET /products/<product-id>/ticker
        """
        return self._build(RequestBuilder, "GET", f"/products/{_segment(product_id)}/ticker")

    def get_trades(self, product_id: str) -> PaginatedRequest:
        """
        Latest trades for a product (paginated).

        Endpoint:
            GET /products/<product-id>/trades
        """
        return self._build(PaginatedRequest, "GET", f"/products/{_segment(product_id)}/trades")

    def get_historic_rates(self, product_id: str, granularity: int) -> CandleRequest:
        """
        Historic candles for a product. Use .range(start, end) to bound them.

        Args:
            product_id: Product (e.g., "BTC-USD")
            granularity: Candle width in seconds (60, 300, 900, 3600, 21600, 86400)

        Endpoint:
            GET /products/<product-id>/candles

        Response Format:
            [[time, low, high, open, close, volume], ...]
        """
        if granularity not in VALID_GRANULARITIES:
            raise ValueError(
                f"Invalid granularity: {granularity}. "
                f"Must be one of: {', '.join(str(g) for g in VALID_GRANULARITIES)}"
            )
        return self._build(
            CandleRequest,
            "GET",
            f"/products/{_segment(product_id)}/candles",
            params={"granularity": granularity}
        )

    def get_24hr_stats(self, product_id: str) -> RequestBuilder:
        """
        Endpoint:
            GET /products/<product-id>/stats
        """
        return self._build(RequestBuilder, "GET", f"/products/{_segment(product_id)}/stats")

    def get_currencies(self) -> RequestBuilder:
        """
        Endpoint:
            GET /currencies
        """
        return self._build(RequestBuilder, "GET", "/currencies")

    def get_time(self) -> RequestBuilder:
        """
        Server time, as {"iso": ..., "epoch": ...}.

        Endpoint:
            GET /time
        """
        return self._build(RequestBuilder, "GET", "/time")


class AuthenticatedClient(PublicClient):
    """
    Async HTTP client for private Coinbase Pro endpoints.

    Private endpoint requests are signed with the account credentials;
    public endpoints inherited from PublicClient stay unsigned.

    Example:
        >>> async with AuthenticatedClient("key", "secret", "pass", SANDBOX_URL) as client:
        ...     accounts = await client.list_accounts()
        ...     for account in accounts:
        ...         print(account["currency"], account["balance"])
    """

    def __init__(
        self,
        key: str,
        secret: str,
        passphrase: str,
        url: Optional[str] = None,
        timeout: Optional[int] = None
    ):
        """
        Args:
            key: API key
            secret: Base64-encoded API secret
            passphrase: API passphrase
            url: REST base URL (defaults to settings.rest_url)
            timeout: Request timeout in seconds

        Raises:
            AuthenticationError: If a credential is missing
        """
        super().__init__(url, timeout)
        self.auth = CoinbaseAuth(key, secret, passphrase)

    @classmethod
    def from_settings(cls, url: Optional[str] = None) -> "AuthenticatedClient":
        """
        Build a client from the COINBASE_API_* settings.

        Raises:
            AuthenticationError: If credentials are not configured
        """
        if not settings.has_credentials:
            raise AuthenticationError(
                "COINBASE_API_KEY, COINBASE_API_SECRET and COINBASE_API_PASSPHRASE must be set"
            )
        return cls(
            settings.coinbase_api_key,
            settings.coinbase_api_secret,
            settings.coinbase_api_passphrase,
            url
        )

    def _private(self, handle: type, method: str, path: str, **kwargs: Any) -> Any:
        return self._build(handle, method, path, auth=self.auth, **kwargs)

    # ============================================
    # Accounts
    # ============================================

    def list_accounts(self) -> RequestBuilder:
        """
        Endpoint:
            GET /accounts
        """
        return self._private(RequestBuilder, "GET", "/accounts")

    def get_account(self, account_id: str) -> RequestBuilder:
        """
        Endpoint:
            GET /accounts/<account-id>
        """
        return self._private(RequestBuilder, "GET", f"/accounts/{_segment(account_id)}")

    def get_account_history(self, account_id: str) -> PaginatedRequest:
        """
        Ledger activity for an account (paginated).

        Endpoint:
            GET /accounts/<account-id>/ledger
        """
        return self._private(PaginatedRequest, "GET", f"/accounts/{_segment(account_id)}/ledger")

    def get_holds(self, account_id: str) -> PaginatedRequest:
        """
        Holds placed on an account for active orders or pending withdrawals (paginated).

        Endpoint:
            GET /accounts/<account-id>/holds
        """
        return self._private(PaginatedRequest, "GET", f"/accounts/{_segment(account_id)}/holds")

    # ============================================
    # Orders
    # ============================================

    def place_limit_order(self, product_id: str, side: str, price: Number, size: Number) -> OrderRequest:
        """
        Place a limit order.

        Args:
            product_id: Product (e.g., "BTC-USD")
            side: "buy" or "sell"
            price: Limit price per unit
            size: Amount of base currency

        Endpoint:
            POST /orders

        Example:
            >>> order = await client.place_limit_order("BTC-USD", "buy", 7000, 0.01).post_only()
        """
        return self._private(
            OrderRequest,
            "POST",
            "/orders",
            body={
                "type": "limit",
                "side": _side(side),
                "product_id": product_id,
                "price": _amount(price),
                "size": _amount(size),
            }
        )

    def place_market_order(
        self,
        product_id: str,
        side: str,
        size: Optional[Number] = None,
        funds: Optional[Number] = None
    ) -> OrderRequest:
        """
        Place a market order sized either in base currency (size) or in
        quote currency (funds).

        Endpoint:
            POST /orders
        """
        _exactly_one(size=size, funds=funds)
        return self._private(
            OrderRequest,
            "POST",
            "/orders",
            body={
                "type": "market",
                "side": _side(side),
                "product_id": product_id,
                "size": _amount(size) if size is not None else None,
                "funds": _amount(funds) if funds is not None else None,
            }
        )

    def cancel_order(self, order_id: Optional[str] = None, client_oid: Optional[str] = None) -> RequestBuilder:
        """
        Cancel one order by exchange id or by client order id.

        Endpoint:
            DELETE /orders/<order-id>
            DELETE /orders/client:<client-oid>
        """
        return self._private(RequestBuilder, "DELETE", self._order_path(order_id, client_oid))

    def cancel_all(self) -> CancelAllRequest:
        """
        Cancel all open orders. Use .product_id() to restrict to one product.

        Endpoint:
            DELETE /orders
        """
        return self._private(CancelAllRequest, "DELETE", "/orders")

    def list_orders(self, status: Optional[Sequence[str]] = None) -> ListOrdersRequest:
        """
        List orders (paginated).

        Args:
            status: Statuses to include, e.g. ["open", "pending", "done"].
                Defaults to the exchange default (open and pending).

        Endpoint:
            GET /orders?status=<status>&status=<status>
        """
        params = {"status": list(status)} if status else {}
        return self._private(ListOrdersRequest, "GET", "/orders", params=params)

    def get_order(self, order_id: Optional[str] = None, client_oid: Optional[str] = None) -> RequestBuilder:
        """
        Endpoint:
            GET /orders/<order-id>
            GET /orders/client:<client-oid>
        """
        return self._private(RequestBuilder, "GET", self._order_path(order_id, client_oid))

    @staticmethod
    def _order_path(order_id: Optional[str], client_oid: Optional[str]) -> str:
        if _exactly_one(order_id=order_id, client_oid=client_oid) == "order_id":
            return f"/orders/{_segment(order_id)}"
        return f"/orders/client:{_segment(client_oid)}"

    def get_fills(self, order_id: Optional[str] = None, product_id: Optional[str] = None) -> PaginatedRequest:
        """
        Recent fills for an order or a product (paginated).

        Endpoint:
            GET /fills?order_id=<order-id>
            GET /fills?product_id=<product-id>
        """
        name = _exactly_one(order_id=order_id, product_id=product_id)
        return self._private(
            PaginatedRequest,
            "GET",
            "/fills",
            params={name: order_id if name == "order_id" else product_id}
        )

    # ============================================
    # Deposits, Withdrawals, Conversions
    # ============================================

    def deposit(
        self,
        amount: Number,
        currency: str,
        payment_method_id: Optional[str] = None,
        coinbase_account_id: Optional[str] = None
    ) -> RequestBuilder:
        """
        Deposit funds from a payment method or a Coinbase account.

        Endpoint:
            POST /deposits/payment-method
            POST /deposits/coinbase-account
        """
        source = _exactly_one(payment_method_id=payment_method_id, coinbase_account_id=coinbase_account_id)
        if source == "payment_method_id":
            path, source_id = "/deposits/payment-method", payment_method_id
        else:
            path, source_id = "/deposits/coinbase-account", coinbase_account_id

        return self._private(
            RequestBuilder,
            "POST",
            path,
            body={"amount": _amount(amount), "currency": currency, source: source_id}
        )

    def withdraw(
        self,
        amount: Number,
        currency: str,
        payment_method_id: Optional[str] = None,
        coinbase_account_id: Optional[str] = None,
        crypto_address: Optional[str] = None,
        destination_tag: Optional[str] = None
    ) -> RequestBuilder:
        """
        Withdraw funds to a payment method, a Coinbase account, or a crypto address.

        For crypto withdrawals without a destination_tag the request sets
        no_destination_tag=true, as the exchange requires.

        Endpoint:
            POST /withdrawals/payment-method
            POST /withdrawals/coinbase-account
            POST /withdrawals/crypto
        """
        target = _exactly_one(
            payment_method_id=payment_method_id,
            coinbase_account_id=coinbase_account_id,
            crypto_address=crypto_address
        )
        if destination_tag is not None and target != "crypto_address":
            raise ValueError("destination_tag only applies to crypto withdrawals")

        body: Dict[str, Any] = {"amount": _amount(amount), "currency": currency}
        if target == "payment_method_id":
            path = "/withdrawals/payment-method"
            body["payment_method_id"] = payment_method_id
        elif target == "coinbase_account_id":
            path = "/withdrawals/coinbase-account"
            body["coinbase_account_id"] = coinbase_account_id
        else:
            path = "/withdrawals/crypto"
            body["crypto_address"] = crypto_address
            if destination_tag is not None:
                body["destination_tag"] = destination_tag
            else:
                body["no_destination_tag"] = True

        return self._private(RequestBuilder, "POST", path, body=body)

    def convert(self, from_currency: str, to_currency: str, amount: Number) -> RequestBuilder:
        """
        Convert between stablecoin and fiat (e.g. USD to USDC).

        Endpoint:
            POST /conversions
        """
        return self._private(
            RequestBuilder,
            "POST",
            "/conversions",
            body={"from": from_currency, "to": to_currency, "amount": _amount(amount)}
        )

    def list_payment_methods(self) -> RequestBuilder:
        """
        Endpoint:
            GET /payment-methods
        """
        return self._private(RequestBuilder, "GET", "/payment-methods")

    def list_coinbase_accounts(self) -> RequestBuilder:
        """
        Endpoint:
            GET /coinbase-accounts
        """
        return self._private(RequestBuilder, "GET", "/coinbase-accounts")

    # ============================================
    # Fees, Reports, Profiles
    # ============================================

    def get_current_fees(self) -> RequestBuilder:
        """
        Current maker/taker fee rates and 30-day USD volume.

        Endpoint:
            GET /fees
        """
        return self._private(RequestBuilder, "GET", "/fees")

    def create_report(
        self,
        start_date: TimeLike,
        end_date: TimeLike,
        product_id: Optional[str] = None,
        account_id: Optional[str] = None
    ) -> ReportRequest:
        """
        Request a fills report (by product) or an account report (by account).

        Use .format("pdf"|"csv") and .email() on the returned handle.

        Endpoint:
            POST /reports
        """
        kind = _exactly_one(product_id=product_id, account_id=account_id)
        body: Dict[str, Any] = {
            "type": "fills" if kind == "product_id" else "account",
            "start_date": to_iso8601(start_date),
            "end_date": to_iso8601(end_date),
        }
        body[kind] = product_id if kind == "product_id" else account_id
        return self._private(ReportRequest, "POST", "/reports", body=body)

    def get_report_status(self, report_id: str) -> RequestBuilder:
        """
        Endpoint:
            GET /reports/<report-id>
        """
        return self._private(RequestBuilder, "GET", f"/reports/{_segment(report_id)}")

    def list_profiles(self) -> RequestBuilder:
        """
        Endpoint:
            GET /profiles
        """
        return self._private(RequestBuilder, "GET", "/profiles")

    def get_profile(self, profile_id: str) -> RequestBuilder:
        """
        Endpoint:
            GET /profiles/<profile-id>
        """
        return self._private(RequestBuilder, "GET", f"/profiles/{_segment(profile_id)}")

    def transfer_profile(self, from_profile: str, to_profile: str, currency: str, amount: Number) -> RequestBuilder:
        """
        Move funds between two profiles of the same user.

        Endpoint:
            POST /profiles/transfer
        """
        return self._private(
            RequestBuilder,
            "POST",
            "/profiles/transfer",
            body={
                "from": from_profile,
                "to": to_profile,
                "currency": currency,
                "amount": _amount(amount),
            }
        )

    def get_trailing_volume(self) -> RequestBuilder:
        """
        30-day trailing volume per product.

        Endpoint:
            GET /users/self/trailing-volume
        """
        return self._private(RequestBuilder, "GET", "/users/self/trailing-volume")
