"""
Deferred Request Handles

Client endpoint methods perform no I/O. They return a handle holding the
request descriptor; the call happens only when the handle is awaited:

    ticker = await client.get_product_ticker("BTC-USD")
    book = await client.get_product_order_book("BTC-USD").level(2).json()
    async for page in client.get_trades("BTC-USD").limit(50).paginate():
        ...

Endpoint-specific options are chainable methods on the handle subclasses
below. A handle is sent at most once.
"""

from datetime import datetime
from typing import Any, Optional, Union, TYPE_CHECKING

from core.schemas import ApiResponse, RequestDescriptor
from core.utils.time import to_iso8601
from exchanges.coinbase_pro.paginator import Paginator

if TYPE_CHECKING:
    from exchanges.coinbase_pro.api_client import PublicClient
    from exchanges.coinbase_pro.auth import CoinbaseAuth


TimeLike = Union[datetime, int, float, str]


class RequestBuilder:
    """
    Deferred REST call.

    Await the handle (or its json() coroutine) to send the request and get
    the decoded JSON body. send() returns the raw ApiResponse instead.

    Raises (when awaited):
        TransportError: Network failure
        APIError: Non-2xx status
        ResponseParseError: Body is not valid JSON
        AuthenticationError: Request could not be signed
        RuntimeError: The handle was already sent
    """

    def __init__(
        self,
        client: "PublicClient",
        request: RequestDescriptor,
        auth: Optional["CoinbaseAuth"] = None
    ):
        self._client = client
        self._request = request
        self._auth = auth
        self._sent = False

    @property
    def request(self) -> RequestDescriptor:
        return self._request

    @property
    def signed(self) -> bool:
        return self._auth is not None

    def _with_params(self, **params: Any) -> "RequestBuilder":
        self._request = self._request.with_params(**params)
        return self

    def _with_body(self, **fields: Any) -> "RequestBuilder":
        body = dict(self._request.body or {})
        body.update(fields)
        self._request = self._request.model_copy(update={"body": body})
        return self

    def _take(self) -> RequestDescriptor:
        if self._sent:
            raise RuntimeError(f"Request already sent: {self._request.method} {self._request.path}")
        self._sent = True
        return self._request

    async def send(self) -> ApiResponse:
        return await self._client._execute(self._take(), self._auth)

    async def json(self) -> Any:
        response = await self.send()
        return response.json_body()

    def __await__(self):
        return self.json().__await__()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._request.method} {self._request.request_path()})"


# ============================================
# Public Endpoint Handles
# ============================================

class BookRequest(RequestBuilder):
    """GET /products/{id}/book"""

    def level(self, value: int) -> "BookRequest":
        """Aggregation level: 1 (best bid/ask), 2 (top 50), 3 (full book)."""
        if value not in (1, 2, 3):
            raise ValueError(f"Order book level must be 1, 2 or 3, got {value}")
        return self._with_params(level=value)


class CandleRequest(RequestBuilder):
    """GET /products/{id}/candles"""

    def range(self, start: TimeLike, end: TimeLike) -> "CandleRequest":
        return self._with_params(start=to_iso8601(start), end=to_iso8601(end))

    def granularity(self, seconds: int) -> "CandleRequest":
        return self._with_params(granularity=seconds)


class PaginatedRequest(RequestBuilder):
    """
    Handle for an endpoint that supports cursor pagination.

    before() and after() are mutually exclusive: setting one clears the
    other.
    """

    def limit(self, value: int) -> "PaginatedRequest":
        """Items per page (exchange maximum is 100)."""
        if value <= 0:
            raise ValueError(f"Limit must be positive, got {value}")
        return self._with_params(limit=value)

    def before(self, cursor: Union[str, int]) -> "PaginatedRequest":
        return self._with_params(before=str(cursor), after=None)

    def after(self, cursor: Union[str, int]) -> "PaginatedRequest":
        return self._with_params(after=str(cursor), before=None)

    def paginate(self) -> Paginator:
        """Consume the handle and iterate over every page."""
        return Paginator(self._client, self._take(), self._auth)


# ============================================
# Private Endpoint Handles
# ============================================

class ListOrdersRequest(PaginatedRequest):
    """GET /orders"""

    def product_id(self, value: str) -> "ListOrdersRequest":
        return self._with_params(product_id=value)


class CancelAllRequest(RequestBuilder):
    """DELETE /orders"""

    def product_id(self, value: str) -> "CancelAllRequest":
        """Only cancel orders for this product."""
        return self._with_params(product_id=value)


class OrderRequest(RequestBuilder):
    """POST /orders (limit and market orders)"""

    def client_oid(self, value: str) -> "OrderRequest":
        return self._with_body(client_oid=value)

    def stp(self, value: str) -> "OrderRequest":
        """Self-trade prevention: dc, co, cn or cb."""
        return self._with_body(stp=value)

    def stop(self, direction: str, stop_price: float) -> "OrderRequest":
        """Make this a stop order ("loss" or "entry") triggered at stop_price."""
        if direction not in ("loss", "entry"):
            raise ValueError(f"Stop must be 'loss' or 'entry', got {direction!r}")
        return self._with_body(stop=direction, stop_price=str(stop_price))

    def time_in_force(self, value: str) -> "OrderRequest":
        """GTC, GTT, IOC or FOK (limit orders)."""
        return self._with_body(time_in_force=value)

    def cancel_after(self, value: str) -> "OrderRequest":
        """min, hour or day (requires time_in_force GTT)."""
        return self._with_body(cancel_after=value)

    def post_only(self, value: bool = True) -> "OrderRequest":
        return self._with_body(post_only=value)


class ReportRequest(RequestBuilder):
    """POST /reports"""

    def format(self, value: str) -> "ReportRequest":
        """pdf or csv"""
        if value not in ("pdf", "csv"):
            raise ValueError(f"Report format must be 'pdf' or 'csv', got {value!r}")
        return self._with_body(format=value)

    def email(self, value: str) -> "ReportRequest":
        return self._with_body(email=value)
