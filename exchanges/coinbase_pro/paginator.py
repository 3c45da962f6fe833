"""
Coinbase Pro Cursor Paginator

Coinbase Pro paginates list endpoints (ledger, holds, orders, fills, trades)
with opaque cursors returned in response headers:

    cb-after:  cursor for the next page of older items
    cb-before: cursor for the next page of newer items

The Paginator re-issues the same request with the cursor applied until the
exchange stops returning one. It is an async iterator: one request is in
flight at a time and pages are yielded in the order the exchange returns
them.

Usage:
    async with AuthenticatedClient(key, secret, passphrase) as client:
        async for page in client.get_fills(product_id="BTC-USD").limit(100).paginate():
            print(len(page))
            await asyncio.sleep(0.5)  # pacing is the caller's job
"""

from typing import Any, Optional, Set, TYPE_CHECKING

from core.logging import get_logger
from core.schemas import ApiResponse, RequestDescriptor

if TYPE_CHECKING:
    from exchanges.coinbase_pro.api_client import PublicClient
    from exchanges.coinbase_pro.auth import CoinbaseAuth


class Paginator:
    """
    Async iterator over the pages of a paginated endpoint.

    Direction is fixed by the initial request: without a "before" parameter
    the paginator walks towards older items following cb-after; with one it
    walks towards newer items following cb-before.

    Termination:
        - the cursor header is absent
        - the page is empty
        - the exchange repeats a cursor already followed

    Errors:
        Transport, status and parse errors are raised from the pending
        __anext__ call. That error is the last element: the iterator is
        exhausted afterwards.
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
        self._done = False
        self._seen_cursors: Set[str] = set()
        start = request.params.get(self.cursor_param)
        if start is not None:
            self._seen_cursors.add(str(start))
        self.pages_fetched = 0

        self.logger = get_logger(__name__)

    @property
    def request(self) -> RequestDescriptor:
        """Request that the next iteration step will send."""
        return self._request

    @property
    def cursor_param(self) -> str:
        return "before" if "before" in self._request.params else "after"

    def __aiter__(self) -> "Paginator":
        return self

    async def __anext__(self) -> Any:
        if self._done:
            raise StopAsyncIteration

        # Stays done unless a next cursor is found, so an error ends the sequence
        self._done = True

        response = await self._client._execute(self._request, self._auth)
        page = response.json_body()
        self.pages_fetched += 1

        cursor = self._next_cursor(response)
        if cursor is not None and page != []:
            self._seen_cursors.add(cursor)
            self._request = self._request.with_params(**{self.cursor_param: cursor})
            self._done = False
            self.logger.debug(
                f"Page {self.pages_fetched} of {self._request.path}: "
                f"next {self.cursor_param}={cursor}"
            )
        else:
            self.logger.debug(
                f"Pagination of {self._request.path} finished after {self.pages_fetched} page(s)"
            )

        return page

    def _next_cursor(self, response: ApiResponse) -> Optional[str]:
        header = "cb-before" if self.cursor_param == "before" else "cb-after"
        cursor = response.header(header)

        if not cursor:
            return None

        if cursor in self._seen_cursors:
            self.logger.warning(f"Cursor {cursor} repeated on {self._request.path}; stopping")
            return None

        return cursor
