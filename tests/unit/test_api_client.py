"""
Unit Tests for Coinbase Pro REST Clients

These tests verify that PublicClient and AuthenticatedClient:
- Map each endpoint to the documented method, path, query and body
- Return deferred handles that do no I/O until awaited
- Sign private requests and leave public ones unsigned
- Surface transport, status and parse failures as distinct errors

Run with:
    pytest tests/unit/test_api_client.py -v
"""

import asyncio
import base64
import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import aiohttp
import pytest
import pytest_asyncio

from core.exceptions import APIError, ResponseParseError, TransportError
from core.schemas import ApiResponse
from exchanges.coinbase_pro.api_client import AuthenticatedClient, PublicClient, SANDBOX_URL
from exchanges.coinbase_pro.request import RequestBuilder


SECRET = base64.b64encode(b"coinbase-test-secret").decode()


# ============================================
# Fixtures
# ============================================

class Recorder:
    """Stands in for PublicClient._send and records what would be sent"""

    def __init__(self, response=None):
        self.response = response or ApiResponse(status=200, text="{}")
        self.calls = []

    async def __call__(self, request, headers):
        self.calls.append((request, headers))
        return self.response

    @property
    def request(self):
        return self.calls[-1][0]

    @property
    def headers(self):
        return self.calls[-1][1]


class FakeResponse:
    """Minimal aiohttp response usable as an async context manager"""

    def __init__(self, status=200, body=b"{}", headers=None):
        self.status = status
        self._body = body
        self.headers = headers or {}

    async def read(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


@pytest_asyncio.fixture
async def public_client():
    async with PublicClient(SANDBOX_URL) as client:
        yield client


@pytest_asyncio.fixture
async def private_client():
    async with AuthenticatedClient("test-key", SECRET, "test-pass", SANDBOX_URL) as client:
        yield client


# ============================================
# Tests for Deferred Handles
# ============================================

class TestDeferredHandles:
    """Tests for lazy request handles"""

    @pytest.mark.asyncio
    async def test_endpoint_method_does_no_io(self, public_client, monkeypatch):
        """Verify building a handle does not send anything"""
        recorder = Recorder()
        monkeypatch.setattr(public_client, "_send", recorder)

        handle = public_client.get_products()

        assert isinstance(handle, RequestBuilder)
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_awaiting_handle_returns_parsed_json(self, public_client, monkeypatch):
        """Verify awaiting the handle performs the call and decodes JSON"""
        recorder = Recorder(ApiResponse(status=200, text='[{"id": "BTC-USD"}]'))
        monkeypatch.setattr(public_client, "_send", recorder)

        products = await public_client.get_products()

        assert products == [{"id": "BTC-USD"}]
        assert len(recorder.calls) == 1

    @pytest.mark.asyncio
    async def test_json_method_equivalent_to_await(self, public_client, monkeypatch):
        """Verify handle.json() behaves like awaiting the handle"""
        monkeypatch.setattr(public_client, "_send", Recorder(ApiResponse(status=200, text='{"epoch": 1}')))

        assert await public_client.get_time().json() == {"epoch": 1}

    @pytest.mark.asyncio
    async def test_handle_is_single_use(self, public_client, monkeypatch):
        """Verify a handle cannot be sent twice"""
        monkeypatch.setattr(public_client, "_send", Recorder())
        handle = public_client.get_time()

        await handle

        with pytest.raises(RuntimeError, match="already sent"):
            await handle

    @pytest.mark.asyncio
    async def test_send_returns_raw_response(self, public_client, monkeypatch):
        """Verify send() exposes status and headers"""
        response = ApiResponse(status=200, headers={"CB-AFTER": "9"}, text="[]")
        monkeypatch.setattr(public_client, "_send", Recorder(response))

        raw = await public_client.get_trades("BTC-USD").send()

        assert raw.header("cb-after") == "9"

    @pytest.mark.asyncio
    async def test_send_without_session_raises(self):
        """Verify awaiting outside 'async with' raises a clear error"""
        client = PublicClient(SANDBOX_URL)

        with pytest.raises(RuntimeError, match="not initialized"):
            await client.get_time()

    @pytest.mark.asyncio
    async def test_send_after_close_raises(self):
        """Verify handles awaited after close() get the client's error"""
        async with PublicClient(SANDBOX_URL) as client:
            handle = client.get_time()

        with pytest.raises(RuntimeError, match="not initialized or closed"):
            await handle


# ============================================
# Tests for Public Endpoints
# ============================================

class TestPublicEndpoints:
    """Tests for public endpoint mapping"""

    @pytest.mark.parametrize("build, path", [
        (lambda c: c.get_products(), "/products"),
        (lambda c: c.get_product_ticker("BTC-USD"), "/products/BTC-USD/ticker"),
        (lambda c: c.get_24hr_stats("ETH-EUR"), "/products/ETH-EUR/stats"),
        (lambda c: c.get_currencies(), "/currencies"),
        (lambda c: c.get_time(), "/time"),
        (lambda c: c.get_trades("BTC-USD"), "/products/BTC-USD/trades"),
    ])
    def test_public_paths(self, build, path):
        """Verify each public endpoint maps to its GET path"""
        handle = build(PublicClient(SANDBOX_URL))

        assert handle.request.method == "GET"
        assert handle.request.path == path
        assert not handle.signed

    def test_order_book_level(self):
        """Verify level() adds the level query parameter"""
        handle = PublicClient(SANDBOX_URL).get_product_order_book("BTC-USD").level(2)

        assert handle.request.request_path() == "/products/BTC-USD/book?level=2"

    def test_order_book_level_validated(self):
        """Verify unsupported book levels are rejected"""
        with pytest.raises(ValueError):
            PublicClient(SANDBOX_URL).get_product_order_book("BTC-USD").level(4)

    def test_historic_rates_range(self):
        """Verify candles carry granularity and ISO-8601 range"""
        start = datetime(2020, 1, 1, tzinfo=timezone.utc)
        end = datetime(2020, 1, 2, tzinfo=timezone.utc)

        handle = PublicClient(SANDBOX_URL).get_historic_rates("BTC-USD", 3600).range(start, end)

        assert handle.request.path == "/products/BTC-USD/candles"
        assert handle.request.params == {
            "granularity": 3600,
            "start": "2020-01-01T00:00:00+00:00",
            "end": "2020-01-02T00:00:00+00:00",
        }

    def test_historic_rates_granularity_validated(self):
        """Verify unsupported granularities are rejected"""
        with pytest.raises(ValueError, match="granularity"):
            PublicClient(SANDBOX_URL).get_historic_rates("BTC-USD", 120)

    def test_pagination_params_exclusive(self):
        """Verify before() and after() replace each other"""
        handle = PublicClient(SANDBOX_URL).get_trades("BTC-USD").limit(10).before("5").after("3")

        assert handle.request.params == {"limit": 10, "after": "3"}

    @pytest.mark.asyncio
    async def test_public_request_unsigned(self, public_client, monkeypatch):
        """Verify public requests carry no CB-ACCESS headers"""
        recorder = Recorder()
        monkeypatch.setattr(public_client, "_send", recorder)

        await public_client.get_time()

        assert not any(name.startswith("CB-ACCESS") for name in recorder.headers)

    @pytest.mark.asyncio
    async def test_public_endpoint_on_private_client_unsigned(self, private_client, monkeypatch):
        """Verify inherited public endpoints stay unsigned"""
        recorder = Recorder()
        monkeypatch.setattr(private_client, "_send", recorder)

        await private_client.get_products()

        assert "CB-ACCESS-SIGN" not in recorder.headers


# ============================================
# Tests for Private Endpoints
# ============================================

class TestPrivateEndpoints:
    """Tests for private endpoint mapping"""

    @pytest.fixture
    def client(self):
        return AuthenticatedClient("test-key", SECRET, "test-pass", SANDBOX_URL)

    @pytest.mark.parametrize("build, method, path", [
        (lambda c: c.list_accounts(), "GET", "/accounts"),
        (lambda c: c.get_account("a1"), "GET", "/accounts/a1"),
        (lambda c: c.get_account_history("a1"), "GET", "/accounts/a1/ledger"),
        (lambda c: c.get_holds("a1"), "GET", "/accounts/a1/holds"),
        (lambda c: c.cancel_order(order_id="o1"), "DELETE", "/orders/o1"),
        (lambda c: c.cancel_order(client_oid="c1"), "DELETE", "/orders/client:c1"),
        (lambda c: c.cancel_all(), "DELETE", "/orders"),
        (lambda c: c.get_order(order_id="o1"), "GET", "/orders/o1"),
        (lambda c: c.get_order(client_oid="c1"), "GET", "/orders/client:c1"),
        (lambda c: c.list_payment_methods(), "GET", "/payment-methods"),
        (lambda c: c.list_coinbase_accounts(), "GET", "/coinbase-accounts"),
        (lambda c: c.get_current_fees(), "GET", "/fees"),
        (lambda c: c.get_report_status("r1"), "GET", "/reports/r1"),
        (lambda c: c.list_profiles(), "GET", "/profiles"),
        (lambda c: c.get_profile("p1"), "GET", "/profiles/p1"),
        (lambda c: c.get_trailing_volume(), "GET", "/users/self/trailing-volume"),
    ])
    def test_private_paths(self, client, build, method, path):
        """Verify each private endpoint maps to its method and path"""
        handle = build(client)

        assert handle.request.method == method
        assert handle.request.path == path
        assert handle.signed

    def test_path_segments_are_escaped(self, client):
        """Verify ids cannot break out of their path segment"""
        handle = client.get_account("a/../b")

        assert handle.request.path == "/accounts/a%2F..%2Fb"

    def test_limit_order_body(self, client):
        """Verify limit orders post price and size as strings"""
        handle = client.place_limit_order("BTC-USD", "BUY", 7000.5, 0.01).post_only().client_oid("cid")

        assert handle.request.method == "POST"
        assert handle.request.path == "/orders"
        assert json.loads(handle.request.body_text()) == {
            "type": "limit",
            "side": "buy",
            "product_id": "BTC-USD",
            "price": "7000.5",
            "size": "0.01",
            "post_only": True,
            "client_oid": "cid",
        }

    def test_limit_order_stop(self, client):
        """Verify stop() sets stop and stop_price"""
        handle = client.place_limit_order("BTC-USD", "sell", 100, 1).stop("loss", 95)

        body = handle.request.body
        assert body["stop"] == "loss"
        assert body["stop_price"] == "95"

    def test_market_order_funds(self, client):
        """Verify market orders sized by funds omit size"""
        handle = client.place_market_order("BTC-USD", "buy", funds=100)

        assert json.loads(handle.request.body_text()) == {
            "type": "market",
            "side": "buy",
            "product_id": "BTC-USD",
            "funds": "100",
        }

    @pytest.mark.parametrize("kwargs", [{}, {"size": 1, "funds": 100}])
    def test_market_order_requires_exactly_one_quantity(self, client, kwargs):
        """Verify size and funds are mutually exclusive and required"""
        with pytest.raises(ValueError, match="Exactly one"):
            client.place_market_order("BTC-USD", "buy", **kwargs)

    def test_invalid_side_rejected(self, client):
        """Verify side must be buy or sell"""
        with pytest.raises(ValueError, match="side"):
            client.place_limit_order("BTC-USD", "hold", 1, 1)

    def test_cancel_order_requires_one_id(self, client):
        """Verify cancel_order needs exactly one identifier"""
        with pytest.raises(ValueError):
            client.cancel_order()
        with pytest.raises(ValueError):
            client.cancel_order(order_id="o", client_oid="c")

    def test_cancel_all_product(self, client):
        """Verify cancel_all can be limited to a product"""
        handle = client.cancel_all().product_id("BTC-USD")

        assert handle.request.request_path() == "/orders?product_id=BTC-USD"

    def test_list_orders_repeats_status(self, client):
        """Verify statuses are sent as repeated query keys"""
        handle = client.list_orders(["open", "done"]).product_id("BTC-USD").limit(5)

        assert handle.request.request_path() == "/orders?status=open&status=done&product_id=BTC-USD&limit=5"

    def test_get_fills_by_product(self, client):
        """Verify fills are filtered by the chosen identifier"""
        handle = client.get_fills(product_id="BTC-USD")

        assert handle.request.request_path() == "/fills?product_id=BTC-USD"

    def test_get_fills_requires_one_filter(self, client):
        """Verify fills need an order id or a product id"""
        with pytest.raises(ValueError):
            client.get_fills()

    def test_deposit_from_payment_method(self, client):
        """Verify deposits route by source"""
        handle = client.deposit(10, "USD", payment_method_id="pm1")

        assert handle.request.path == "/deposits/payment-method"
        assert handle.request.body == {"amount": "10", "currency": "USD", "payment_method_id": "pm1"}

    def test_deposit_from_coinbase_account(self, client):
        handle = client.deposit(10, "USD", coinbase_account_id="cb1")

        assert handle.request.path == "/deposits/coinbase-account"
        assert handle.request.body["coinbase_account_id"] == "cb1"

    def test_crypto_withdrawal_without_tag(self, client):
        """Verify crypto withdrawals without a tag set no_destination_tag"""
        handle = client.withdraw(0.5, "BTC", crypto_address="addr")

        assert handle.request.path == "/withdrawals/crypto"
        assert handle.request.body == {
            "amount": "0.5",
            "currency": "BTC",
            "crypto_address": "addr",
            "no_destination_tag": True,
        }

    def test_crypto_withdrawal_with_tag(self, client):
        handle = client.withdraw(5, "XRP", crypto_address="addr", destination_tag="123")

        assert handle.request.body["destination_tag"] == "123"
        assert "no_destination_tag" not in handle.request.body

    def test_destination_tag_only_for_crypto(self, client):
        """Verify destination_tag is rejected for non-crypto targets"""
        with pytest.raises(ValueError, match="destination_tag"):
            client.withdraw(5, "USD", payment_method_id="pm", destination_tag="1")

    def test_convert_body(self, client):
        handle = client.convert("USD", "USDC", 25)

        assert handle.request.path == "/conversions"
        assert handle.request.body == {"from": "USD", "to": "USDC", "amount": "25"}

    def test_transfer_profile_body(self, client):
        handle = client.transfer_profile("p1", "p2", "BTC", "0.1")

        assert handle.request.path == "/profiles/transfer"
        assert handle.request.body == {"from": "p1", "to": "p2", "currency": "BTC", "amount": "0.1"}

    def test_fills_report(self, client):
        """Verify a product report is a fills report"""
        handle = client.create_report(
            datetime(2020, 1, 1),
            "2020-02-01T00:00:00Z",
            product_id="BTC-USD"
        ).format("csv").email("me@example.com")

        assert handle.request.path == "/reports"
        assert handle.request.body == {
            "type": "fills",
            "start_date": "2020-01-01T00:00:00+00:00",
            "end_date": "2020-02-01T00:00:00+00:00",
            "product_id": "BTC-USD",
            "format": "csv",
            "email": "me@example.com",
        }

    def test_account_report(self, client):
        handle = client.create_report(0, 86400, account_id="a1")

        assert handle.request.body["type"] == "account"
        assert handle.request.body["account_id"] == "a1"

    @pytest.mark.asyncio
    async def test_private_request_signed_over_sent_bytes(self, private_client, monkeypatch):
        """Verify the signature covers the exact path and body that are sent"""
        recorder = Recorder()
        monkeypatch.setattr(private_client, "_send", recorder)
        monkeypatch.setattr("exchanges.coinbase_pro.auth.current_utc_timestamp", lambda: 1600000000)

        await private_client.place_limit_order("BTC-USD", "buy", 1, 2)

        request = recorder.request
        expected = private_client.auth.get_headers(
            "POST", request.request_path(), request.body_text(), timestamp=1600000000
        )
        assert recorder.headers["CB-ACCESS-SIGN"] == expected["CB-ACCESS-SIGN"]
        assert recorder.headers["CB-ACCESS-KEY"] == "test-key"
        assert recorder.headers["Content-Type"] == "application/json"

    def test_from_settings_requires_credentials(self, monkeypatch):
        """Verify from_settings fails without configured credentials"""
        from core.exceptions import AuthenticationError

        monkeypatch.setattr("exchanges.coinbase_pro.api_client.settings.coinbase_api_key", "")

        with pytest.raises(AuthenticationError):
            AuthenticatedClient.from_settings()


# ============================================
# Tests for Error Mapping
# ============================================

class TestErrorMapping:
    """Tests for distinct transport, status and parse errors"""

    @pytest.mark.asyncio
    async def test_non_2xx_raises_api_error(self, public_client, monkeypatch):
        """Verify HTTP errors carry status and exchange message"""
        response = ApiResponse(status=404, text='{"message": "NotFound"}')
        monkeypatch.setattr(public_client, "_send", Recorder(response))

        with pytest.raises(APIError) as exc_info:
            await public_client.get_product_ticker("NOPE-USD")

        assert exc_info.value.status == 404
        assert exc_info.value.message == "NotFound"

    @pytest.mark.asyncio
    async def test_non_json_error_body_kept_as_message(self, public_client, monkeypatch):
        """Verify a non-JSON error body is still reported"""
        monkeypatch.setattr(public_client, "_send", Recorder(ApiResponse(status=502, text="Bad Gateway")))

        with pytest.raises(APIError, match="Bad Gateway"):
            await public_client.get_time()

    @pytest.mark.asyncio
    async def test_malformed_success_body_raises_parse_error(self, public_client, monkeypatch):
        """Verify a malformed 200 body never becomes a default value"""
        monkeypatch.setattr(public_client, "_send", Recorder(ApiResponse(status=200, text="{oops")))

        with pytest.raises(ResponseParseError):
            await public_client.get_time()

    @pytest.mark.asyncio
    async def test_connection_error_raises_transport_error(self):
        """Verify aiohttp client errors surface as TransportError"""
        client = PublicClient(SANDBOX_URL)
        client.session = MagicMock(closed=False)
        client.session.request.side_effect = aiohttp.ClientConnectionError("connection refused")

        with pytest.raises(TransportError, match="connection refused"):
            await client.get_time()

    @pytest.mark.asyncio
    async def test_timeout_raises_transport_error(self):
        """Verify timeouts surface as TransportError"""
        client = PublicClient(SANDBOX_URL)
        client.session = MagicMock(closed=False)
        client.session.request.side_effect = asyncio.TimeoutError()

        with pytest.raises(TransportError, match="Timeout"):
            await client.get_time()

    @pytest.mark.asyncio
    async def test_send_builds_url_and_body(self):
        """Verify _send targets base URL + signed path and posts the body"""
        client = PublicClient(SANDBOX_URL + "/")
        client.session = MagicMock(closed=False)
        client.session.request.return_value = FakeResponse(200, b'{"id": "1"}', {"CB-AFTER": "3"})

        handle = client.get_trades("BTC-USD").limit(2)
        response = await handle.send()

        args, kwargs = client.session.request.call_args
        assert args[0] == "GET"
        assert str(args[1]) == f"{SANDBOX_URL}/products/BTC-USD/trades?limit=2"
        assert kwargs["data"] is None
        assert response.header("cb-after") == "3"
        assert response.json_body() == {"id": "1"}

    @pytest.mark.asyncio
    async def test_non_utf8_body_raises_parse_error(self):
        """Verify undecodable bodies raise ResponseParseError"""
        client = PublicClient(SANDBOX_URL)
        client.session = MagicMock(closed=False)
        client.session.request.return_value = FakeResponse(200, b"\xff\xfe\xfa")

        with pytest.raises(ResponseParseError):
            await client.get_time()
