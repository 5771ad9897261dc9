"""Tests for polyrelay.client: CLOB REST client with mocked HTTP."""

import json
from unittest.mock import MagicMock, call, patch

import httpx
import pytest

from polyrelay.client import ClobClient
from polyrelay.constants import CLOB_BASE_URL
from polyrelay.errors import ClobError, ValidationError
from polyrelay.models import OrderArgs, SignatureType
from polyrelay.order import build_signed_order
from polyrelay.signer import Signer

_FAKE_CREDS = {
    "apiKey": "test-api-key",
    "secret": "dGVzdC1zZWNyZXQta2V5LTMyYnl0ZXMhYWJjZGVmZ2g=",  # base64
    "passphrase": "test-passphrase",
}
_FAKE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
_SIGNER = Signer(_FAKE_KEY, 137)
_PROXY = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
_TOKEN = "71321045679252212594626385532706912750332728571942532289631379312455583992563"


def _make_wallet():
    wallet = MagicMock()
    wallet.signer = _SIGNER
    wallet.base_address = _SIGNER.address
    wallet.funder = _PROXY
    wallet.signature_type = SignatureType.PROXY
    return wallet


def _make_client(**kwargs) -> ClobClient:
    """Create a client with fake creds (no L1 derivation)."""
    client = ClobClient(_make_wallet(), api_creds=_FAKE_CREDS, **kwargs)
    client._http = MagicMock()
    return client


def _mock_response(status_code=200, json_data=None):
    """Create a mock httpx.Response with given status and JSON data."""
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.json.return_value = json_data if json_data is not None else {}
    resp.text = json.dumps(json_data) if json_data is not None else ""
    resp.content = resp.text.encode()
    return resp


def _orders_response(n, errors=None):
    errors = errors or {}
    return _mock_response(200, [
        {"orderID": f"0x{i:02x}", "status": "" if i in errors else "live", "errorMsg": errors.get(i, "")}
        for i in range(n)
    ])


def _orders(n, price=0.5):
    return [OrderArgs(token_id=_TOKEN, price=price, size=10, side="BUY") for _ in range(n)]


def _sent_body(request_call) -> list:
    return json.loads(request_call[1]["content"])


class TestClientInit:
    def test_stores_creds(self):
        client = _make_client()
        assert client.api_key == "test-api-key"
        assert client.address == _SIGNER.address

    @patch("polyrelay.client.derive_api_key")
    def test_auto_derives_when_no_creds(self, mock_derive):
        mock_derive.return_value = _FAKE_CREDS
        wallet = _make_wallet()
        client = ClobClient(wallet)
        mock_derive.assert_called_once_with(_SIGNER, base_url=CLOB_BASE_URL)
        assert client.api_key == "test-api-key"

    def test_incomplete_creds(self):
        with pytest.raises(ValidationError):
            ClobClient(_make_wallet(), api_creds={"apiKey": "k"})


class TestRequest:
    @patch("polyrelay.auth.time")
    def test_l2_headers_and_spaced_body(self, mock_time):
        mock_time.time.return_value = 1700000000
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"ok": True})

        client._request("DELETE", "/cancel-market-orders", body={"condition_id": "0xab"})

        args, kwargs = client._http.request.call_args
        assert args == ("DELETE", "/cancel-market-orders")
        assert kwargs["content"] == b'{"condition_id": "0xab"}'
        headers = kwargs["headers"]
        assert headers["POLY_API_KEY"] == "test-api-key"
        assert headers["POLY_ADDRESS"] == _SIGNER.address
        assert headers["POLY_TIMESTAMP"] == "1700000000"

    def test_public_request_has_no_auth(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"ok": True})
        client._request("GET", "/tick-size", auth=False, params={"token_id": "1"})
        headers = client._http.request.call_args[1]["headers"]
        assert "POLY_API_KEY" not in headers
        assert client._http.request.call_args[1]["params"] == {"token_id": "1"}

    @patch("polyrelay.client.time")
    def test_retries_with_doubling_backoff(self, mock_time):
        client = _make_client(base_delay=1.0)
        client._http.request.side_effect = [
            _mock_response(429), _mock_response(502), _mock_response(200, {"ok": True}),
        ]
        assert client._request("GET", "/test", auth=False) == {"ok": True}
        assert mock_time.sleep.call_args_list == [call(1.0), call(2.0)]

    @patch("polyrelay.client.time")
    def test_retries_on_timeout(self, mock_time):
        client = _make_client()
        client._http.request.side_effect = [httpx.ReadTimeout("timeout"), _mock_response(200, {"ok": True})]
        assert client._request("GET", "/test", auth=False) == {"ok": True}

    @patch("polyrelay.client.time")
    def test_gives_up_after_max_retries(self, mock_time):
        client = _make_client(max_retries=2)
        client._http.request.return_value = _mock_response(503, {"error": "down"})
        with pytest.raises(ClobError) as exc_info:
            client._request("GET", "/test", auth=False)
        assert exc_info.value.status_code == 503
        assert client._http.request.call_count == 3

    def test_client_error_not_retried(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(400, {"error": "bad"})
        with pytest.raises(ClobError) as exc_info:
            client._request("GET", "/test")
        assert exc_info.value.status_code == 400
        client._http.request.assert_called_once()


class TestMarketParams:
    def test_tick_size(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"minimum_tick_size": 0.01})
        assert client.get_tick_size(_TOKEN) == "0.01"

    def test_tick_size_fallback(self):
        client = _make_client(max_retries=0)
        client._http.request.return_value = _mock_response(500, {"error": "boom"})
        assert client.get_tick_size(_TOKEN) == "0.001"

    def test_neg_risk(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"neg_risk": True})
        assert client.get_neg_risk(_TOKEN) is True

    def test_neg_risk_fallback(self):
        client = _make_client(max_retries=0)
        client._http.request.return_value = _mock_response(404, {"error": "not found"})
        assert client.get_neg_risk(_TOKEN) is False


class TestPostOrders:
    def test_batches_of_fifteen(self):
        client = _make_client()
        client._http.request.side_effect = [_orders_response(15), _orders_response(15), _orders_response(7)]

        results = client.post_orders(_orders(37))

        assert len(results) == 37
        sizes = [len(_sent_body(c)) for c in client._http.request.call_args_list]
        assert sizes == [15, 15, 7]
        for c in client._http.request.call_args_list:
            assert c[0] == ("POST", "/orders")

    def test_payload_shape(self):
        client = _make_client()
        client._http.request.return_value = _orders_response(1)
        client.post_orders(_orders(1))

        (entry,) = _sent_body(client._http.request.call_args)
        assert entry["owner"] == "test-api-key"
        assert entry["orderType"] == "GTC"
        order = entry["order"]
        assert order["maker"] == _PROXY
        assert order["signer"] == _SIGNER.address
        assert order["signatureType"] == 1
        assert isinstance(order["salt"], int)
        assert order["side"] == "BUY"

    def test_failed_batch_isolated(self):
        client = _make_client()
        client._http.request.side_effect = [
            _orders_response(15),
            _mock_response(400, {"error": "bad batch"}),
            _orders_response(5),
        ]
        results = client.post_orders(_orders(35))

        assert len(results) == 35
        assert all(not r["errorMsg"] for r in results[:15])
        for r in results[15:30]:
            assert r["success"] is False
            assert r["errorMsg"].startswith("batch submission failed: ")
        assert all(not r["errorMsg"] for r in results[30:])

    def test_invalid_signature_retried_with_flipped_neg_risk(self):
        client = _make_client()
        client._http.request.side_effect = [
            _orders_response(6, errors={2: "invalid signature", 5: "invalid signature"}),
            _orders_response(2),
        ]

        with patch("polyrelay.client.build_signed_order", wraps=build_signed_order) as spy:
            results = client.post_orders(_orders(6))

        assert client._http.request.call_count == 2
        assert len(_sent_body(client._http.request.call_args)) == 2
        flags = [c[1]["neg_risk"] for c in spy.call_args_list]
        assert flags == [False] * 6 + [True] * 2
        assert all(not r["errorMsg"] for r in results)
        assert results[2]["orderID"] == "0x00"
        assert results[5]["orderID"] == "0x01"

    def test_retry_failure_keeps_original_error(self):
        client = _make_client()
        client._http.request.side_effect = [
            _orders_response(3, errors={1: "invalid signature"}),
            _orders_response(1, errors={0: "invalid signature"}),
        ]
        results = client.post_orders(_orders(3))

        assert client._http.request.call_count == 2
        assert results[1]["errorMsg"] == (
            "retry failed: invalid signature (original error: invalid signature)"
        )

    @pytest.mark.parametrize("bad", [
        OrderArgs(token_id=_TOKEN, price=0.5, size=10, side="HOLD"),
        OrderArgs(token_id=_TOKEN, price=0.5, size=10, side="BUY", tick_size="0.05"),
        OrderArgs(token_id="not-a-token", price=0.5, size=10, side="BUY"),
    ])
    def test_bad_order_in_later_batch_sends_nothing(self, bad):
        client = _make_client()
        client._http.request.return_value = _orders_response(15)
        orders = _orders(15) + [bad] + _orders(4)
        with pytest.raises(ValidationError):
            client.post_orders(orders)
        client._http.request.assert_not_called()

    def test_short_response_becomes_batch_failure(self):
        client = _make_client()
        client._http.request.side_effect = [_orders_response(3), _orders_response(2)]
        results = client.post_orders(_orders(15) + _orders(2))

        assert len(results) == 17
        for r in results[:15]:
            assert r["success"] is False
            assert "3 results for 15 orders" in r["errorMsg"]
        assert all(not r["errorMsg"] for r in results[15:])

    def test_malformed_entry_becomes_batch_failure(self):
        client = _make_client()
        client._http.request.side_effect = [
            _mock_response(200, [{"orderID": "0x00", "errorMsg": ""}, "oops"]),
            _orders_response(1),
        ]
        results = client.post_orders(_orders(15) + _orders(1))

        assert len(results) == 16
        assert all(r["errorMsg"].startswith("batch submission failed: ") for r in results[:15])
        assert client._http.request.call_count == 2

    def test_short_retry_response_keeps_original(self):
        client = _make_client()
        client._http.request.side_effect = [
            _orders_response(3, errors={0: "invalid signature", 2: "invalid signature"}),
            _orders_response(1),
        ]
        results = client.post_orders(_orders(3))
        assert len(results) == 3
        assert results[0]["errorMsg"] == "invalid signature"
        assert results[2]["errorMsg"] == "invalid signature"

    def test_retry_call_error_keeps_results(self):
        client = _make_client()
        client._http.request.side_effect = [
            _orders_response(2, errors={0: "invalid signature"}),
            _mock_response(400, {"error": "nope"}),
        ]
        results = client.post_orders(_orders(2))
        assert results[0]["errorMsg"] == "invalid signature"
        assert len(results) == 2

    def test_other_errors_not_retried(self):
        client = _make_client()
        client._http.request.return_value = _orders_response(3, errors={
            0: "not enough balance / allowance",
            1: "the orderbook 0xabc does not exist",
        })
        results = client.post_orders(_orders(3))

        client._http.request.assert_called_once()
        assert results[1]["errorMsg"] == "the orderbook 0xabc does not exist"

    def test_neg_risk_order_flips_to_standard(self):
        client = _make_client()
        client._http.request.side_effect = [
            _orders_response(1, errors={0: "invalid signature"}),
            _orders_response(1),
        ]
        order = OrderArgs(token_id=_TOKEN, price=0.5, size=10, side="BUY", neg_risk=True)
        with patch("polyrelay.client.build_signed_order", wraps=build_signed_order) as spy:
            client.post_orders([order])
        assert [c[1]["neg_risk"] for c in spy.call_args_list] == [True, False]

    def test_invalid_price_rejected_before_sending(self):
        client = _make_client()
        orders = _orders(3) + _orders(1, price=1.0)
        with pytest.raises(ValidationError):
            client.post_orders(orders)
        client._http.request.assert_not_called()

    def test_empty(self):
        with pytest.raises(ValidationError):
            _make_client().post_orders([])

    def test_post_order(self):
        client = _make_client()
        client._http.request.return_value = _orders_response(1)
        assert client.post_order(_orders(1)[0])["orderID"] == "0x00"


class TestCancel:
    def test_cancel_orders(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"canceled": ["0x1", "0x2"], "not_canceled": {}})

        result = client.cancel_orders(["0x1", "0x2"])
        assert result["canceled"] == ["0x1", "0x2"]

        args, kwargs = client._http.request.call_args
        assert args == ("DELETE", "/orders")
        assert kwargs["content"] == b'["0x1", "0x2"]'

    def test_cancel_orders_empty(self):
        client = _make_client()
        assert client.cancel_orders([]) == {"canceled": [], "not_canceled": {}}
        client._http.request.assert_not_called()

    def test_cancel_order(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"canceled": ["0x1"]})
        client.cancel_order("0x1")
        assert client._http.request.call_args[1]["content"] == b'["0x1"]'

    def test_cancel_all(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"canceled": []})
        client.cancel_all()
        args, kwargs = client._http.request.call_args
        assert args == ("DELETE", "/cancel-all")
        assert kwargs["content"] is None

    def test_cancel_market_orders(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"canceled": []})
        client.cancel_market_orders("0xcond")
        args, kwargs = client._http.request.call_args
        assert args == ("DELETE", "/cancel-market-orders")
        assert json.loads(kwargs["content"]) == {"condition_id": "0xcond"}


class TestGetOrders:
    def test_follows_cursor(self):
        client = _make_client()
        client._http.request.side_effect = [
            _mock_response(200, {"data": [{"id": "a"}, {"id": "b"}], "next_cursor": "MTA="}),
            _mock_response(200, {"data": [{"id": "c"}], "next_cursor": "LTE="}),
        ]
        orders = client.get_orders(market="0xcond")

        assert [o["id"] for o in orders] == ["a", "b", "c"]
        first, second = client._http.request.call_args_list
        assert first[1]["params"] == {"market": "0xcond", "next_cursor": "MA=="}
        assert second[1]["params"] == {"market": "0xcond", "next_cursor": "MTA="}
        assert first[0] == ("GET", "/data/orders")

    def test_empty_page(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"data": [], "next_cursor": "LTE="})
        assert client.get_orders() == []


class TestContextManager:
    def test_context_manager(self):
        client = _make_client()
        with client as c:
            assert c.api_key == "test-api-key"
        client._http.close.assert_called_once()
