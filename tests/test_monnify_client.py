from unittest.mock import Mock, patch

import pytest
import requests

from core import config as core_config
from services import monnify


def _response(body, status_code=200):
    resp = Mock()
    resp.status_code = status_code
    resp.json.return_value = body
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    else:
        resp.raise_for_status.return_value = None
    return resp


def _ok(body):
    return _response({"requestSuccessful": True, "responseMessage": "success", "responseCode": "0", "responseBody": body})


@pytest.fixture(autouse=True)
def monnify_settings(monkeypatch):
    monkeypatch.setattr(core_config.settings, "MONNIFY_API_KEY", "MK_TEST_KEY")
    monkeypatch.setattr(core_config.settings, "MONNIFY_SECRET_KEY", "test-monnify-secret")
    monkeypatch.setattr(core_config.settings, "MONNIFY_CONTRACT_CODE", "1234567890")
    monkeypatch.setattr(core_config.settings, "MONNIFY_BASE_URL", "https://sandbox.monnify.com")
    monkeypatch.setattr(core_config.settings, "MONNIFY_REDIRECT_URL", "https://shop.test/payment/callback")


class TestMonnifyClient:
    @patch("services.monnify.requests.post")
    def test_authenticate(self, mock_post):
        mock_post.return_value = _ok({"accessToken": "token-abc", "expiresIn": 3599})

        assert monnify.authenticate() == "token-abc"
        args, kwargs = mock_post.call_args
        assert args[0] == "https://sandbox.monnify.com/api/v1/auth/login"
        assert kwargs["auth"] == ("MK_TEST_KEY", "test-monnify-secret")

    @patch("services.monnify.requests.post")
    def test_authenticate_rejected(self, mock_post):
        mock_post.return_value = _response({"requestSuccessful": False, "responseMessage": "Invalid credentials"})
        with pytest.raises(monnify.MonnifyError, match="Invalid credentials"):
            monnify.authenticate()

    @patch("services.monnify.authenticate", return_value="token-abc")
    @patch("services.monnify.requests.post")
    def test_initialize_transaction(self, mock_post, mock_auth):
        mock_post.return_value = _ok({"transactionReference": "MNFY|1", "checkoutUrl": "https://checkout"})

        body = monnify.initialize_transaction(
            amount=15000,
            customer_name="Buyer One",
            customer_email="buyer@example.com",
            payment_reference="ORD-1-AAAA",
            metadata={"order_id": 1},
        )

        assert body["checkoutUrl"] == "https://checkout"
        args, kwargs = mock_post.call_args
        assert args[0] == "https://sandbox.monnify.com/api/v1/merchant/transactions/init-transaction"
        payload = kwargs["json"]
        assert payload["amount"] == 15000.0
        assert payload["paymentReference"] == "ORD-1-AAAA"
        assert payload["contractCode"] == "1234567890"
        assert payload["currencyCode"] == "NGN"
        assert payload["redirectUrl"] == "https://shop.test/payment/callback"
        assert payload["metaData"] == {"order_id": 1}
        assert kwargs["headers"]["Authorization"] == "Bearer token-abc"

    @patch("services.monnify.authenticate", return_value="token-abc")
    @patch("services.monnify.requests.post")
    def test_initialize_generates_reference(self, mock_post, mock_auth):
        mock_post.return_value = _ok({"checkoutUrl": "https://checkout"})
        monnify.initialize_transaction(amount=100, customer_name="A", customer_email="a@example.com")
        assert mock_post.call_args.kwargs["json"]["paymentReference"]

    @patch("services.monnify.authenticate", return_value="token-abc")
    @patch("services.monnify.requests.get")
    def test_query_transaction(self, mock_get, mock_auth):
        mock_get.return_value = _ok({"paymentReference": "ref-1", "paymentStatus": "PAID"})

        body = monnify.query_transaction("ref-1")

        assert body["paymentStatus"] == "PAID"
        args, kwargs = mock_get.call_args
        assert args[0] == "https://sandbox.monnify.com/api/v2/merchant/transactions/query"
        assert kwargs["params"] == {"paymentReference": "ref-1"}

    @patch("services.monnify.authenticate", return_value="token-abc")
    @patch("services.monnify.requests.get")
    def test_http_error_propagates(self, mock_get, mock_auth):
        mock_get.return_value = _response({}, status_code=500)
        with pytest.raises(requests.HTTPError):
            monnify.query_transaction("ref-1")
