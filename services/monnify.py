import uuid
import requests
from typing import Any, Dict

from core.config import settings


class MonnifyError(Exception):
    """Monnify answered with requestSuccessful=false."""


def _url(path: str) -> str:
    return f"{settings.MONNIFY_BASE_URL}{path}"


def _unwrap(resp: requests.Response) -> Dict[str, Any]:
    resp.raise_for_status()
    body = resp.json()
    if not body.get("requestSuccessful"):
        raise MonnifyError(body.get("responseMessage") or "Monnify request failed")
    return body.get("responseBody") or {}


def authenticate() -> str:
    """Exchange the API key and secret for a short-lived bearer token."""
    resp = requests.post(
        _url("/api/v1/auth/login"),
        auth=(settings.MONNIFY_API_KEY, settings.MONNIFY_SECRET_KEY),
        timeout=20,
    )
    token = _unwrap(resp).get("accessToken")
    if not token:
        raise MonnifyError("Missing access token from Monnify")
    return token


def _headers() -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {authenticate()}",
        "Content-Type": "application/json",
    }


def initialize_transaction(
    amount: float,
    customer_name: str,
    customer_email: str,
    payment_reference: str | None = None,
    description: str | None = None,
    currency: str = "NGN",
    redirect_url: str | None = None,
    metadata: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    payload = {
        "amount": round(float(amount), 2),  # Monnify takes naira, not kobo
        "customerName": customer_name,
        "customerEmail": customer_email,
        "paymentReference": payment_reference or str(uuid.uuid4()),
        "paymentDescription": description or "Order payment",
        "currencyCode": currency,
        "contractCode": settings.MONNIFY_CONTRACT_CODE,
    }
    if redirect_url or settings.MONNIFY_REDIRECT_URL:
        payload["redirectUrl"] = redirect_url or settings.MONNIFY_REDIRECT_URL
    if metadata:
        payload["metaData"] = metadata

    resp = requests.post(
        _url("/api/v1/merchant/transactions/init-transaction"), json=payload, headers=_headers(), timeout=20
    )
    return _unwrap(resp)


def query_transaction(payment_reference: str) -> Dict[str, Any]:
    resp = requests.get(
        _url("/api/v2/merchant/transactions/query"),
        params={"paymentReference": payment_reference},
        headers=_headers(),
        timeout=20,
    )
    return _unwrap(resp)
