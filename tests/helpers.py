import hashlib
import hmac
import json

WEBHOOK_SECRET = "test-monnify-secret"


def build_event(
    reference="ref-1",
    status="PAID",
    amount="15000.00",
    event_type="SUCCESSFUL_TRANSACTION",
    transaction_reference="MNFY|20251018|000123",
    paid_on="2025-10-18 14:29:04.0",
    **extra_data,
):
    data = {
        "transactionReference": transaction_reference,
        "paymentReference": reference,
        "amountPaid": amount,
        "totalPayable": amount,
        "settlementAmount": amount,
        "paidOn": paid_on,
        "paymentStatus": status,
        "paymentDescription": "Order payment",
        "currency": "NGN",
        "paymentMethod": "CARD",
        "customer": {"email": "buyer@example.com", "name": "Buyer One"},
        "metaData": {"order_number": "ORD-1"},
    }
    data.update(extra_data)
    return {"eventType": event_type, "eventData": data}


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()


def signed_request(event: dict, secret: str = WEBHOOK_SECRET):
    body = json.dumps(event).encode()
    return body, {"monnify-signature": sign(body, secret), "Content-Type": "application/json"}
