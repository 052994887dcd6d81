import json
from unittest.mock import patch

from core import config as core_config
from models.enums import OrderStatus, PaymentStatus
from tests.helpers import build_event, sign, signed_request


class TestMonnifyWebhookRoute:
    def test_status_endpoint(self, client):
        response = client.get("/webhooks/monnify")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "timestamp" in data

    def test_successful_payment(self, client, db, make_order, sent_emails):
        order, payment = make_order(reference="ref-123")
        body, headers = signed_request(build_event(reference="ref-123"))

        response = client.post("/webhooks/monnify", content=body, headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["order_number"] == order.order_number
        assert data["already_processed"] is False

        db.refresh(order)
        db.refresh(payment)
        assert payment.status == PaymentStatus.COMPLETED.value
        assert order.status == OrderStatus.PROCESSING.value
        assert len(sent_emails) == 1
        assert sent_emails[0]["to"] == order.email
        assert order.order_number in sent_emails[0]["subject"]

    def test_duplicate_delivery_acknowledged_once(self, client, db, make_order, sent_emails):
        order, payment = make_order(reference="ref-123")
        body, headers = signed_request(build_event(reference="ref-123"))

        first = client.post("/webhooks/monnify", content=body, headers=headers)
        second = client.post("/webhooks/monnify", content=body, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["already_processed"] is True
        assert second.json()["message"] == "Payment already processed"
        db.refresh(order)
        assert len(order.status_history) == 1
        assert len(sent_emails) == 1

    def test_invalid_signature(self, client, db, make_order):
        order, payment = make_order()
        body = json.dumps(build_event(reference=payment.reference)).encode()

        response = client.post(
            "/webhooks/monnify", content=body, headers={"monnify-signature": sign(body, "not-the-secret")}
        )

        assert response.status_code == 401
        db.refresh(payment)
        assert payment.status == PaymentStatus.PENDING.value

    def test_missing_signature(self, client, make_order):
        make_order()
        body = json.dumps(build_event()).encode()
        response = client.post("/webhooks/monnify", content=body)
        assert response.status_code == 401

    def test_signature_covers_raw_bytes(self, client, db, make_order):
        order, payment = make_order()
        signed = json.dumps(build_event(reference=payment.reference), indent=2).encode()
        compact = json.dumps(build_event(reference=payment.reference), separators=(",", ":")).encode()

        response = client.post("/webhooks/monnify", content=compact, headers={"monnify-signature": sign(signed)})

        assert response.status_code == 401

    def test_invalid_json(self, client):
        body = b"{not json"
        response = client.post("/webhooks/monnify", content=body, headers={"monnify-signature": sign(body)})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid JSON payload"

    def test_invalid_structure(self, client):
        body, headers = signed_request({"eventData": {}})
        response = client.post("/webhooks/monnify", content=body, headers=headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid payload structure"

    def test_unknown_reference(self, client, make_order):
        make_order(reference="ref-known")
        body, headers = signed_request(build_event(reference="ref-unknown"))

        response = client.post("/webhooks/monnify", content=body, headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Payment not found"

    def test_ignored_event_type(self, client, db, make_order, sent_emails):
        order, payment = make_order()
        body, headers = signed_request(build_event(reference=payment.reference, event_type="SETTLEMENT"))

        response = client.post("/webhooks/monnify", content=body, headers=headers)

        assert response.status_code == 200
        assert response.json()["success"] is True
        db.refresh(payment)
        assert payment.status == PaymentStatus.PENDING.value
        assert sent_emails == []

    def test_failed_payment_sends_no_email(self, client, db, make_order, sent_emails):
        order, payment = make_order()
        body, headers = signed_request(build_event(reference=payment.reference, status="FAILED"))

        response = client.post("/webhooks/monnify", content=body, headers=headers)

        assert response.status_code == 200
        db.refresh(order)
        assert order.payment_status == PaymentStatus.FAILED.value
        assert sent_emails == []

    def test_secret_not_configured(self, client, monkeypatch):
        monkeypatch.setattr(core_config.settings, "MONNIFY_SECRET_KEY", "")
        body, headers = signed_request(build_event())
        response = client.post("/webhooks/monnify", content=body, headers=headers)
        assert response.status_code == 500

    def test_persistence_error_returns_500(self, client, db, make_order):
        order, payment = make_order()
        body, headers = signed_request(build_event(reference=payment.reference))

        with patch("routes.webhooks.PaymentReconciler.process", side_effect=RuntimeError("db down")):
            response = client.post("/webhooks/monnify", content=body, headers=headers)

        assert response.status_code == 500
        db.refresh(payment)
        assert payment.status == PaymentStatus.PENDING.value

    def test_event_data_stored_exactly_as_sent(self, client, db, make_order):
        order, payment = make_order()
        event = build_event(reference=payment.reference, amount=15000, cardDetails={"last4": "4242"})
        del event["eventData"]["metaData"]
        body, headers = signed_request(event)

        response = client.post("/webhooks/monnify", content=body, headers=headers)

        assert response.status_code == 200
        db.refresh(payment)
        assert payment.gateway_response == event["eventData"]

    def test_redelivered_failure_adds_no_history(self, client, db, make_order):
        order, payment = make_order()
        body, headers = signed_request(build_event(reference=payment.reference, status="REVERSED"))

        client.post("/webhooks/monnify", content=body, headers=headers)
        second = client.post("/webhooks/monnify", content=body, headers=headers)

        assert second.json()["already_processed"] is True
        db.refresh(order)
        assert len(order.status_history) == 1

    def test_email_failure_does_not_fail_webhook(self, client, db, make_order, sent_emails):
        order, payment = make_order()
        body, headers = signed_request(build_event(reference=payment.reference))

        with patch("services.email.build_payment_confirmation", side_effect=RuntimeError("template broken")):
            response = client.post("/webhooks/monnify", content=body, headers=headers)

        assert response.status_code == 200
        db.refresh(payment)
        assert payment.status == PaymentStatus.COMPLETED.value
        assert sent_emails == []
