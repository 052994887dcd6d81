"""
Monnify webhook handling: signature verification, status mapping and
reconciliation of Payment/Order records against a gateway event.
"""
import hashlib
import hmac
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session, joinedload

from models.enums import OrderStatus, PaymentStatus
from models.order import Order
from models.payment import Payment
from models.payment_attempt import PaymentAttempt
from schemas.webhook import MonnifyWebhookPayload, WebhookResult, SUCCESSFUL_TRANSACTION
from services.orders import add_status_history

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "monnify-signature"

SUCCESS_STATUSES = {"PAID", "OVERPAID"}
FAILURE_STATUSES = {"FAILED", "REVERSED", "EXPIRED"}

# Payments in these states have been paid for; only a failure event may still move them
SETTLED_STATUSES = {
    PaymentStatus.COMPLETED.value,
    PaymentStatus.REFUNDED.value,
    PaymentStatus.PARTIALLY_REFUNDED.value,
}
# A refund is final as far as the gateway is concerned
REFUNDED_STATUSES = {PaymentStatus.REFUNDED.value, PaymentStatus.PARTIALLY_REFUNDED.value}

_STATUS_MAP = {
    "PAID": PaymentStatus.COMPLETED,
    "OVERPAID": PaymentStatus.COMPLETED,
    "FAILED": PaymentStatus.FAILED,
    "REVERSED": PaymentStatus.FAILED,
    "EXPIRED": PaymentStatus.FAILED,
    "CANCELLED": PaymentStatus.FAILED,
    "PENDING": PaymentStatus.PENDING,
    "PARTIAL": PaymentStatus.PENDING,
}

# Formats seen in Monnify's paidOn besides plain ISO-8601
_PAID_ON_FORMATS = (
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%d/%m/%Y %I:%M:%S %p",
    "%d/%m/%Y %H:%M:%S",
)


class WebhookSignatureVerifier:
    """Checks the ``monnify-signature`` header: hex HMAC-SHA512 of the raw body."""

    def __init__(self, secret_key: str):
        if not secret_key:
            raise ValueError("Webhook secret key must not be empty")
        self._secret = secret_key.encode("utf-8")

    def compute(self, body: bytes | str) -> str:
        if isinstance(body, str):
            body = body.encode("utf-8")
        return hmac.new(self._secret, body, hashlib.sha512).hexdigest()

    def verify(self, body: bytes | str, signature: Optional[str]) -> bool:
        try:
            expected = self.compute(body)
            return hmac.compare_digest(signature, expected)
        except Exception as exc:
            logger.warning("Error verifying webhook signature: %s", exc)
            return False


def map_payment_status(external_status: Optional[str]) -> PaymentStatus:
    """Translate a Monnify paymentStatus into ours. Unknown values stay pending."""
    return _STATUS_MAP.get(external_status or "", PaymentStatus.PENDING)


def parse_paid_on(value: Optional[str]) -> Optional[datetime]:
    """Parse Monnify's paidOn into a naive UTC datetime, or None if absent/unparseable."""
    if not value:
        return None
    text = value.strip()
    parsed = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        for fmt in _PAID_ON_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        logger.warning("Unrecognised paidOn value %r, using current time", value)
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def blocking_statuses(new_status: PaymentStatus) -> set:
    """Stored payment statuses that an incoming ``new_status`` must not overwrite."""
    if new_status == PaymentStatus.FAILED:
        return REFUNDED_STATUSES | {PaymentStatus.FAILED.value}
    return SETTLED_STATUSES


def find_payment(db: Session, reference: Optional[str]) -> Optional[Payment]:
    """
    Resolve a gateway paymentReference to its Payment. Re-initialised checkouts
    leave their earlier references behind as PaymentAttempt rows, so those
    are searched when the current reference does not match.
    """
    if not reference:
        return None
    payment = (
        db.query(Payment)
        .options(joinedload(Payment.order))
        .filter(Payment.reference == reference)
        .one_or_none()
    )
    if payment is not None:
        return payment
    return (
        db.query(Payment)
        .options(joinedload(Payment.order))
        .join(PaymentAttempt, PaymentAttempt.payment_id == Payment.id)
        .filter(PaymentAttempt.reference == reference)
        .one_or_none()
    )


def _to_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class PaymentReconciler:
    """
    Applies a verified Monnify event to the matching Payment and its Order.

    The reconciler flushes but never commits; the caller owns the transaction.
    Business outcomes (ignored event, unknown reference, duplicate delivery)
    come back as a WebhookResult. Database errors propagate.
    """

    def __init__(self, db: Session, amount_tolerance: Decimal = Decimal("0.01")):
        self.db = db
        self.amount_tolerance = amount_tolerance

    def process(self, payload: MonnifyWebhookPayload, raw_event_data: Optional[dict] = None) -> WebhookResult:
        """
        ``raw_event_data`` is the ``eventData`` object exactly as the gateway
        sent it and is what gets stored on the payment. Without it the
        validated fields the client actually sent are stored instead.
        """
        if payload.event_type != SUCCESSFUL_TRANSACTION:
            logger.info("Ignoring webhook event type: %s", payload.event_type)
            return WebhookResult(success=True, message=f"Event type {payload.event_type} ignored")

        data = payload.event_data
        reference = data.payment_reference
        external_status = data.payment_status

        payment = find_payment(self.db, reference)
        if payment is None:
            logger.warning("Payment not found for reference: %s", reference)
            return WebhookResult(success=False, message="Payment not found")

        order = payment.order
        new_status = map_payment_status(external_status)

        if payment.status in blocking_statuses(new_status):
            return self._already_processed(payment, order)

        if raw_event_data is None:
            raw_event_data = data.model_dump(mode="json", by_alias=True, exclude_unset=True)

        values = {
            "status": new_status.value,
            "transaction_id": data.transaction_reference,
            "processed_at": parse_paid_on(data.paid_on) or datetime.utcnow(),
            "gateway_response": raw_event_data,
            "failure_reason": f"Payment failed: {external_status}" if new_status == PaymentStatus.FAILED else None,
        }
        if data.payment_method:
            values["payment_method"] = data.payment_method
        if new_status == PaymentStatus.COMPLETED and payment.reference != reference:
            logger.info("Payment %s settled through earlier reference %s", payment.reference, reference)
            values["reference"] = reference

        if not self._write_payment(payment, new_status, values):
            return self._already_processed(payment, order)

        if external_status in SUCCESS_STATUSES:
            self._confirm_order(order, data.amount_paid, reference)
        elif external_status in FAILURE_STATUSES:
            self._fail_order(order, external_status, reference)

        self.db.flush()
        return WebhookResult(
            success=True,
            message=f"Payment {reference} processed successfully",
            order_number=order.order_number,
            payment_status=new_status,
        )

    def _write_payment(self, payment: Payment, new_status: PaymentStatus, values: dict) -> bool:
        """
        Update the payment row, guarded on the stored status so two concurrent
        deliveries cannot both settle (or both fail) the same payment and a
        refund is never undone. Returns False when the guard matched no row.
        """
        stmt = (
            update(Payment)
            .where(Payment.id == payment.id)
            .where(Payment.status.notin_(sorted(blocking_statuses(new_status))))
        )
        result = self.db.execute(stmt.values(**values).execution_options(synchronize_session=False))
        self.db.refresh(payment)
        return result.rowcount > 0

    def _already_processed(self, payment: Payment, order: Order) -> WebhookResult:
        logger.info("Payment %s already processed", payment.reference)
        return WebhookResult(
            success=True,
            message="Payment already processed",
            order_number=order.order_number,
            payment_status=PaymentStatus(payment.status),
            already_processed=True,
        )

    def _confirm_order(self, order: Order, amount_paid, reference: str) -> None:
        paid = _to_decimal(amount_paid)
        expected = _to_decimal(order.total)
        if paid is None or expected is None or abs(paid - expected) > self.amount_tolerance:
            # Money was received, so reconcile anyway and leave the discrepancy for manual review
            logger.warning(
                "Payment amount mismatch for order %s. Expected: %s, Received: %s",
                order.order_number, expected, amount_paid,
            )

        order.payment_status = PaymentStatus.COMPLETED.value
        if order.status == OrderStatus.PENDING.value:
            order.status = OrderStatus.PROCESSING.value

        self._append_history(order, order.status, "Payment confirmed via webhook")
        logger.info("Order %s payment confirmed via webhook. Payment: %s", order.order_number, reference)

    def _fail_order(self, order: Order, external_status: str, reference: str) -> None:
        order.payment_status = PaymentStatus.FAILED.value
        self._append_history(order, order.status, f"Payment failed via webhook: {external_status}")
        logger.info("Order %s payment failed via webhook. Payment: %s", order.order_number, reference)

    def _append_history(self, order: Order, status: str, notes: str) -> None:
        actor = str(order.user_id) if order.user_id else "system"
        add_status_history(self.db, order, status, notes, actor)
