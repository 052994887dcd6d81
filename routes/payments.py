import logging
import math
import uuid
from decimal import Decimal
from typing import Optional

import requests
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from core.db import get_db
from models.enums import OrderStatus, PaymentStatus
from models.order import Order
from models.payment import Payment
from models.payment_attempt import PaymentAttempt
from models.user import User
from routes.auth import require_staff
from routes.webhooks import confirmation_email, queue_confirmation, reconcile_and_commit
from schemas.order import Pagination
from schemas.payment import (
    PaymentInitRequest,
    PaymentInitResponse,
    PaymentVerifyRequest,
    PaymentOut,
    PaymentList,
    PaymentDetail,
    PaymentStats,
    RefundRequest,
    RefundResponse,
)
from schemas.webhook import MonnifyWebhookPayload, MonnifyEventData, SUCCESSFUL_TRANSACTION
from services import monnify
from services.orders import add_status_history
from services.webhooks import SETTLED_STATUSES, find_payment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


def _new_reference(order: Order) -> str:
    return f"{order.order_number}-{uuid.uuid4().hex[:8].upper()}"


@router.post("/init", response_model=PaymentInitResponse)
def init_payment(data: PaymentInitRequest, db: Session = Depends(get_db)):
    order = db.query(Order).filter(Order.id == data.order_id).one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.total is None or Decimal(str(order.total)) <= 0:
        raise HTTPException(status_code=400, detail="Order total must be greater than 0")

    payment = order.payment
    if order.payment_status in SETTLED_STATUSES or (payment and payment.status in SETTLED_STATUSES):
        raise HTTPException(status_code=409, detail="Order is already paid")

    # Monnify rejects a reused paymentReference, so every attempt gets a fresh one.
    # Earlier references stay resolvable through their PaymentAttempt rows.
    reference = _new_reference(order)
    try:
        resp = monnify.initialize_transaction(
            amount=float(order.total),
            customer_name=order.customer_name,
            customer_email=order.email,
            payment_reference=reference,
            description=f"Payment for order {order.order_number}",
            currency=order.currency,
            redirect_url=data.redirect_url,
            metadata={"order_id": order.id, "order_number": order.order_number},
        )
    except (requests.RequestException, monnify.MonnifyError) as exc:
        logger.error("Unable to initialize Monnify transaction for order %s: %s", order.order_number, exc)
        raise HTTPException(status_code=502, detail="Unable to initialize payment")

    checkout_url = resp.get("checkoutUrl")
    if not checkout_url:
        raise HTTPException(status_code=502, detail="Missing checkout URL from provider")

    if payment is None:
        payment = Payment(order_id=order.id, provider="monnify")
        db.add(payment)
    elif payment.reference and payment.reference not in {a.reference for a in payment.attempts}:
        payment.attempts.append(PaymentAttempt(reference=payment.reference, transaction_reference=payment.transaction_id))
    payment.reference = reference
    payment.amount = order.total
    payment.currency = order.currency
    payment.status = PaymentStatus.PENDING.value
    payment.transaction_id = resp.get("transactionReference")
    payment.failure_reason = None
    payment.processed_at = None
    payment.gateway_response = resp
    payment.attempts.append(
        PaymentAttempt(reference=reference, transaction_reference=resp.get("transactionReference"), checkout_url=checkout_url)
    )
    order.payment_status = PaymentStatus.PENDING.value
    db.commit()

    return PaymentInitResponse(
        checkout_url=checkout_url,
        payment_reference=reference,
        transaction_reference=resp.get("transactionReference"),
    )


@router.post("/verify", response_model=PaymentOut)
def verify_payment(data: PaymentVerifyRequest, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    """Ask Monnify for the current state of a reference and reconcile it like a webhook."""
    payment = find_payment(db, data.reference)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")

    try:
        transaction = monnify.query_transaction(data.reference)
    except (requests.RequestException, monnify.MonnifyError) as exc:
        logger.error("Unable to query Monnify for %s: %s", data.reference, exc)
        raise HTTPException(status_code=502, detail="Unable to verify payment")

    event = MonnifyWebhookPayload(
        event_type=SUCCESSFUL_TRANSACTION,
        event_data=MonnifyEventData.model_validate(transaction),
    )
    result = reconcile_and_commit(db, event, transaction)
    if not result.success:
        raise HTTPException(status_code=404, detail=result.message)

    queue_confirmation(background_tasks, confirmation_email(db, result, event.event_data.payment_reference))
    db.refresh(payment)
    return payment


@router.get("/", response_model=PaymentList)
def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[PaymentStatus] = None,
    payment_method: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    _staff: User = Depends(require_staff),
):
    query = db.query(Payment).join(Payment.order).options(joinedload(Payment.order))
    if status:
        query = query.filter(Payment.status == status.value)
    if payment_method:
        query = query.filter(Payment.payment_method == payment_method)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Payment.reference.ilike(pattern),
                Payment.transaction_id.ilike(pattern),
                Order.order_number.ilike(pattern),
                Order.email.ilike(pattern),
            )
        )

    total = query.count()
    payments = query.order_by(Payment.created_at.desc(), Payment.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "payments": payments,
        "pagination": Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    }


@router.get("/stats", response_model=PaymentStats)
def payment_stats(db: Session = Depends(get_db), _staff: User = Depends(require_staff)):
    counts = dict(db.query(Payment.status, func.count(Payment.id)).group_by(Payment.status).all())
    revenue = (
        db.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.status == PaymentStatus.COMPLETED.value)
        .scalar()
    )
    return PaymentStats(
        total=sum(counts.values()),
        completed=counts.get(PaymentStatus.COMPLETED.value, 0),
        pending=counts.get(PaymentStatus.PENDING.value, 0),
        failed=counts.get(PaymentStatus.FAILED.value, 0),
        refunded=counts.get(PaymentStatus.REFUNDED.value, 0),
        total_revenue=float(revenue or 0),
    )


@router.get("/{payment_id}", response_model=PaymentDetail)
def get_payment(payment_id: int, db: Session = Depends(get_db), _staff: User = Depends(require_staff)):
    payment = db.query(Payment).options(joinedload(Payment.order)).filter(Payment.id == payment_id).one_or_none()
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    return payment


@router.post("/{payment_id}/refund", response_model=RefundResponse)
def refund_payment(
    payment_id: int,
    data: RefundRequest,
    db: Session = Depends(get_db),
    staff: User = Depends(require_staff),
):
    payment = db.query(Payment).filter(Payment.id == payment_id).one_or_none()
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    if payment.status != PaymentStatus.COMPLETED.value:
        raise HTTPException(status_code=400, detail="Can only refund completed payments")

    paid = Decimal(str(payment.amount))
    refund_amount = Decimal(str(data.amount)) if data.amount is not None else paid
    if refund_amount > paid:
        raise HTTPException(status_code=400, detail="Refund amount cannot exceed payment amount")

    full = refund_amount == paid
    payment.status = PaymentStatus.REFUNDED.value if full else PaymentStatus.PARTIALLY_REFUNDED.value
    payment.failure_reason = data.reason or "Refund processed"

    if full:
        order = payment.order
        order.payment_status = PaymentStatus.REFUNDED.value
        order.status = OrderStatus.REFUNDED.value
        add_status_history(db, order, order.status, data.reason or "Payment refunded", actor=str(staff.id))

    db.commit()
    db.refresh(payment)
    logger.info("Refund of %s processed for payment %s by user %s", refund_amount, payment.reference, staff.id)
    return {"payment": payment, "message": "Refund processed successfully"}
