import json
import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from sqlalchemy.orm import Session

from core.config import settings
from core.db import get_db
from models.enums import PaymentStatus
from schemas.webhook import MonnifyWebhookPayload, WebhookResult
from services import email as email_service
from services.webhooks import PaymentReconciler, WebhookSignatureVerifier, SIGNATURE_HEADER, find_payment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def reconcile_and_commit(db: Session, payload: MonnifyWebhookPayload, raw_event_data: Optional[dict]) -> WebhookResult:
    try:
        result = PaymentReconciler(db, settings.PAYMENT_AMOUNT_TOLERANCE).process(payload, raw_event_data)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return result


def confirmation_email(db: Session, result: WebhookResult, reference: str | None) -> Optional[Tuple[str, str, str]]:
    """The confirmation email for the delivery that actually completed the payment, if this is it."""
    if not result.success or result.already_processed or result.payment_status != PaymentStatus.COMPLETED:
        return None
    payment = find_payment(db, reference)
    if payment is None:
        return None
    try:
        return email_service.build_payment_confirmation(payment.order, payment)
    except Exception:
        # The payment is already committed; a broken template must not make the gateway retry
        logger.exception("Unable to build confirmation email for payment %s", payment.reference)
        return None


def queue_confirmation(background_tasks: BackgroundTasks, message: Optional[Tuple[str, str, str]]) -> None:
    if message:
        background_tasks.add_task(email_service.send_email, *message)


@router.post("/monnify", response_model=WebhookResult)
async def monnify_webhook(request: Request, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    if not settings.MONNIFY_SECRET_KEY:
        logger.error("Monnify client secret key not configured")
        raise HTTPException(status_code=500, detail="Monnify client secret key not configured")

    # Signature is computed over the exact bytes received
    raw_body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER, "")

    verifier = WebhookSignatureVerifier(settings.MONNIFY_SECRET_KEY)
    if not verifier.verify(raw_body, signature):
        logger.warning("Invalid webhook signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        body = json.loads(raw_body)
    except ValueError:
        logger.warning("Invalid JSON payload on Monnify webhook")
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    try:
        payload = MonnifyWebhookPayload.model_validate(body)
    except ValidationError as exc:
        logger.warning("Invalid webhook payload structure: %s", exc.errors())
        raise HTTPException(status_code=400, detail="Invalid payload structure")

    # Session work is blocking, keep it off the event loop
    try:
        result = await run_in_threadpool(reconcile_and_commit, db, payload, body["eventData"])
    except Exception:
        logger.exception("Error processing Monnify webhook")
        raise HTTPException(status_code=500, detail="Internal server error")

    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)

    message = await run_in_threadpool(confirmation_email, db, result, payload.event_data.payment_reference)
    queue_confirmation(background_tasks, message)
    return result


@router.get("/monnify")
def monnify_webhook_status():
    """Lets the gateway (or an operator) check the endpoint is reachable."""
    return {
        "status": "ok",
        "message": "Monnify webhook endpoint is active",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
