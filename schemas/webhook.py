from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from models.enums import PaymentStatus

SUCCESSFUL_TRANSACTION = "SUCCESSFUL_TRANSACTION"


class MonnifyCustomer(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None


class MonnifyEventData(BaseModel):
    """The part of Monnify's ``eventData`` we consume. The full object is stored as received."""

    transaction_reference: Optional[str] = Field(default=None, alias="transactionReference")
    payment_reference: Optional[str] = Field(default=None, alias="paymentReference")
    amount_paid: Optional[Decimal] = Field(default=None, alias="amountPaid")
    payment_status: Optional[str] = Field(default=None, alias="paymentStatus")
    paid_on: Optional[str] = Field(default=None, alias="paidOn")
    currency: Optional[str] = None
    payment_method: Optional[str] = Field(default=None, alias="paymentMethod")
    customer: Optional[MonnifyCustomer] = None
    meta_data: Optional[Dict[str, Any]] = Field(default=None, alias="metaData")

    class Config:
        populate_by_name = True


class MonnifyWebhookPayload(BaseModel):
    event_type: str = Field(alias="eventType", min_length=1)
    event_data: MonnifyEventData = Field(alias="eventData")

    class Config:
        populate_by_name = True


class WebhookResult(BaseModel):
    success: bool
    message: str
    order_number: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    already_processed: bool = False
