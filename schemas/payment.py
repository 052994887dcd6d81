from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from schemas.order import Pagination


class PaymentInitRequest(BaseModel):
    order_id: int
    redirect_url: Optional[str] = None


class PaymentInitResponse(BaseModel):
    checkout_url: str
    payment_reference: str
    transaction_reference: Optional[str] = None


class PaymentVerifyRequest(BaseModel):
    reference: str = Field(min_length=1)


class PaymentOrderSummary(BaseModel):
    id: int
    order_number: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    total: float

    class Config:
        from_attributes = True


class PaymentOut(BaseModel):
    id: int
    order_id: int
    provider: str
    reference: str
    amount: float
    currency: str
    status: str
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    processed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentListItem(PaymentOut):
    order: PaymentOrderSummary


class PaymentDetail(PaymentListItem):
    gateway_response: Optional[Dict[str, Any]] = None


class PaymentList(BaseModel):
    payments: List[PaymentListItem]
    pagination: Pagination


class PaymentStats(BaseModel):
    total: int
    completed: int
    pending: int
    failed: int
    refunded: int
    total_revenue: float


class RefundRequest(BaseModel):
    amount: Optional[float] = Field(default=None, gt=0)
    reason: Optional[str] = None


class RefundResponse(BaseModel):
    payment: PaymentOut
    message: str
