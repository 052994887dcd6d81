from datetime import datetime
from pydantic import BaseModel
from typing import List, Optional

from models.enums import OrderStatus


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class StatusHistoryOut(BaseModel):
    id: int
    status: str
    notes: Optional[str] = None
    created_by: str
    created_at: datetime

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    order_number: str
    user_id: Optional[int] = None
    email: str
    currency: str
    status: str
    payment_status: str
    total: float
    created_at: datetime

    class Config:
        from_attributes = True


class OrderDetail(OrderOut):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    status_history: List[StatusHistoryOut]


class OrderList(BaseModel):
    orders: List[OrderOut]
    pagination: Pagination


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    notes: Optional[str] = None
