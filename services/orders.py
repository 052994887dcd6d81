import logging
import secrets
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from models.enums import OrderStatus
from models.order import Order
from models.order_status_history import OrderStatusHistory

logger = logging.getLogger(__name__)

_STATUS_TIMESTAMPS = {
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


def generate_order_number() -> str:
    return f"ORD-{datetime.utcnow():%Y%m%d%H%M%S}-{secrets.token_hex(3).upper()}"


def add_status_history(db: Session, order: Order, status: str, notes: Optional[str], actor: str = "system") -> OrderStatusHistory:
    entry = OrderStatusHistory(status=status, notes=notes, created_by=actor)
    order.status_history.append(entry)
    db.add(entry)
    return entry


def update_order_status(
    db: Session,
    order: Order,
    status: OrderStatus,
    notes: Optional[str] = None,
    actor: str = "system",
) -> Order:
    """
    Manual (staff) status change. Stamps shipped/delivered/cancelled times and
    appends a history entry only when the status actually changes. The payment
    webhook respects whatever this writes and never moves an order backwards.
    """
    status = OrderStatus(status)
    if order.status == status.value:
        return order

    previous = order.status
    order.status = status.value
    stamp = _STATUS_TIMESTAMPS.get(status)
    if stamp:
        setattr(order, stamp, datetime.utcnow())

    add_status_history(db, order, status.value, notes or f"Order status updated to {status.value}", actor)
    db.flush()
    logger.info("Order %s status %s -> %s by %s", order.order_number, previous, status.value, actor)
    return order
