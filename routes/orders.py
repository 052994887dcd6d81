import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session, selectinload

from core.db import get_db
from models.enums import OrderStatus, PaymentStatus
from models.order import Order
from models.user import User
from routes.auth import require_staff
from schemas.order import OrderList, OrderDetail, OrderStatusUpdate, Pagination
from services.orders import update_order_status

router = APIRouter(prefix="/orders", tags=["orders"])


def _get_order_or_404(db: Session, order_id: int) -> Order:
    order = (
        db.query(Order)
        .options(selectinload(Order.status_history))
        .filter(Order.id == order_id)
        .one_or_none()
    )
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("/", response_model=OrderList)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    db: Session = Depends(get_db),
    _staff: User = Depends(require_staff),
):
    query = db.query(Order)
    if status:
        query = query.filter(Order.status == status.value)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status.value)

    total = query.count()
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "orders": orders,
        "pagination": Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    }


@router.get("/{order_id}", response_model=OrderDetail)
def get_order(order_id: int, db: Session = Depends(get_db), _staff: User = Depends(require_staff)):
    return _get_order_or_404(db, order_id)


@router.patch("/{order_id}/status", response_model=OrderDetail)
def change_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    db: Session = Depends(get_db),
    staff: User = Depends(require_staff),
):
    order = _get_order_or_404(db, order_id)
    update_order_status(db, order, data.status, data.notes, actor=str(staff.id))
    db.commit()
    return order
