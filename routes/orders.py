import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db, utcnow
from core.exceptions import NotFound, OrderStateError
from core.tenancy import require_admin
from models.user import User
from repositories import SqlOrderRepository
from schemas.order import OrderOut, OrderStatusUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/orders", tags=["admin"])


@router.patch("/{order_id}", response_model=OrderOut)
def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    orders = SqlOrderRepository(db)
    order = orders.get(order_id)
    if not order:
        raise NotFound(f"Order {order_id} not found")

    # Restored stock has already left the order
    if order.inventory_restored and data.status != "cancelled":
        raise OrderStateError("Inventory was restored for this order; it cannot be reopened")

    previous = order.status
    order.status = data.status
    if data.status == "cancelled" and previous != "cancelled":
        order.cancelled_at = utcnow()
        order.cancellation_reason = data.reason or "Cancelled by admin"
    orders.save(order)
    db.commit()
    logger.info("order %s status %s -> %s by admin %s", order.id, previous, data.status, admin.id)
    return order
