from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.db import get_db
from core.deps import get_inventory_restorer
from core.exceptions import NotFound
from core.tenancy import require_admin
from models.product import Product
from models.user import User
from repositories import SqlOrderRepository
from schemas.inventory import InventoryStatusOut, RestorationOut, RestoreRequest
from services.inventory import InventoryRestorer, is_cancellable

router = APIRouter(prefix="/admin/inventory", tags=["admin"])


@router.post("/restore", response_model=RestorationOut, responses={207: {"model": RestorationOut}})
def restore_inventory(
    data: RestoreRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    restorer: InventoryRestorer = Depends(get_inventory_restorer),
):
    reason = data.reason or f"Cancelled by admin {admin.email}"
    result = restorer.restore(data.order_id, reason)
    db.commit()
    if not result.success:
        return JSONResponse(RestorationOut(**result.as_dict()).model_dump(), status_code=207)
    return result.as_dict()


@router.get("/{order_id}", response_model=InventoryStatusOut)
def inventory_status(order_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    order = SqlOrderRepository(db).get(order_id)
    if not order:
        raise NotFound(f"Order {order_id} not found")

    items = []
    for item in order.items:
        product = db.get(Product, item.product_id)
        exists = product is not None and not product.is_deleted
        items.append({
            "product_id": item.product_id,
            "product_name": item.product_name,
            "quantity": item.quantity,
            "restored_quantity": item.restored_quantity or 0,
            "current_stock": product.inventory_quantity if exists else None,
            "product_exists": exists,
        })

    return {
        "order_id": order.id,
        "status": order.status,
        "payment_status": order.payment_status,
        "inventory_restored": order.inventory_restored,
        "can_restore": is_cancellable(order) and not order.inventory_restored,
        "items": items,
    }
