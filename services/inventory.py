import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Callable, List, Optional

from core.db import utcnow
from core.exceptions import NotFound, OrderStateError
from models.order import Order
from repositories.interfaces import OrderRepository, ProductRepository
from services.payment_logger import PaymentLogger

logger = logging.getLogger(__name__)


@dataclass
class RestoredItem:
    product_id: int
    product_name: str
    quantity_restored: int
    previous_quantity: int
    new_quantity: int


@dataclass
class RestorationError:
    product_id: int
    product_name: str
    error: str


@dataclass
class RestorationResult:
    success: bool
    order_id: int
    message: str
    reason: str
    restored_items: List[RestoredItem] = field(default_factory=list)
    errors: List[RestorationError] = field(default_factory=list)
    already_restored: bool = False

    def as_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "RestorationResult":
        return cls(
            success=data["success"],
            order_id=data["order_id"],
            message=data["message"],
            reason=data.get("reason", ""),
            restored_items=[RestoredItem(**item) for item in data.get("restored_items", [])],
            errors=[RestorationError(**err) for err in data.get("errors", [])],
        )


def is_cancellable(order: Order) -> bool:
    return order.status == "cancelled" or order.payment_status == "refunded"


class InventoryRestorer:
    """
    Returns the stock of a cancelled or refunded order to its products.

    Every line item is credited at most once, even across retries after a
    partial failure: items carry their own restored marker and the order is
    flagged once all of them are back. A failing item does not stop the
    others from being restored.
    """

    def __init__(self, orders: OrderRepository, products: ProductRepository,
                 audit: Optional[PaymentLogger] = None, now: Callable[[], datetime] = utcnow):
        self.orders = orders
        self.products = products
        self.audit = audit
        self.now = now

    def restore(self, order_id: int, reason: str = "Order cancelled") -> RestorationResult:
        order = self.orders.get(order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found")

        if order.inventory_restored:
            logger.info("order %s inventory already restored, skipping", order.id)
            if order.inventory_restoration:
                previous = RestorationResult.from_dict(order.inventory_restoration)
            else:
                previous = RestorationResult(success=True, order_id=order.id,
                                             message="Inventory restored successfully", reason=reason)
            previous.already_restored = True
            previous.message = "Inventory already restored for this order"
            return previous

        if not is_cancellable(order):
            logger.warning(
                "order %s not cancellable: status=%s payment=%s",
                order.id, order.status, order.payment_status,
            )
            raise OrderStateError("Order is not cancelled or refunded")

        now = self.now()
        restored: List[RestoredItem] = []
        errors: List[RestorationError] = []
        pending = 0

        for item in order.items:
            outstanding = item.quantity - (item.restored_quantity or 0)
            if outstanding <= 0:
                continue
            pending += 1

            before = self.products.get(item.product_id)
            if before is None or before.is_deleted:
                errors.append(RestorationError(item.product_id, item.product_name, "Product not found"))
                logger.warning("order %s: product %s missing, cannot restore %s units",
                               order.id, item.product_id, outstanding)
                continue
            previous_quantity = before.inventory_quantity

            updated = self.products.increment_stock(item.product_id, outstanding)
            if updated is None:
                errors.append(RestorationError(item.product_id, item.product_name, "Product not found"))
                continue

            item.restored_quantity = item.quantity
            item.restored_at = now
            restored.append(RestoredItem(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity_restored=outstanding,
                previous_quantity=previous_quantity,
                new_quantity=updated.inventory_quantity,
            ))
            logger.info("order %s: %s %s -> %s (+%s)", order.id, item.product_name,
                        previous_quantity, updated.inventory_quantity, outstanding)

        success = not errors
        result = RestorationResult(
            success=success,
            order_id=order.id,
            message="Inventory restored successfully" if success else "Inventory restoration completed with errors",
            reason=reason,
            restored_items=restored,
            errors=errors,
        )

        if success:
            order.inventory_restored = True
            order.inventory_restored_at = now
        order.inventory_restoration = result.as_dict()
        self.orders.save(order)

        if self.audit is not None:
            self.audit.log(
                order.reference,
                "inventory_restored" if success else "inventory_restoration_failed",
                details={
                    "order_id": order.id,
                    "reason": reason,
                    "items_restored": len(restored),
                    "items_pending": pending,
                    "errors": [asdict(e) for e in errors],
                },
                error=None if success else f"Failed to restore inventory for {len(errors)} items",
            )
        return result
