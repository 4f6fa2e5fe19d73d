from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, field_validator

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")


class OrderStatusUpdate(BaseModel):
    status: str
    reason: Optional[str] = None

    @field_validator("status")
    @classmethod
    def known_status(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ORDER_STATUSES:
            raise ValueError(f"must be one of {', '.join(ORDER_STATUSES)}")
        return v


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    product_name: str
    quantity: int
    price_at_purchase: Decimal
    restored_quantity: int

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    store_id: int
    reference: str
    status: str
    payment_status: str
    total_price: Decimal
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    inventory_restored: bool
    items: List[OrderItemOut]

    class Config:
        from_attributes = True
