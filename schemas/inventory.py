from typing import List, Optional

from pydantic import BaseModel


class RestoreRequest(BaseModel):
    order_id: int
    reason: Optional[str] = None


class RestoredItemOut(BaseModel):
    product_id: int
    product_name: str
    quantity_restored: int
    previous_quantity: int
    new_quantity: int


class RestorationErrorOut(BaseModel):
    product_id: int
    product_name: str
    error: str


class RestorationOut(BaseModel):
    success: bool
    order_id: int
    message: str
    reason: str
    restored_items: List[RestoredItemOut] = []
    errors: List[RestorationErrorOut] = []
    already_restored: bool = False


class InventoryItemStatus(BaseModel):
    product_id: int
    product_name: str
    quantity: int
    restored_quantity: int
    current_stock: Optional[int] = None
    product_exists: bool


class InventoryStatusOut(BaseModel):
    order_id: int
    status: str
    payment_status: str
    inventory_restored: bool
    can_restore: bool
    items: List[InventoryItemStatus]
