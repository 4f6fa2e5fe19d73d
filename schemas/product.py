from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    price: Decimal = Field(ge=0)
    inventory_quantity: int = Field(default=0, ge=0)
    is_active: bool = True


class ProductOut(BaseModel):
    id: int
    store_id: int
    name: str
    price: Decimal
    inventory_quantity: int
    is_active: bool
    deactivated_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class StoreProductsOut(BaseModel):
    store_id: int
    plan: str
    product_limit: int
    active_count: int
    products: List[ProductOut]
