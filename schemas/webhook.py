from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class WebhookAck(BaseModel):
    status: str
    message: str
    action: Optional[str] = None


class PaymentVerification(BaseModel):
    """Polling view of a payment; order details only for signed-in callers."""

    reference: str
    message: str
    payment_status: str
    amount: Decimal
    type: str = "order"
    order_exists: Optional[bool] = None
    sub_order_count: Optional[int] = None
    order_number: Optional[str] = None
    order_status: Optional[str] = None
    grand_total: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    plan: Optional[str] = None
    store_id: Optional[int] = None
    subscription_updated: Optional[bool] = None
