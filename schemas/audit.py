from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel


class PaymentAuditOut(BaseModel):
    id: int
    reference: str
    event: str
    amount: Optional[Decimal] = None
    expected_amount: Optional[Decimal] = None
    details: Optional[Dict[str, Any]] = None
    user_id: Optional[int] = None
    ip_address: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SuspiciousActivityOut(BaseModel):
    period: str
    amount_mismatches: int
    rate_limit_hits: int
    verification_failures: int
    total_suspicious_events: int
