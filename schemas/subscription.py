from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, field_validator


class CheckSubscriptionRequest(BaseModel):
    store_id: int


class UpgradePlanRequest(BaseModel):
    store_id: int
    plan: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("plan")
    @classmethod
    def normalize_plan(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("start_date", "end_date")
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Columns hold naive UTC
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class EnforcementOut(BaseModel):
    store_id: int
    plan: str
    product_limit: int
    kept_count: int
    deactivated_count: int
    activated_count: int
    total: int
    success: bool

    class Config:
        from_attributes = True


class CheckSubscriptionResponse(BaseModel):
    success: bool
    message: str
    action: str
    was_downgraded: bool
    plan: str
    product_limit: int
    enforcement: EnforcementOut


class UpgradePlanResponse(BaseModel):
    success: bool
    message: str
    plan: str
    product_limit: int
    enforcement: Optional[EnforcementOut] = None
