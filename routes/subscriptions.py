from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.config import settings
from core.db import get_db
from core.deps import get_subscription_service, run_with_retry
from core.exceptions import Forbidden, NotFound
from core.tenancy import ensure_store_access, get_current_user, is_store_owner
from models.store import Store
from models.user import User
from schemas.subscription import (
    CheckSubscriptionRequest,
    CheckSubscriptionResponse,
    UpgradePlanRequest,
    UpgradePlanResponse,
)
from services.subscriptions import SubscriptionService

router = APIRouter(prefix="/stores", tags=["subscriptions"])


def _get_store(db: Session, store_id: int) -> Store:
    store = db.get(Store, store_id)
    if not store:
        raise NotFound("Store not found")
    return store


@router.post("/check-subscription", response_model=CheckSubscriptionResponse)
def check_subscription(
    data: CheckSubscriptionRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
):
    ensure_store_access(user, _get_store(db, data.store_id))

    result = run_with_retry(db, lambda: service.check_and_enforce(data.store_id))
    service.notify_downgrade(data.store_id, result)
    message = (
        "Subscription expired. Downgraded to free plan."
        if result.was_downgraded
        else "Subscription is current"
    )
    return {
        "success": result.enforcement.success,
        "message": message,
        "action": result.action,
        "was_downgraded": result.was_downgraded,
        "plan": result.plan,
        "product_limit": result.product_limit,
        "enforcement": result.enforcement.as_dict(),
    }


@router.post("/upgrade-plan", response_model=UpgradePlanResponse)
def upgrade_plan(
    data: UpgradePlanRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
):
    store = _get_store(db, data.store_id)
    seller_allowed = settings.ALLOW_SELLER_PLAN_CHANGES and is_store_owner(user, store)
    if not (user.is_admin or seller_allowed):
        raise Forbidden("Only admins can change subscription plans")

    result = run_with_retry(
        db, lambda: service.change_plan(data.store_id, data.plan, data.start_date, data.end_date)
    )
    return {
        "success": result.applied,
        "message": f"Store upgraded to {result.plan} plan",
        "plan": result.plan,
        "product_limit": result.product_limit,
        "enforcement": result.enforcement.as_dict() if result.enforcement else None,
    }
