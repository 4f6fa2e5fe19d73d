import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from core.db import utcnow
from core.exceptions import NotFound, ValidationError
from repositories.interfaces import StoreRepository
from services.plan_enforcer import EnforcementResult, PlanEnforcer
from services.plans import SubscriptionPlan, is_valid_plan, product_limit_for

logger = logging.getLogger(__name__)

FREE = SubscriptionPlan.FREE.value


@dataclass
class SubscriptionCheckResult:
    action: str  # "checked" | "downgraded"
    plan: str
    product_limit: int
    enforcement: EnforcementResult
    previous_plan: Optional[str] = None

    @property
    def was_downgraded(self) -> bool:
        return self.action == "downgraded"


@dataclass
class PlanChangeResult:
    plan: str
    product_limit: int
    applied: bool
    enforcement: Optional[EnforcementResult] = None


class SubscriptionService:
    def __init__(self, stores: StoreRepository, enforcer: PlanEnforcer,
                 period_days: int = 30, now: Callable[[], datetime] = utcnow,
                 notifier=None):
        self.stores = stores
        self.enforcer = enforcer
        self.period_days = period_days
        self.now = now
        self.notifier = notifier

    def _load(self, store_id: int):
        store = self.stores.get(store_id)
        if store is None:
            raise NotFound("Store not found")
        return store

    def check_and_enforce(self, store_id: int) -> SubscriptionCheckResult:
        """Downgrade a lapsed paid plan to free, then re-run quota enforcement."""
        store = self._load(store_id)
        action = "checked"
        previous = None

        end = store.subscription_end_date
        if store.subscription_plan != FREE and end is not None and end < self.now():
            previous = store.subscription_plan
            store.subscription_plan = FREE
            store.product_limit = product_limit_for(FREE)
            store.subscription_status = "expired"
            store.subscription_start_date = None
            store.subscription_end_date = None
            store.last_payment_reference = None
            self.stores.save(store)
            action = "downgraded"
            logger.info("store %s subscription %s expired at %s, downgraded to free", store.id, previous, end)

        # Always enforce: catches drift from plan changes made elsewhere
        enforcement = self.enforcer.enforce(store.id)
        return SubscriptionCheckResult(
            action=action,
            plan=store.subscription_plan,
            product_limit=store.product_limit,
            enforcement=enforcement,
            previous_plan=previous,
        )

    def notify_downgrade(self, store_id: int, result: SubscriptionCheckResult) -> None:
        """Tell the seller about a downgrade. Call only once it is committed."""
        if not result.was_downgraded or self.notifier is None:
            return
        try:
            self.notifier.subscription_downgraded(self._load(store_id), result.previous_plan)
        except Exception:
            logger.exception("downgrade notification for store %s failed", store_id)

    def change_plan(self, store_id: int, plan: str,
                    start_date: Optional[datetime] = None,
                    end_date: Optional[datetime] = None) -> PlanChangeResult:
        if not is_valid_plan(plan):
            raise ValidationError("Invalid plan. Must be: free, basic, standard, or premium")
        if start_date and end_date and end_date <= start_date:
            raise ValidationError("end_date must be after start_date")

        store = self._load(store_id)
        store.subscription_plan = plan
        store.product_limit = product_limit_for(plan)
        if plan == FREE:
            store.subscription_status = None
            store.subscription_start_date = None
            store.subscription_end_date = None
        else:
            store.subscription_status = "active"
            store.subscription_start_date = start_date or store.subscription_start_date or self.now()
            store.subscription_end_date = end_date or store.subscription_end_date
        self.stores.save(store)
        logger.info("store %s plan set to %s (limit %s)", store.id, plan, store.product_limit)

        enforcement = self.enforcer.enforce(store.id)
        return PlanChangeResult(plan=plan, product_limit=store.product_limit, applied=True, enforcement=enforcement)

    def apply_subscription_payment(self, store_id: int, plan: str, reference: str,
                                   amount: Decimal, paid_at: Optional[datetime] = None) -> PlanChangeResult:
        """Activate a paid plan once per payment reference."""
        if not is_valid_plan(plan) or plan == FREE:
            raise ValidationError(f"Invalid subscription plan: {plan}")

        store = self._load(store_id)
        if store.last_payment_reference == reference:
            logger.info("subscription payment %s already applied to store %s", reference, store.id)
            return PlanChangeResult(plan=store.subscription_plan, product_limit=store.product_limit, applied=False)

        start = paid_at or self.now()
        store.subscription_plan = plan
        store.product_limit = product_limit_for(plan)
        store.subscription_status = "active"
        store.subscription_start_date = start
        store.subscription_end_date = start + timedelta(days=self.period_days)
        store.last_payment_reference = reference
        store.last_payment_amount = amount
        store.last_payment_date = start
        self.stores.save(store)
        logger.info("store %s subscribed to %s until %s (ref %s)", store.id, plan, store.subscription_end_date, reference)

        enforcement = self.enforcer.enforce(store.id)
        return PlanChangeResult(plan=plan, product_limit=store.product_limit, applied=True, enforcement=enforcement)
