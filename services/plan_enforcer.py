import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Callable

from core.db import utcnow
from core.exceptions import NotFound
from repositories.interfaces import ProductRepository, StoreRepository
from services.plans import product_limit_for

logger = logging.getLogger(__name__)


@dataclass
class EnforcementResult:
    store_id: int
    plan: str
    product_limit: int
    kept_count: int
    deactivated_count: int
    activated_count: int
    total: int
    success: bool

    def as_dict(self) -> dict:
        return asdict(self)


class PlanEnforcer:
    """
    Keeps a store's active product count within its plan quota.

    The newest products win: when a store holds more eligible products than
    its quota allows, the oldest surplus is switched off (never deleted).
    Products switched off by an earlier run come back when the quota grows.
    Products a seller paused by hand are left alone.
    """

    def __init__(self, stores: StoreRepository, products: ProductRepository,
                 now: Callable[[], datetime] = utcnow):
        self.stores = stores
        self.products = products
        self.now = now

    def enforce(self, store_id: int) -> EnforcementResult:
        store = self.stores.get(store_id)
        if store is None:
            raise NotFound("Store not found")

        limit = product_limit_for(store.subscription_plan)
        if store.product_limit != limit:
            logger.warning(
                "store %s product_limit drifted (%s), resetting to %s for plan %s",
                store.id, store.product_limit, limit, store.subscription_plan,
            )
            store.product_limit = limit

        # Oldest first; enforcement-deactivated products compete for slots again
        candidates = [
            p for p in self.products.list_for_store(store.id)
            if p.is_active or p.deactivated_at is not None
        ]
        cutoff = max(len(candidates) - limit, 0)
        surplus, keep = candidates[:cutoff], candidates[cutoff:]

        to_deactivate = [p.id for p in surplus if p.is_active]
        to_activate = [p.id for p in keep if not p.is_active]

        now = self.now()
        deactivated = self.products.set_active(to_deactivate, False, now)
        activated = self.products.set_active(to_activate, True, now)

        store.last_enforced_at = now
        self.stores.save(store)

        success = deactivated == len(to_deactivate) and activated == len(to_activate)
        if not success:
            logger.error(
                "store %s enforcement incomplete: deactivated %s/%s, activated %s/%s",
                store.id, deactivated, len(to_deactivate), activated, len(to_activate),
            )

        logger.info(
            "store %s plan=%s limit=%s kept=%s deactivated=%s activated=%s",
            store.id, store.subscription_plan, limit, len(keep), deactivated, activated,
        )
        return EnforcementResult(
            store_id=store.id,
            plan=store.subscription_plan,
            product_limit=limit,
            kept_count=len(keep),
            deactivated_count=deactivated,
            activated_count=activated,
            total=len(candidates),
            success=success,
        )
