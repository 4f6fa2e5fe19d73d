"""
Per-request wiring of repositories and services.

Everything here is built from the request's session, so a route sees one
unit of work and tests can override any single provider through
``app.dependency_overrides``.
"""
import logging
from typing import Callable, TypeVar

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from core.config import settings
from core.db import get_db
from core.exceptions import ConcurrentUpdateError
from repositories import (
    SqlOrderRepository,
    SqlPaymentAuditRepository,
    SqlProductRepository,
    SqlStoreRepository,
)
from services.email import EmailNotifier
from services.inventory import InventoryRestorer
from services.payment_logger import PaymentLogger
from services.payment_reconciler import PaymentReconciler
from services.plan_enforcer import PlanEnforcer
from services.rate_limit import WebhookRateLimiter
from services.subscriptions import SubscriptionService

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_notifier() -> EmailNotifier:
    return EmailNotifier()


def get_payment_logger(db: Session = Depends(get_db)) -> PaymentLogger:
    return PaymentLogger(SqlPaymentAuditRepository(db))


def get_plan_enforcer(db: Session = Depends(get_db)) -> PlanEnforcer:
    return PlanEnforcer(SqlStoreRepository(db), SqlProductRepository(db))


def get_subscription_service(
    db: Session = Depends(get_db),
    notifier: EmailNotifier = Depends(get_notifier),
) -> SubscriptionService:
    stores = SqlStoreRepository(db)
    return SubscriptionService(
        stores,
        PlanEnforcer(stores, SqlProductRepository(db)),
        period_days=settings.SUBSCRIPTION_PERIOD_DAYS,
        notifier=notifier,
    )


def get_inventory_restorer(db: Session = Depends(get_db)) -> InventoryRestorer:
    return InventoryRestorer(
        SqlOrderRepository(db),
        SqlProductRepository(db),
        audit=PaymentLogger(SqlPaymentAuditRepository(db)),
    )


def get_reconciler(
    db: Session = Depends(get_db),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
    inventory: InventoryRestorer = Depends(get_inventory_restorer),
    notifier: EmailNotifier = Depends(get_notifier),
) -> PaymentReconciler:
    return PaymentReconciler(
        SqlOrderRepository(db),
        PaymentLogger(SqlPaymentAuditRepository(db)),
        subscriptions=subscriptions,
        inventory=inventory,
        notifier=notifier,
    )


def get_rate_limiter(request: Request) -> WebhookRateLimiter:
    return WebhookRateLimiter(
        request.app.state.redis,
        limit=settings.WEBHOOK_RATE_LIMIT,
        window_seconds=settings.WEBHOOK_RATE_WINDOW_SECONDS,
    )


def run_with_retry(db: Session, operation: Callable[[], T], attempts: int | None = None) -> T:
    """Run a read-modify-write and commit it, retrying lost optimistic locks.

    The operation must re-read everything it mutates; the session is rolled
    back between attempts.
    """
    attempts = attempts or settings.ENFORCEMENT_MAX_RETRIES
    attempt = 0
    while True:
        attempt += 1
        try:
            result = operation()
            db.commit()
            return result
        except ConcurrentUpdateError as exc:
            db.rollback()
            if attempt >= attempts:
                logger.error("giving up after %d attempts: %s", attempt, exc)
                raise
            logger.info("optimistic lock lost (attempt %d/%d), retrying: %s", attempt, attempts, exc)
        except Exception:
            db.rollback()
            raise
