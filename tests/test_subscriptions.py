import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import Mock

from core.exceptions import NotFound, ValidationError
from models.product import Product
from models.store import Store
from services.plan_enforcer import PlanEnforcer
from services.subscriptions import SubscriptionService

from fakes import FakeProductRepository, FakeStoreRepository

NOW = datetime(2025, 6, 15, 12, 0, 0)


def _store(**fields):
    defaults = dict(
        id=1,
        name="Kemi Stores",
        slug="kemi-stores",
        seller_id=3,
        email="kemi@example.com",
        subscription_plan="free",
        product_limit=10,
        version=1,
    )
    defaults.update(fields)
    return Store(**defaults)


def _products(count):
    return [
        Product(
            id=i + 1,
            store_id=1,
            name=f"Item {i + 1}",
            price=Decimal("100.00"),
            inventory_quantity=1,
            is_active=True,
            is_deleted=False,
            deactivated_at=None,
            created_at=datetime(2025, 1, 1) + timedelta(days=i),
        )
        for i in range(count)
    ]


@pytest.fixture
def notifier():
    return Mock()


def _service(store, products=(), notifier=None):
    stores = FakeStoreRepository(store)
    repo = FakeProductRepository(*products)
    enforcer = PlanEnforcer(stores, repo, now=lambda: NOW)
    return SubscriptionService(stores, enforcer, period_days=30, now=lambda: NOW, notifier=notifier), repo


class TestCheckAndEnforce:
    """Expiry check followed by quota enforcement"""

    def test_expired_plan_downgraded(self, notifier):
        store = _store(
            subscription_plan="standard",
            product_limit=50,
            subscription_status="active",
            subscription_start_date=NOW - timedelta(days=31),
            subscription_end_date=NOW - timedelta(days=1),
            last_payment_reference="SUB-1",
        )
        service, repo = _service(store, _products(15), notifier)

        result = service.check_and_enforce(1)

        assert result.action == "downgraded"
        assert result.was_downgraded
        assert store.subscription_plan == "free"
        assert store.product_limit == 10
        assert store.subscription_status == "expired"
        assert store.subscription_start_date is None
        assert store.subscription_end_date is None
        assert store.last_payment_reference is None
        assert result.enforcement.deactivated_count == 5
        assert repo.count_active(1) == 10
        assert result.previous_plan == "standard"
        notifier.subscription_downgraded.assert_not_called()

        service.notify_downgrade(1, result)
        notifier.subscription_downgraded.assert_called_once_with(store, "standard")

    def test_current_plan_only_enforced(self, notifier):
        store = _store(
            subscription_plan="basic",
            product_limit=30,
            subscription_status="active",
            subscription_end_date=NOW + timedelta(days=3),
        )
        service, repo = _service(store, _products(32), notifier)

        result = service.check_and_enforce(1)

        assert result.action == "checked"
        assert store.subscription_plan == "basic"
        assert result.enforcement.deactivated_count == 2
        service.notify_downgrade(1, result)
        notifier.subscription_downgraded.assert_not_called()

    def test_downgrade_notification_failure_logged(self, notifier):
        store = _store(subscription_plan="basic", product_limit=30, subscription_end_date=NOW - timedelta(days=2))
        notifier.subscription_downgraded.side_effect = RuntimeError("smtp down")
        service, _ = _service(store, notifier=notifier)

        result = service.check_and_enforce(1)
        service.notify_downgrade(1, result)

        assert store.subscription_plan == "free"

    def test_free_plan_never_downgraded(self):
        store = _store(subscription_end_date=NOW - timedelta(days=10))
        service, _ = _service(store)

        assert service.check_and_enforce(1).action == "checked"

    def test_paid_plan_without_end_date_kept(self):
        store = _store(subscription_plan="premium", product_limit=100, subscription_end_date=None)
        service, _ = _service(store)

        assert service.check_and_enforce(1).plan == "premium"

    def test_missing_store(self):
        service, _ = _service(_store())
        with pytest.raises(NotFound):
            service.check_and_enforce(99)


class TestChangePlan:
    """Manual plan changes"""

    def test_upgrade_sets_window_and_reactivates(self):
        store = _store()
        service, repo = _service(store, _products(12))
        service.check_and_enforce(1)
        assert repo.count_active(1) == 10

        end = NOW + timedelta(days=30)
        result = service.change_plan(1, "basic", NOW, end)

        assert result.applied
        assert result.product_limit == 30
        assert store.subscription_status == "active"
        assert store.subscription_end_date == end
        assert result.enforcement.activated_count == 2
        assert repo.count_active(1) == 12

    def test_downgrade_to_free_clears_window(self):
        store = _store(subscription_plan="basic", product_limit=30, subscription_status="active",
                       subscription_start_date=NOW, subscription_end_date=NOW + timedelta(days=30))
        service, _ = _service(store)

        service.change_plan(1, "free")

        assert store.subscription_status is None
        assert store.subscription_start_date is None
        assert store.subscription_end_date is None

    def test_invalid_plan(self):
        service, _ = _service(_store())
        with pytest.raises(ValidationError):
            service.change_plan(1, "platinum")

    def test_end_before_start(self):
        service, _ = _service(_store())
        with pytest.raises(ValidationError):
            service.change_plan(1, "basic", NOW, NOW - timedelta(days=1))


class TestSubscriptionPayment:
    """Plan activation from a Paystack subscription charge"""

    def test_payment_activates_plan(self):
        store = _store()
        service, _ = _service(store)
        paid_at = datetime(2025, 6, 14, 8, 0, 0)

        result = service.apply_subscription_payment(1, "standard", "SUB-REF-1", Decimal("15000.00"), paid_at)

        assert result.applied
        assert store.subscription_plan == "standard"
        assert store.product_limit == 50
        assert store.subscription_start_date == paid_at
        assert store.subscription_end_date == paid_at + timedelta(days=30)
        assert store.last_payment_reference == "SUB-REF-1"
        assert store.last_payment_amount == Decimal("15000.00")

    def test_same_reference_applied_once(self):
        store = _store()
        service, _ = _service(store)
        service.apply_subscription_payment(1, "basic", "SUB-REF-2", Decimal("5000"), NOW)
        first_end = store.subscription_end_date

        again = service.apply_subscription_payment(1, "basic", "SUB-REF-2", Decimal("5000"), NOW + timedelta(days=2))

        assert again.applied is False
        assert store.subscription_end_date == first_end

    def test_free_plan_payment_rejected(self):
        service, _ = _service(_store())
        with pytest.raises(ValidationError):
            service.apply_subscription_payment(1, "free", "SUB-REF-3", Decimal("0"))
