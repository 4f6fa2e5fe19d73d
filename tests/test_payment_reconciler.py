import pytest
from datetime import datetime
from decimal import Decimal
from unittest.mock import Mock

from models.main_order import MainOrder
from models.order import Order
from models.order_item import OrderItem
from models.product import Product
from services.inventory import InventoryRestorer
from services.payment_logger import PaymentLogger
from services.payment_reconciler import PaymentReconciler, payment_method_for
from services.paystack import WebhookEvent

from fakes import FakeAuditRepository, FakeOrderRepository, FakeProductRepository

NOW = datetime(2025, 5, 5, 10, 0, 0)
REF = "PSK-REF-001"


def _main(payment_status="pending", status="pending", grand_total="25000.00"):
    return MainOrder(
        id=1,
        order_number="ORD-0001",
        reference=REF,
        email="buyer@example.com",
        grand_total=Decimal(grand_total),
        status=status,
        payment_status=payment_status,
        payment_method="card",
    )


def _order(order_id, store_id, payment_status="pending", status="pending", items=()):
    order = Order(
        id=order_id,
        main_order_id=1,
        store_id=store_id,
        reference=REF,
        email="buyer@example.com",
        total_price=Decimal("12500.00"),
        status=status,
        payment_status=payment_status,
        payment_method="card",
        inventory_restored=False,
    )
    order.items = list(items)
    return order


def _event(name, **data):
    payload = {"reference": REF, "amount": 2500000, "channel": "card", "id": 77}
    payload.update(data)
    return WebhookEvent(event=name, data=payload)


def _reconciler(orders, mains, products=(), subscriptions=None, notifier=None):
    order_repo = FakeOrderRepository(orders, mains)
    audit_repo = FakeAuditRepository()
    audit = PaymentLogger(audit_repo, now=lambda: NOW)
    product_repo = FakeProductRepository(*products)
    inventory = InventoryRestorer(order_repo, product_repo, audit=audit, now=lambda: NOW)
    reconciler = PaymentReconciler(order_repo, audit, subscriptions=subscriptions, inventory=inventory,
                                   notifier=notifier, now=lambda: NOW)
    return reconciler, order_repo, audit_repo, product_repo


class TestChargeSuccess:
    """charge.success marks every sub-order and the aggregate paid"""

    def test_marks_all_paid(self):
        orders = [_order(1, 10), _order(2, 11)]
        main = _main()
        notifier = Mock()
        reconciler, _, audit, _ = _reconciler(orders, [main], notifier=notifier)

        outcome = reconciler.reconcile(_event("charge.success", paid_at="2025-05-05T09:59:00Z", channel="ussd"))

        assert outcome.action == "paid"
        assert outcome.updated_orders == [1, 2]
        for record in orders + [main]:
            assert record.payment_status == "paid"
            assert record.status == "processing"
            assert record.paid_at == datetime(2025, 5, 5, 9, 59, 0)
            assert record.payment_method == "ussd"
            assert record.payment_details["transaction_id"] == "77"
        notifier.payment_received.assert_called_once_with(main)
        assert "orders_marked_paid" in audit.events()

    def test_duplicate_delivery_changes_nothing(self):
        orders = [_order(1, 10)]
        main = _main()
        notifier = Mock()
        reconciler, repo, audit, _ = _reconciler(orders, [main], notifier=notifier)
        reconciler.reconcile(_event("charge.success"))
        first_details = dict(orders[0].payment_details)
        saves = len(repo.saved)

        outcome = reconciler.reconcile(_event("charge.success", id=78))

        assert outcome.message == "Payment already applied"
        assert orders[0].payment_details == first_details
        assert len(repo.saved) == saves
        assert audit.events().count("orders_marked_paid") == 1
        notifier.payment_received.assert_called_once()

    def test_amount_mismatch_audited_not_blocking(self):
        orders = [_order(1, 10)]
        main = _main(grand_total="30000.00")
        reconciler, _, audit, _ = _reconciler(orders, [main])

        reconciler.reconcile(_event("charge.success"))

        mismatch = [e for e in audit.entries if e.event == "amount_mismatch"]
        assert len(mismatch) == 1
        assert mismatch[0].expected_amount == Decimal("30000.00")
        assert mismatch[0].amount == Decimal("25000.00")
        assert main.payment_status == "paid"

    def test_failed_order_not_flipped_to_paid(self):
        orders = [_order(1, 10, payment_status="failed", status="cancelled")]
        reconciler, _, _, _ = _reconciler(orders, [_main(payment_status="failed", status="cancelled")])

        reconciler.reconcile(_event("charge.success"))

        assert orders[0].payment_status == "failed"

    def test_notification_failure_does_not_fail_payment(self):
        notifier = Mock()
        notifier.payment_received.side_effect = RuntimeError("smtp down")
        main = _main()
        reconciler, _, _, _ = _reconciler([_order(1, 10)], [main], notifier=notifier)

        outcome = reconciler.reconcile(_event("charge.success"))

        assert outcome.action == "paid"
        assert main.payment_status == "paid"

    def test_subscription_charge_delegated(self):
        subscriptions = Mock()
        subscriptions.apply_subscription_payment.return_value = Mock(applied=True)
        reconciler, _, audit, _ = _reconciler([], [], subscriptions=subscriptions)

        outcome = reconciler.reconcile(_event(
            "charge.success", reference="SUB-9", metadata={"type": "subscription", "plan": "basic", "storeId": "4"},
        ))

        assert outcome.action == "subscription_updated"
        args = subscriptions.apply_subscription_payment.call_args[0]
        assert args[:3] == (4, "basic", "SUB-9")
        assert "subscription_updated" in audit.events()

    def test_subscription_without_store_acknowledged(self):
        subscriptions = Mock()
        reconciler, _, audit, _ = _reconciler([], [], subscriptions=subscriptions)

        outcome = reconciler.reconcile(_event("charge.success", metadata={"type": "subscription", "plan": "basic"}))

        assert outcome.action == "ignored"
        subscriptions.apply_subscription_payment.assert_not_called()
        assert "subscription_metadata_invalid" in audit.events()


class TestChargeFailed:
    """charge.failed cancels pending orders"""

    def test_both_sub_orders_failed(self):
        orders = [_order(1, 10), _order(2, 11)]
        main = _main()
        reconciler, _, _, _ = _reconciler(orders, [main])

        outcome = reconciler.reconcile(_event("charge.failed"))

        assert outcome.action == "failed"
        for record in orders + [main]:
            assert record.payment_status == "failed"
            assert record.status == "cancelled"
            assert record.cancelled_at == NOW

    def test_paid_order_left_alone(self):
        orders = [_order(1, 10, payment_status="paid", status="processing")]
        reconciler, _, _, _ = _reconciler(orders, [_main(payment_status="paid", status="processing")])

        outcome = reconciler.reconcile(_event("charge.failed"))

        assert outcome.updated_orders == []
        assert orders[0].payment_status == "paid"


class TestRefundProcessed:
    """refund.processed refunds paid orders and returns their stock"""

    def test_refund_restores_inventory_once(self):
        product = Product(id=5, store_id=10, name="Ankara Dress", price=Decimal("12500.00"),
                          inventory_quantity=3, is_active=True, is_deleted=False)
        item = OrderItem(id=1, product_id=5, product_name="Ankara Dress", quantity=2,
                         price_at_purchase=Decimal("12500.00"), restored_quantity=0)
        orders = [_order(1, 10, payment_status="paid", status="processing", items=[item])]
        main = _main(payment_status="paid", status="processing")
        reconciler, _, audit, _ = _reconciler(orders, [main], products=[product])

        event = _event("refund.processed", reference=None, transaction_reference=REF)
        outcome = reconciler.reconcile(event)
        reconciler.reconcile(event)

        assert outcome.action == "refunded"
        assert orders[0].payment_status == "refunded"
        assert orders[0].status == "cancelled"
        assert orders[0].inventory_restored is True
        assert product.inventory_quantity == 5
        assert audit.events().count("inventory_restored") == 1


class TestOtherEvents:
    """Everything else is acknowledged"""

    @pytest.mark.parametrize("name", ["transfer.success", "transfer.reversed", "subscription.create"])
    def test_ignored(self, name):
        orders = [_order(1, 10)]
        reconciler, repo, _, _ = _reconciler(orders, [_main()])

        outcome = reconciler.reconcile(_event(name))

        assert outcome.action == "ignored"
        assert repo.saved == []
        assert orders[0].payment_status == "pending"

    def test_unknown_reference(self):
        reconciler, _, audit, _ = _reconciler([], [])

        outcome = reconciler.reconcile(_event("charge.success", reference="NOPE"))

        assert outcome.action == "orders_not_found"
        assert "orders_not_found" in audit.events()

    def test_payment_method_mapping(self):
        assert payment_method_for("bank") == "bank_transfer"
        assert payment_method_for("mobile_money") == "mobile_money"
        assert payment_method_for("apple_pay") == "card"
