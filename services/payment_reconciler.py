import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from core.db import utcnow
from core.exceptions import AppError
from models.main_order import MainOrder
from models.order import Order
from repositories.interfaces import OrderRepository
from services.inventory import InventoryRestorer
from services.payment_logger import PaymentLogger
from services.paystack import WebhookEvent
from services.subscriptions import SubscriptionService

logger = logging.getLogger(__name__)

CHARGE_SUCCESS = "charge.success"
CHARGE_FAILED = "charge.failed"
REFUND_PROCESSED = "refund.processed"
TRANSFER_EVENTS = ("transfer.success", "transfer.failed", "transfer.reversed")

PAYMENT_METHODS = {
    "card": "card",
    "bank": "bank_transfer",
    "bank_transfer": "bank_transfer",
    "ussd": "ussd",
    "qr": "qr",
    "mobile_money": "mobile_money",
    "transfer": "transfer",
}

# payment status -> (allowed source status, fulfilment status)
TRANSITIONS = {
    "paid": ("pending", "processing"),
    "failed": ("pending", "cancelled"),
    "refunded": ("paid", "cancelled"),
}

AMOUNT_TOLERANCE = Decimal("0.01")


@dataclass
class ReconcileOutcome:
    action: str
    reference: Optional[str] = None
    updated_orders: List[int] = field(default_factory=list)
    message: str = ""


def payment_method_for(channel: str) -> str:
    return PAYMENT_METHODS.get(channel, "card")


class PaymentReconciler:
    """
    Applies verified Paystack events to local orders.

    Deliveries are at-least-once, so every write is a move towards a target
    state: records already in the target payment status are skipped, and
    transitions outside the payment state machine are ignored.
    """

    def __init__(self, orders: OrderRepository, audit: PaymentLogger,
                 subscriptions: Optional[SubscriptionService] = None,
                 inventory: Optional[InventoryRestorer] = None,
                 notifier=None, now: Callable[[], datetime] = utcnow):
        self.orders = orders
        self.audit = audit
        self.subscriptions = subscriptions
        self.inventory = inventory
        self.notifier = notifier
        self.now = now

    def reconcile(self, event: WebhookEvent, ip_address: Optional[str] = None) -> ReconcileOutcome:
        logger.info("webhook received: %s ref=%s", event.event, event.reference)

        if event.event == CHARGE_SUCCESS:
            return self._charge_success(event, ip_address)
        if event.event == CHARGE_FAILED:
            return self._charge_failed(event, ip_address)
        if event.event == REFUND_PROCESSED:
            return self._refund_processed(event, ip_address)
        if event.event in TRANSFER_EVENTS:
            logger.info("transfer event %s ignored", event.event)
        else:
            logger.info("unhandled webhook event %s ignored", event.event)
        return ReconcileOutcome(action="ignored", reference=event.reference,
                                message=f"Event {event.event} ignored")

    def _charge_success(self, event: WebhookEvent, ip_address: Optional[str]) -> ReconcileOutcome:
        reference = event.reference
        self.audit.log(reference, "webhook_charge_success", amount=event.amount, ip_address=ip_address,
                       details={"channel": event.channel, "status": event.data.get("status")})

        metadata = event.metadata
        if metadata.get("type") == "subscription":
            return self._subscription_payment(event, metadata)

        if not reference:
            return self._missing_reference(event)

        paid_at = event.paid_at or self.now()
        details = {
            "transaction_id": event.transaction_id,
            "amount": str(event.amount),
            "currency": event.currency,
            "channel": event.channel,
            "fees": str(event.fees),
            "paid_at": paid_at.isoformat(),
        }

        def apply(record: Order | MainOrder) -> None:
            record.paid_at = paid_at
            record.payment_details = dict(details)
            record.payment_method = payment_method_for(event.channel)

        sub_orders, main = self._load(reference)
        if not sub_orders and main is None:
            return self._orders_not_found(reference, event)

        if main is not None and abs(event.amount - Decimal(str(main.grand_total))) > AMOUNT_TOLERANCE:
            logger.warning("amount mismatch for %s: paid %s, expected %s", reference, event.amount, main.grand_total)
            self.audit.log(reference, "amount_mismatch", amount=event.amount,
                           expected_amount=Decimal(str(main.grand_total)),
                           details={"difference": str(abs(event.amount - Decimal(str(main.grand_total))))})

        updated = self._transition(reference, sub_orders, main, "paid", apply)
        main_was_updated = main is not None and main.id in updated.get("main", [])
        if main_was_updated and self.notifier is not None:
            try:
                self.notifier.payment_received(main)
            except Exception:
                logger.exception("payment notification for %s failed", reference)

        if not updated["orders"] and not main_was_updated:
            return ReconcileOutcome(action="paid", reference=reference, message="Payment already applied")

        self.audit.log(reference, "orders_marked_paid", amount=event.amount,
                       details={"orders": updated["orders"], "main_order": updated["main"]})
        return ReconcileOutcome(action="paid", reference=reference, updated_orders=updated["orders"],
                                message="Payment applied")

    def _charge_failed(self, event: WebhookEvent, ip_address: Optional[str]) -> ReconcileOutcome:
        reference = event.reference
        self.audit.log(reference, "webhook_charge_failed", ip_address=ip_address,
                       details={"status": event.data.get("status")})
        if not reference:
            return self._missing_reference(event)

        now = self.now()

        def apply(record: Order | MainOrder) -> None:
            record.cancelled_at = now

        sub_orders, main = self._load(reference)
        if not sub_orders and main is None:
            return self._orders_not_found(reference, event)

        updated = self._transition(reference, sub_orders, main, "failed", apply)
        return ReconcileOutcome(action="failed", reference=reference, updated_orders=updated["orders"],
                                message="Payment failure recorded")

    def _refund_processed(self, event: WebhookEvent, ip_address: Optional[str]) -> ReconcileOutcome:
        reference = event.reference
        self.audit.log(reference, "webhook_refund_processed", amount=event.amount, ip_address=ip_address)
        if not reference:
            return self._missing_reference(event)

        now = self.now()

        def apply(record: Order | MainOrder) -> None:
            record.cancelled_at = now
            if isinstance(record, Order):
                record.cancellation_reason = "Payment refunded"

        sub_orders, main = self._load(reference)
        if not sub_orders and main is None:
            return self._orders_not_found(reference, event)

        updated = self._transition(reference, sub_orders, main, "refunded", apply)

        if self.inventory is not None:
            for order in sub_orders:
                if order.payment_status == "refunded" and not order.inventory_restored:
                    result = self.inventory.restore(order.id, "Payment refunded")
                    if not result.success:
                        logger.warning("order %s refund restoration incomplete: %s", order.id, result.errors)
        return ReconcileOutcome(action="refunded", reference=reference, updated_orders=updated["orders"],
                                message="Refund recorded")

    def _subscription_payment(self, event: WebhookEvent, metadata: dict) -> ReconcileOutcome:
        reference = event.reference
        plan = metadata.get("plan")
        store_id = metadata.get("storeId") or metadata.get("store_id")
        if not plan or not store_id or not reference or self.subscriptions is None:
            logger.error("invalid subscription metadata for %s: %s", reference, metadata)
            self.audit.log(reference, "subscription_metadata_invalid", details={"metadata": metadata})
            return ReconcileOutcome(action="ignored", reference=reference, message="Invalid subscription metadata")

        try:
            result = self.subscriptions.apply_subscription_payment(
                int(store_id), plan, reference, event.amount, event.paid_at,
            )
        except (AppError, ValueError) as exc:
            logger.error("subscription payment %s not applied: %s", reference, exc)
            self.audit.log(reference, "subscription_update_failed", error=str(exc),
                           details={"plan": plan, "store_id": store_id})
            return ReconcileOutcome(action="ignored", reference=reference, message=str(exc))

        if result.applied:
            self.audit.log(reference, "subscription_updated", amount=event.amount,
                           details={"plan": plan, "store_id": int(store_id)})
            return ReconcileOutcome(action="subscription_updated", reference=reference,
                                    message=f"Store {store_id} subscribed to {plan}")
        return ReconcileOutcome(action="subscription_already_applied", reference=reference,
                                message="Subscription already processed")

    def _load(self, reference: str):
        return self.orders.list_by_reference(reference), self.orders.get_main_by_reference(reference)

    def _transition(self, reference: str, sub_orders: List[Order], main: Optional[MainOrder], target: str, apply) -> dict:
        source, fulfilment = TRANSITIONS[target]
        updated = {"orders": [], "main": []}
        records = [("orders", o) for o in sub_orders]
        if main is not None:
            records.append(("main", main))

        for kind, record in records:
            if record.payment_status == target:
                continue
            if record.payment_status != source:
                logger.warning(
                    "%s %s: ignoring %s -> %s transition",
                    kind, record.id, record.payment_status, target,
                )
                continue
            record.payment_status = target
            record.status = fulfilment
            apply(record)
            self.orders.save(record)
            updated[kind].append(record.id)

        logger.info("reference %s: %s sub-order(s) -> %s%s", reference,
                    len(updated["orders"]), target, " (aggregate updated)" if updated["main"] else "")
        return updated

    def _orders_not_found(self, reference: str, event: WebhookEvent) -> ReconcileOutcome:
        logger.warning("no orders found for reference %s (%s)", reference, event.event)
        self.audit.log(reference, "orders_not_found", details={"event": event.event})
        return ReconcileOutcome(action="orders_not_found", reference=reference,
                                message="No orders found for reference")

    def _missing_reference(self, event: WebhookEvent) -> ReconcileOutcome:
        logger.warning("%s event without reference ignored", event.event)
        return ReconcileOutcome(action="ignored", message="Event has no reference")
