import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.orm import Session

from core.config import settings
from core.db import get_db
from core.deps import get_payment_logger, get_rate_limiter, get_reconciler, run_with_retry
from core.exceptions import SignatureMismatch, ValidationError
from core.tenancy import get_optional_user
from models.main_order import MainOrder
from models.order import Order
from models.store import Store
from models.user import User
from schemas.webhook import PaymentVerification, WebhookAck
from services.payment_logger import PaymentLogger
from services.payment_reconciler import PaymentReconciler
from services.paystack import WebhookEvent, decode_event, verify_transaction
from services.rate_limit import WebhookRateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def raw_body(request: Request) -> bytes:
    """The exact bytes Paystack signed."""
    return await request.body()


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post("/paystack", response_model=WebhookAck)
def paystack_webhook(
    request: Request,
    body: bytes = Depends(raw_body),
    x_paystack_signature: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    audit: PaymentLogger = Depends(get_payment_logger),
    limiter: WebhookRateLimiter = Depends(get_rate_limiter),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    ip = client_ip(request)
    try:
        event = decode_event(body, x_paystack_signature, settings.PAYSTACK_SECRET_KEY)
    except SignatureMismatch:
        logger.warning("webhook signature rejected from %s", ip)
        audit.log(None, "webhook_invalid_signature", ip_address=ip,
                  details={"signature_present": bool(x_paystack_signature)})
        db.commit()
        raise
    except ValidationError:
        logger.warning("malformed webhook payload from %s", ip)
        raise

    if event.reference and not limiter.allow(event.reference):
        audit.log(event.reference, "rate_limit_hit", ip_address=ip, details={"event": event.event})
        db.commit()
        return WebhookAck(status="ignored", message="Rate limit exceeded")

    try:
        outcome = run_with_retry(db, lambda: reconciler.reconcile(event, ip_address=ip))
    except Exception as exc:
        # always acknowledged; the failure is kept in the audit trail
        logger.exception("webhook %s for %s failed", event.event, event.reference)
        db.rollback()
        audit.log(event.reference, "webhook_processing_error", ip_address=ip, error=str(exc),
                  details={"event": event.event})
        db.commit()
        return WebhookAck(status="error_logged", message="Webhook received, processing failed")

    return WebhookAck(status="success", message=outcome.message, action=outcome.action)


@router.get("/paystack/verify", response_model=PaymentVerification, response_model_exclude_none=True)
def verify_payment(
    reference: str = Query(..., min_length=1),
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    resp = verify_transaction(reference)
    data = resp.get("data") or {}
    if not resp.get("status") or data.get("status") != "success":
        raise ValidationError("Payment was not successful")

    event = WebhookEvent(event="verify", data=data)
    amount = event.amount
    metadata = event.metadata

    if metadata.get("type") == "subscription":
        plan = metadata.get("plan")
        store_id = metadata.get("storeId") or metadata.get("store_id")
        if not plan or not store_id:
            raise ValidationError("Invalid subscription metadata")
        try:
            store_id = int(store_id)
        except (TypeError, ValueError):
            raise ValidationError("Invalid subscription metadata") from None
        store = db.get(Store, store_id)
        return PaymentVerification(
            reference=reference,
            message="Subscription payment verified",
            payment_status="success",
            amount=amount,
            type="subscription",
            plan=plan,
            store_id=store_id,
            subscription_updated=store is not None and store.last_payment_reference == reference,
        )

    sub_orders = db.query(Order).filter(Order.reference == reference).all()
    if not sub_orders:
        return PaymentVerification(
            reference=reference,
            message="Payment verified, order being processed",
            payment_status="success",
            amount=amount,
            order_exists=False,
        )

    result = PaymentVerification(
        reference=reference,
        message="Payment verified and order created",
        payment_status="success",
        amount=amount,
        order_exists=True,
        sub_order_count=len(sub_orders),
    )
    # Order details only for signed-in callers
    if user is not None:
        main = db.query(MainOrder).filter(MainOrder.reference == reference).one_or_none()
        if main is not None:
            result.order_number = main.order_number
            result.order_status = main.status
            result.grand_total = main.grand_total
            result.created_at = main.created_at
    return result
