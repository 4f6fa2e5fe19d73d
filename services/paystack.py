import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

import requests
from pydantic import BaseModel, Field

from core.config import settings
from core.exceptions import PaymentGatewayError, SignatureMismatch, ValidationError

logger = logging.getLogger(__name__)

PAYSTACK_BASE_URL = "https://api.paystack.co"
SIGNATURE_HEADER = "x-paystack-signature"


def _headers() -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {settings.PAYSTACK_SECRET_KEY}",
        "Content-Type": "application/json",
    }


def verify_transaction(reference: str) -> Dict[str, Any]:
    try:
        resp = requests.get(f"{PAYSTACK_BASE_URL}/transaction/verify/{reference}", headers=_headers(), timeout=20)
        resp.raise_for_status()
        return resp.json()
    except requests.RequestException as exc:
        logger.error("paystack verify for %s failed: %s", reference, exc)
        raise PaymentGatewayError("Failed to verify payment") from exc


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    if not signature or not secret:
        return False
    expected = compute_signature(body, secret).encode()
    return hmac.compare_digest(expected, signature.strip().lower().encode("utf-8", "replace"))


def _kobo(value: Any) -> Decimal:
    if value in (None, ""):
        return Decimal("0.00")
    return (Decimal(str(value)) / 100).quantize(Decimal("0.01"))


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class WebhookEvent(BaseModel):
    """An authenticated Paystack event. Amounts arrive in kobo."""

    event: str
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def reference(self) -> Optional[str]:
        # refund payloads carry the charge reference as transaction_reference
        ref = self.data.get("reference") or self.data.get("transaction_reference")
        return str(ref) if ref else None

    @property
    def amount(self) -> Decimal:
        return _kobo(self.data.get("amount"))

    @property
    def fees(self) -> Decimal:
        return _kobo(self.data.get("fees"))

    @property
    def currency(self) -> Optional[str]:
        return self.data.get("currency")

    @property
    def channel(self) -> str:
        return (self.data.get("channel") or "card").lower()

    @property
    def transaction_id(self) -> Optional[str]:
        tid = self.data.get("id")
        return str(tid) if tid is not None else None

    @property
    def paid_at(self) -> Optional[datetime]:
        return _parse_timestamp(
            self.data.get("paid_at") or self.data.get("paidAt") or self.data.get("transaction_date")
        )

    @property
    def metadata(self) -> Dict[str, Any]:
        meta = self.data.get("metadata")
        if isinstance(meta, str):
            # Paystack sometimes delivers metadata as a JSON string
            try:
                meta = json.loads(meta)
            except ValueError:
                return {}
        return meta if isinstance(meta, dict) else {}


def decode_event(body: bytes, signature: Optional[str], secret: str) -> WebhookEvent:
    """Authenticate the raw request body, then parse it.

    Raises SignatureMismatch before anything is parsed when the signature is
    missing or wrong, and ValidationError when a signed body is not an event.
    """
    if not verify_signature(body, signature, secret):
        raise SignatureMismatch("Invalid signature")
    try:
        payload = json.loads(body)
    except ValueError:
        raise ValidationError("Malformed webhook payload") from None
    if not isinstance(payload, dict) or not isinstance(payload.get("event"), str):
        raise ValidationError("Malformed webhook payload")
    data = payload.get("data")
    return WebhookEvent(event=payload["event"], data=data if isinstance(data, dict) else {})
