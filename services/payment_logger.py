import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from core.db import utcnow
from models.payment_audit import PaymentAudit
from repositories.interfaces import PaymentAuditRepository

logger = logging.getLogger(__name__)

SUSPICIOUS_EVENTS = ("amount_mismatch", "rate_limit_hit", "webhook_invalid_signature")


class PaymentLogger:
    """Payment audit trail. Entries join the caller's transaction."""

    def __init__(self, audit: PaymentAuditRepository, now: Callable[[], datetime] = utcnow):
        self.audit = audit
        self.now = now

    def log(self, reference: Optional[str], event: str, *,
            amount: Optional[Decimal] = None,
            expected_amount: Optional[Decimal] = None,
            details: Optional[Dict[str, Any]] = None,
            user_id: Optional[int] = None,
            ip_address: Optional[str] = None,
            error: Optional[str] = None) -> PaymentAudit:
        entry = PaymentAudit(
            reference=reference or "unknown",
            event=event,
            amount=amount,
            expected_amount=expected_amount,
            details=details,
            user_id=user_id,
            ip_address=ip_address,
            error=error,
            created_at=self.now(),
        )
        self.audit.add(entry)
        logger.debug("payment audit %s ref=%s", event, entry.reference)
        return entry

    def audit_trail(self, reference: str) -> List[PaymentAudit]:
        return self.audit.list_for_reference(reference)

    def suspicious_activity(self, hours: int = 24) -> Dict[str, Any]:
        since = self.now() - timedelta(hours=hours)
        counts = {event: self.audit.count_events_since(event, since) for event in SUSPICIOUS_EVENTS}
        return {
            "period": f"Last {hours} hours",
            "amount_mismatches": counts["amount_mismatch"],
            "rate_limit_hits": counts["rate_limit_hit"],
            "verification_failures": counts["webhook_invalid_signature"],
            "total_suspicious_events": sum(counts.values()),
        }
