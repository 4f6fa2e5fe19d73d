from datetime import datetime
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session

from models.payment_audit import PaymentAudit


class SqlPaymentAuditRepository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, entry: PaymentAudit) -> None:
        self.db.add(entry)

    def list_for_reference(self, reference: str) -> List[PaymentAudit]:
        return (
            self.db.query(PaymentAudit)
            .filter(PaymentAudit.reference == reference)
            .order_by(PaymentAudit.created_at.desc(), PaymentAudit.id.desc())
            .all()
        )

    def count_events_since(self, event: str, since: datetime) -> int:
        return self.db.query(func.count(PaymentAudit.id)).filter(
            PaymentAudit.event == event,
            PaymentAudit.created_at >= since,
        ).scalar()
