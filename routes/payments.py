from typing import List

from fastapi import APIRouter, Depends, Query

from core.deps import get_payment_logger
from core.tenancy import require_admin
from models.user import User
from schemas.audit import PaymentAuditOut, SuspiciousActivityOut
from services.payment_logger import PaymentLogger

router = APIRouter(prefix="/admin/payments", tags=["admin"])


@router.get("/suspicious", response_model=SuspiciousActivityOut)
def suspicious_activity(
    hours: int = Query(24, ge=1, le=24 * 30),
    admin: User = Depends(require_admin),
    audit: PaymentLogger = Depends(get_payment_logger),
):
    return audit.suspicious_activity(hours)


@router.get("/{reference}/audit", response_model=List[PaymentAuditOut])
def audit_trail(
    reference: str,
    admin: User = Depends(require_admin),
    audit: PaymentLogger = Depends(get_payment_logger),
):
    return audit.audit_trail(reference)
