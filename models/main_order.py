from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, Numeric, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base, utcnow


class MainOrder(Base):
    """Parent record spanning every per-store sub-order of one checkout."""

    __tablename__ = "main_orders"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int | None] = mapped_column(nullable=True, index=True)
    order_number: Mapped[str] = mapped_column(String(30), unique=True)
    reference: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    delivery_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    grand_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    # pending, confirmed, processing, shipped, delivered, cancelled
    status: Mapped[str] = mapped_column(String(20), default="pending")
    payment_status: Mapped[str] = mapped_column(String(20), default="pending")
    payment_method: Mapped[str] = mapped_column(String(30), default="card")
    paid_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    payment_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    sub_orders = relationship("Order", back_populates="main_order")
