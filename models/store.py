from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base, utcnow


class Store(Base):
    __tablename__ = "stores"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(150), unique=True)
    slug: Mapped[str] = mapped_column(String(170), unique=True, index=True)
    seller_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Status
    is_published: Mapped[bool] = mapped_column(Boolean, default=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False)

    # Subscription & limits
    subscription_plan: Mapped[str] = mapped_column(String(20), default="free")  # free, basic, standard, premium
    product_limit: Mapped[int] = mapped_column(Integer, default=10)
    subscription_status: Mapped[str | None] = mapped_column(String(20), nullable=True)  # active, expired
    subscription_start_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    subscription_end_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    last_payment_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    last_payment_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_enforced_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Bumped on every flush; guards the enforcement read-modify-write
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    seller = relationship("User")

    __mapper_args__ = {"version_id_col": version}
