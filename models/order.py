from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Numeric, Boolean, JSON, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base, utcnow


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (UniqueConstraint("store_id", "reference", name="uq_orders_store_reference"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    main_order_id: Mapped[int | None] = mapped_column(ForeignKey("main_orders.id", ondelete="SET NULL"), nullable=True, index=True)
    store_id: Mapped[int] = mapped_column(ForeignKey("stores.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int | None] = mapped_column(nullable=True, index=True)
    reference: Mapped[str] = mapped_column(String(100), index=True)
    email: Mapped[str] = mapped_column(String(255))
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    # pending, processing, shipped, delivered, cancelled
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    # pending, paid, failed, refunded
    payment_status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    payment_method: Mapped[str] = mapped_column(String(30), default="card")
    paid_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    payment_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    inventory_restored: Mapped[bool] = mapped_column(Boolean, default=False)
    inventory_restored_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    inventory_restoration: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    store = relationship("Store")
    main_order = relationship("MainOrder", back_populates="sub_orders")
    items = relationship("OrderItem", cascade="all, delete-orphan", back_populates="order", order_by="OrderItem.id")
