"""
Repository contracts used by the subscription and payment services.

Services depend on these protocols only, so the enforcement and
reconciliation rules can run against SQLAlchemy in production and against
in-memory fakes in unit tests.
"""
from datetime import datetime
from typing import Iterable, List, Optional, Protocol, runtime_checkable

from models.main_order import MainOrder
from models.order import Order
from models.payment_audit import PaymentAudit
from models.product import Product
from models.store import Store


@runtime_checkable
class StoreRepository(Protocol):
    def get(self, store_id: int) -> Optional[Store]:
        ...

    def save(self, store: Store) -> None:
        """Persist pending changes; raises ConcurrentUpdateError if the row moved on."""
        ...

    def touch(self, store: Store) -> None:
        """Mark the store row as changed so concurrent enforcement runs notice."""
        ...


@runtime_checkable
class ProductRepository(Protocol):
    def get(self, product_id: int) -> Optional[Product]:
        ...

    def list_for_store(self, store_id: int) -> List[Product]:
        """Non-deleted products of a store, oldest first."""
        ...

    def count_active(self, store_id: int) -> int:
        ...

    def add(self, product: Product) -> Product:
        ...

    def set_active(self, product_ids: Iterable[int], active: bool, at: datetime) -> int:
        """Flip the active flag; returns how many rows were written."""
        ...

    def increment_stock(self, product_id: int, quantity: int) -> Optional[Product]:
        ...


@runtime_checkable
class OrderRepository(Protocol):
    def get(self, order_id: int) -> Optional[Order]:
        ...

    def list_by_reference(self, reference: str) -> List[Order]:
        ...

    def get_main_by_reference(self, reference: str) -> Optional[MainOrder]:
        ...

    def save(self, order: Order | MainOrder) -> None:
        ...


@runtime_checkable
class PaymentAuditRepository(Protocol):
    def add(self, entry: PaymentAudit) -> None:
        ...

    def list_for_reference(self, reference: str) -> List[PaymentAudit]:
        """Newest first."""
        ...

    def count_events_since(self, event: str, since: datetime) -> int:
        ...
