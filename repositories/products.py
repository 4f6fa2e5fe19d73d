from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from models.product import Product


class SqlProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, product_id: int) -> Optional[Product]:
        return self.db.get(Product, product_id)

    def list_for_store(self, store_id: int) -> List[Product]:
        return (
            self.db.query(Product)
            .filter(Product.store_id == store_id, Product.is_deleted.is_(False))
            .order_by(Product.created_at.asc(), Product.id.asc())
            .all()
        )

    def count_active(self, store_id: int) -> int:
        return self.db.query(func.count(Product.id)).filter(
            Product.store_id == store_id,
            Product.is_active.is_(True),
            Product.is_deleted.is_(False),
        ).scalar()

    def add(self, product: Product) -> Product:
        self.db.add(product)
        self.db.flush()
        return product

    def set_active(self, product_ids: Iterable[int], active: bool, at: datetime) -> int:
        ids = list(product_ids)
        if not ids:
            return 0
        stmt = (
            update(Product)
            .where(Product.id.in_(ids), Product.is_deleted.is_(False))
            .values(
                is_active=active,
                deactivated_at=None if active else at,
                updated_at=at,
            )
            .execution_options(synchronize_session="fetch")
        )
        result = self.db.execute(stmt)
        return result.rowcount

    def increment_stock(self, product_id: int, quantity: int) -> Optional[Product]:
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.is_deleted.is_(False))
            .values(inventory_quantity=Product.inventory_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount == 0:
            return None
        return self.db.get(Product, product_id, populate_existing=True)
