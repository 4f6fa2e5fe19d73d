from typing import List, Optional

from sqlalchemy.orm import Session, selectinload

from models.main_order import MainOrder
from models.order import Order


class SqlOrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, order_id: int) -> Optional[Order]:
        return (
            self.db.query(Order)
            .options(selectinload(Order.items))
            .filter(Order.id == order_id)
            .one_or_none()
        )

    def list_by_reference(self, reference: str) -> List[Order]:
        return (
            self.db.query(Order)
            .options(selectinload(Order.items))
            .filter(Order.reference == reference)
            .order_by(Order.id)
            .all()
        )

    def get_main_by_reference(self, reference: str) -> Optional[MainOrder]:
        return self.db.query(MainOrder).filter(MainOrder.reference == reference).one_or_none()

    def save(self, order: Order | MainOrder) -> None:
        self.db.add(order)
        self.db.flush()
