from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from core.db import utcnow
from core.exceptions import ConcurrentUpdateError
from models.store import Store


class SqlStoreRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, store_id: int) -> Optional[Store]:
        return self.db.get(Store, store_id, populate_existing=True)

    def save(self, store: Store) -> None:
        # a failed flush expires the instance
        store_id = store.id
        self.db.add(store)
        try:
            self.db.flush()
        except StaleDataError as exc:
            raise ConcurrentUpdateError(f"Store {store_id} was modified concurrently") from exc

    def touch(self, store: Store) -> None:
        store.updated_at = utcnow()
        self.save(store)
