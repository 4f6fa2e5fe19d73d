import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from core.exceptions import Forbidden, NotFound
from core.tenancy import ensure_store_access, get_current_user, is_store_owner
from models.product import Product
from models.store import Store
from models.user import User
from repositories import SqlProductRepository, SqlStoreRepository
from schemas.product import ProductCreate, ProductOut, StoreProductsOut
from services.plans import product_limit_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stores/{store_id}/products", tags=["products"])


@router.get("", response_model=StoreProductsOut)
def list_products(store_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    store = db.get(Store, store_id)
    if not store:
        raise NotFound("Store not found")
    ensure_store_access(user, store)

    products = SqlProductRepository(db)
    return {
        "store_id": store.id,
        "plan": store.subscription_plan,
        "product_limit": product_limit_for(store.subscription_plan),
        "active_count": products.count_active(store.id),
        "products": products.list_for_store(store.id),
    }


@router.post("", response_model=ProductOut, status_code=201)
def create_product(store_id: int, data: ProductCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    stores = SqlStoreRepository(db)
    products = SqlProductRepository(db)

    store = stores.get(store_id)
    if not store:
        raise NotFound("Store not found")
    if not is_store_owner(user, store):
        raise Forbidden("Only the store owner can add products")

    if data.is_active and products.count_active(store.id) >= product_limit_for(store.subscription_plan):
        logger.info("store %s at product limit (%s)", store.id, store.subscription_plan)
        raise Forbidden("Product limit reached. Upgrade your plan to add more products.")

    product = products.add(Product(
        store_id=store.id,
        name=data.name,
        price=data.price,
        inventory_quantity=data.inventory_quantity,
        is_active=data.is_active,
    ))
    # Bumps the store version so an enforcement run in flight retries
    stores.touch(store)
    db.commit()
    db.refresh(product)
    return product
