import pytest
from decimal import Decimal
from sqlalchemy.exc import IntegrityError

from core.db import Base, build_session_factory, create_db_engine
from models.main_order import MainOrder
from models.order import Order
from models.order_item import OrderItem
from models.product import Product
from models.store import Store
from models.user import User


@pytest.fixture
def db_session():
    """Create a test database session"""
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    session = build_session_factory(engine)()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def seller(db_session):
    user = User(first_name="Bola", last_name="Ade", email="bola@example.com", role="seller")
    db_session.add(user)
    db_session.commit()
    return user


class TestUser:
    """Test cases for User model"""

    def test_defaults(self, db_session):
        user = User(first_name="Jane", last_name="Smith", email="jane@example.com")
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)

        assert user.role == "buyer"
        assert user.is_active is True
        assert user.is_admin is False
        assert user.created_at is not None

    def test_unique_email(self, db_session, seller):
        db_session.add(User(first_name="Copy", last_name="Cat", email="bola@example.com"))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()


class TestStore:
    """Test cases for Store model"""

    def test_defaults(self, db_session, seller):
        store = Store(name="Bola Wears", slug="bola-wears", seller_id=seller.id)
        db_session.add(store)
        db_session.commit()
        db_session.refresh(store)

        assert store.subscription_plan == "free"
        assert store.product_limit == 10
        assert store.subscription_status is None
        assert store.version == 1

    def test_version_counts_updates(self, db_session, seller):
        store = Store(name="Bola Wears", slug="bola-wears", seller_id=seller.id)
        db_session.add(store)
        db_session.commit()

        store.is_published = True
        db_session.commit()
        store.is_approved = True
        db_session.commit()

        assert store.version == 3


class TestOrders:
    """Test cases for order models"""

    def test_order_items_and_aggregate(self, db_session, seller):
        store = Store(name="Bola Wears", slug="bola-wears", seller_id=seller.id)
        product = Product(store=store, name="Kaftan", price=Decimal("8000.00"))
        main = MainOrder(order_number="ORD-1", reference="REF-1", email="b@example.com",
                         grand_total=Decimal("8000.00"))
        order = Order(store=store, main_order=main, reference="REF-1", email="b@example.com",
                      total_price=Decimal("8000.00"))
        db_session.add_all([product, order])
        db_session.flush()
        order.items.append(OrderItem(product_id=product.id, product_name="Kaftan", quantity=1,
                                     price_at_purchase=Decimal("8000.00")))
        db_session.commit()
        db_session.refresh(order)

        assert order.status == "pending"
        assert order.payment_status == "pending"
        assert order.inventory_restored is False
        assert order.items[0].restored_quantity == 0
        assert main.sub_orders == [order]
        assert product.is_active is True
        assert product.deactivated_at is None

    def test_reference_unique_per_store(self, db_session, seller):
        store = Store(name="Bola Wears", slug="bola-wears", seller_id=seller.id)
        db_session.add_all([
            Order(store=store, reference="DUP", email="x@example.com"),
            Order(store=store, reference="DUP", email="x@example.com"),
        ])
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()
