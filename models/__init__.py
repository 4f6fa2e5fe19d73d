# Import models so that SQLAlchemy metadata includes them on app startup
from .user import User  # noqa: F401
from .store import Store  # noqa: F401
from .product import Product  # noqa: F401
from .main_order import MainOrder  # noqa: F401
from .order import Order  # noqa: F401
from .order_item import OrderItem  # noqa: F401
from .payment_audit import PaymentAudit  # noqa: F401
