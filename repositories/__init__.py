from .interfaces import (  # noqa: F401
    StoreRepository,
    ProductRepository,
    OrderRepository,
    PaymentAuditRepository,
)
from .stores import SqlStoreRepository  # noqa: F401
from .products import SqlProductRepository  # noqa: F401
from .orders import SqlOrderRepository  # noqa: F401
from .audit import SqlPaymentAuditRepository  # noqa: F401
