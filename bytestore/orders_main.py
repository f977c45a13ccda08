# bytestore/orders_main.py
from bytestore.api.routes import order_products, order_status, orders
from bytestore.app_factory import create_app
from bytestore.database import orders_engine
from bytestore.models.order import ORDER_TABLES

# the status router goes first so /orders/status/stats is not taken for /orders/{order_id}
app = create_app(
    service="orders-service",
    title="ByteStore Orders Service API",
    description="Order management with a guarded status lifecycle",
    engine=orders_engine,
    tables=ORDER_TABLES,
    routers=[order_status.router, orders.router, order_products.router],
    endpoints={"orders": "/orders"},
)
