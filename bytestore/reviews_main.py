# bytestore/reviews_main.py
from bytestore.api.routes import reviews
from bytestore.app_factory import create_app
from bytestore.database import reviews_engine
from bytestore.models.review import REVIEW_TABLES

app = create_app(
    service="reviews-service",
    title="ByteStore Reviews Service API",
    description="Product reviews and ratings",
    engine=reviews_engine,
    tables=REVIEW_TABLES,
    routers=[reviews.router],
    endpoints={"reviews": "/reviews"},
)
