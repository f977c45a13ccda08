"""Creates the orders and reviews schemas and optionally prints a dev token."""
import argparse
from datetime import timedelta

from bytestore.config import settings
from bytestore.core.security import create_access_token
from bytestore.database import Base, orders_engine, reviews_engine
from bytestore.models.order import ORDER_TABLES
from bytestore.models.review import REVIEW_TABLES


parser = argparse.ArgumentParser(description=__doc__)
parser.add_argument("--token", action="store_true", help="print a development bearer token")
parser.add_argument("--user-id", default="1")
parser.add_argument("--admin", action="store_true", help="issue the token with the admin role")
args = parser.parse_args()


Base.metadata.create_all(bind=orders_engine, tables=ORDER_TABLES)
print(f"Orders schema ready at {orders_engine.url.render_as_string(hide_password=True)}")
Base.metadata.create_all(bind=reviews_engine, tables=REVIEW_TABLES)
print(f"Reviews schema ready at {reviews_engine.url.render_as_string(hide_password=True)}")


if args.token:
    role = settings.ADMIN_ROLE if args.admin else "CLIENTE"
    token = create_access_token({"id": args.user_id, "role": role}, expires_delta=timedelta(hours=12))
    print(token)
