# bytestore/database.py
"""
SQLAlchemy engines and session factories for the two services.

Each service owns its own database (orders + order lines + status history
for the orders service, reviews for the reviews service). Server databases
get a bounded QueuePool: at most DB_POOL_SIZE + DB_MAX_OVERFLOW connections
are open, further requests queue for up to DB_POOL_TIMEOUT seconds.

Usage:
    from bytestore.database import get_orders_db
    def handler(session: Session = Depends(get_orders_db)): ...
"""

import logging
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from bytestore.config import settings
from bytestore.core.errors import Internal

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str, **kwargs) -> Engine:
    """
    Build an engine for `url`. SQLite gets foreign keys switched on and is
    usable across threads; anything else gets the bounded pool from settings.
    """
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        # make sure the directory of a file-backed sqlite db exists
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        engine = create_engine(url, connect_args=connect_args, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    kwargs.setdefault("pool_size", settings.DB_POOL_SIZE)
    kwargs.setdefault("max_overflow", settings.DB_MAX_OVERFLOW)
    kwargs.setdefault("pool_timeout", settings.DB_POOL_TIMEOUT)
    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)


orders_engine = make_engine(settings.ORDERS_DATABASE_URL)
reviews_engine = make_engine(settings.REVIEWS_DATABASE_URL)

OrdersSession = make_session_factory(orders_engine)
ReviewsSession = make_session_factory(reviews_engine)


def get_orders_db() -> Iterator[Session]:
    """FastAPI dependency: one orders-db session per request, always closed."""
    session = OrdersSession()
    try:
        yield session
    finally:
        session.close()


def get_reviews_db() -> Iterator[Session]:
    """FastAPI dependency: one reviews-db session per request, always closed."""
    session = ReviewsSession()
    try:
        yield session
    finally:
        session.close()


def commit(session: Session, action: str, **context) -> None:
    """
    Commit the session; on a db error roll back and raise Internal so the
    caller gets an opaque 500 while the cause is logged.
    """
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise Internal(f"Failed to {action}", **context) from exc


def check_connection(engine: Engine) -> None:
    """Open and release one pooled connection; raises if the db is unreachable."""
    with engine.connect():
        logger.info("Database connection OK (%s)", engine.url.render_as_string(hide_password=True))
