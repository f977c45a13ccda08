# tests/conftest.py
import os
from datetime import datetime
from decimal import Decimal

# point both services at throwaway in-memory databases before bytestore is imported
os.environ.setdefault("ORDERS_DATABASE_URL", "sqlite://")
os.environ.setdefault("REVIEWS_DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from bytestore.config import settings
from bytestore.core.security import Principal, create_access_token
from bytestore.database import Base, get_orders_db, get_reviews_db, make_engine, make_session_factory
from bytestore.models.order import ORDER_TABLES, Order, OrderProduct
from bytestore.models.review import REVIEW_TABLES
from bytestore.orders_main import app as orders_app
from bytestore.reviews_main import app as reviews_app

OWNER_ID = "user-1"
OTHER_ID = "user-2"
ADMIN_ID = "admin-1"


def _memory_engine(tables):
    engine = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine, tables=tables)
    return engine


@pytest.fixture
def orders_session_factory():
    engine = _memory_engine(ORDER_TABLES)
    try:
        yield make_session_factory(engine)
    finally:
        engine.dispose()


@pytest.fixture
def reviews_session_factory():
    engine = _memory_engine(REVIEW_TABLES)
    try:
        yield make_session_factory(engine)
    finally:
        engine.dispose()


@pytest.fixture
def db_session(orders_session_factory):
    session = orders_session_factory()
    try:
        yield session
    finally:
        session.close()


def _override(factory):
    def _get_db():
        session = factory()
        try:
            yield session
        finally:
            session.close()
    return _get_db


@pytest.fixture
def client(orders_session_factory):
    orders_app.dependency_overrides[get_orders_db] = _override(orders_session_factory)
    try:
        yield TestClient(orders_app)
    finally:
        orders_app.dependency_overrides.clear()


@pytest.fixture
def reviews_client(reviews_session_factory):
    reviews_app.dependency_overrides[get_reviews_db] = _override(reviews_session_factory)
    try:
        yield TestClient(reviews_app)
    finally:
        reviews_app.dependency_overrides.clear()


@pytest.fixture
def auth_header():
    """
    Build an Authorization header for a user id and role.
    Usage: hdr = auth_header("user-1") / auth_header("admin-1", admin=True)
    """
    def _h(user_id: str, admin: bool = False):
        role = settings.ADMIN_ROLE if admin else "CLIENTE"
        token = create_access_token({"id": user_id, "role": role})
        return {"Authorization": f"Bearer {token}"}
    return _h


@pytest.fixture
def owner_headers(auth_header):
    return auth_header(OWNER_ID)


@pytest.fixture
def other_headers(auth_header):
    return auth_header(OTHER_ID)


@pytest.fixture
def admin_headers(auth_header):
    return auth_header(ADMIN_ID, admin=True)


@pytest.fixture
def owner():
    return Principal(id=OWNER_ID, role="CLIENTE")


@pytest.fixture
def other_user():
    return Principal(id=OTHER_ID, role="CLIENTE")


@pytest.fixture
def admin():
    return Principal(id=ADMIN_ID, role=settings.ADMIN_ROLE)


@pytest.fixture
def make_order(orders_session_factory):
    """
    Insert an order straight into the db and return its id.
    Usage: oid = make_order(state="processing", total="120.50")
    """
    def _fn(user_id: str = OWNER_ID, state: str = "pending", total: str = "100.00",
            paid_at: datetime = None, lines=None):
        with orders_session_factory() as session:
            order = Order(
                user_id=user_id,
                email=f"{user_id}@example.com",
                address="Calle 123 # 45-67, Bogota",
                full_name="Ana Maria Perez",
                state=state,
                total=Decimal(total),
                paid_at=paid_at or datetime.utcnow(),
            )
            for pid, qty, price in lines or [(1, 1, total)]:
                order.products.append(OrderProduct(
                    product_id=pid,
                    quantity=qty,
                    price=Decimal(price),
                    discount=Decimal("0"),
                    name=f"Producto {pid}",
                    brand="Marca Genérica",
                    model=f"Modelo-{pid}",
                ))
            session.add(order)
            session.commit()
            return order.id
    return _fn


@pytest.fixture
def order_payload():
    def _fn(user_id: str = OWNER_ID, productos=None):
        return {
            "user_id": user_id,
            "correo_usuario": "ana@example.com",
            "direccion": "Calle 123 # 45-67, Bogota",
            "nombre_completo": "Ana Maria Perez",
            "productos": productos or [
                {"producto_id": 10, "cantidad": 2, "precio": 50.0},
                {"producto_id": 11, "cantidad": 1, "precio": 200.0, "descuento": 10},
            ],
        }
    return _fn
