# bytestore/models/order.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from bytestore.core.state_machine import OrderState
from bytestore.core.timestamps import to_iso
from bytestore.database import Base

_STATE_VALUES = ", ".join(f"'{s.value}'" for s in OrderState)


def _money(value: Any) -> float:
    if value is None:
        return 0.0
    return float(value)


class Order(Base):
    """
    An order placed by `user_id`. `state` is only ever written through the
    order status service; `total` is recalculated whenever product lines change.
    """
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(f"state IN ({_STATE_VALUES})", name="ck_orders_state"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(100), nullable=False, index=True)
    email = Column(String(300), nullable=False)
    address = Column(String(500), nullable=False)
    full_name = Column(String(200), nullable=False)
    state = Column(String(20), nullable=False, default=OrderState.PENDING.value, index=True)
    total = Column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    paid_at = Column(DateTime, nullable=True, default=datetime.utcnow)
    delivered_at = Column(DateTime, nullable=True)

    products = relationship(
        "OrderProduct",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderProduct.id",
    )
    history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by=lambda: [OrderStatusHistory.changed_at, OrderStatusHistory.id],
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orden_id": self.id,
            "user_id": self.user_id,
            "correo_usuario": self.email,
            "direccion": self.address,
            "nombre_completo": self.full_name,
            "estado": self.state,
            "total": _money(self.total),
            "fecha_pago": to_iso(self.paid_at),
            "fecha_entrega": to_iso(self.delivered_at),
        }

    def to_dict_with_products(self) -> Dict[str, Any]:
        out = self.to_dict()
        out["productos"] = [p.to_dict() for p in self.products]
        return out


class OrderProduct(Base):
    __tablename__ = "order_products"
    __table_args__ = (
        UniqueConstraint("order_id", "product_id", name="uq_order_products_order_product"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)
    name = Column(String(300), nullable=False)
    price = Column(Numeric(14, 2), nullable=False)
    discount = Column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    brand = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    image = Column(String(500), nullable=True)

    order = relationship("Order", back_populates="products")

    @property
    def subtotal(self) -> Decimal:
        # price * qty * (1 - discount/100)
        price = Decimal(self.price or 0)
        discount = Decimal(self.discount or 0)
        return price * int(self.quantity or 0) * (Decimal(1) - discount / Decimal(100))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orden_productos_id": self.id,
            "orden_id": self.order_id,
            "producto_id": self.product_id,
            "nombre": self.name,
            "precio": _money(self.price),
            "descuento": _money(self.discount),
            "marca": self.brand,
            "modelo": self.model,
            "cantidad": self.quantity,
            "imagen": self.image,
            "subtotal": round(float(self.subtotal), 2),
        }


class OrderStatusHistory(Base):
    """Append-only ledger: one row per successful state transition."""
    __tablename__ = "order_status_history"
    __table_args__ = (
        Index("ix_order_status_history_order_changed", "order_id", "changed_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    previous_state = Column(String(20), nullable=False)
    new_state = Column(String(20), nullable=False)
    reason = Column(String(500), nullable=True)
    changed_by = Column(String(100), nullable=False)
    changed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    order = relationship("Order", back_populates="history")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "estado_anterior": self.previous_state,
            "estado_nuevo": self.new_state,
            "motivo": self.reason,
            "changed_by": self.changed_by,
            "fecha_cambio": to_iso(self.changed_at),
        }


ORDER_TABLES = [Order.__table__, OrderProduct.__table__, OrderStatusHistory.__table__]
