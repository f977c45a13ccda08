# bytestore/db/order_repository.py
"""
Persistence for orders, their product lines and the status history.

The status service only needs find_by_id, current_state, update_state,
append_history and list_history; the remaining helpers back the CRUD routes
and the statistics endpoints.
"""
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, distinct, func, select, update
from sqlalchemy.orm import Session, selectinload

from bytestore.models.order import Order, OrderProduct, OrderStatusHistory

CENT = Decimal("0.01")


class OrderRepository:
    def __init__(self, session: Session):
        self.session = session

    # --- orders ---

    def find_by_id(self, order_id: int, with_products: bool = False) -> Optional[Order]:
        if with_products:
            stmt = select(Order).options(selectinload(Order.products)).where(Order.id == order_id)
            return self.session.scalars(stmt).first()
        return self.session.get(Order, order_id)

    def current_state(self, order_id: int) -> Optional[str]:
        """Read the state straight from the db, bypassing the identity map."""
        return self.session.scalar(select(Order.state).where(Order.id == order_id))

    def update_state(self, order_id: int, expected_state: str, new_state: str,
                     delivered_at: Optional[datetime] = None) -> bool:
        """
        Move the order to `new_state` only if it is still in `expected_state`.
        Returns False when no row matched (the state changed underneath us).
        """
        values: Dict[str, Any] = {"state": new_state}
        if delivered_at is not None:
            values["delivered_at"] = delivered_at
        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.state == expected_state)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1

    def delete(self, order: Order) -> None:
        self.session.delete(order)
        self.session.flush()

    def recalculate_total(self, order: Order) -> Decimal:
        total = sum((p.subtotal for p in order.products), Decimal(0))
        order.total = Decimal(total).quantize(CENT, rounding=ROUND_HALF_UP)
        return order.total

    # --- history ---

    def append_history(self, order_id: int, previous_state: str, new_state: str, reason: Optional[str],
                       changed_by: str, changed_at: datetime) -> OrderStatusHistory:
        entry = OrderStatusHistory(
            order_id=order_id,
            previous_state=previous_state,
            new_state=new_state,
            reason=reason,
            changed_by=changed_by,
            changed_at=changed_at,
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def list_history(self, order_id: int) -> List[OrderStatusHistory]:
        stmt = (
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.changed_at.asc(), OrderStatusHistory.id.asc())
        )
        return list(self.session.scalars(stmt))


    # --- rows for statistics ---

    def order_rows(self, owner_id: Optional[str] = None) -> List[Dict[str, Any]]:
        stmt = select(Order.id, Order.state, Order.total, Order.paid_at)
        if owner_id is not None:
            stmt = stmt.where(Order.user_id == owner_id)
        return [
            {"order_id": r.id, "state": r.state, "total": float(r.total or 0), "paid_at": r.paid_at}
            for r in self.session.execute(stmt)
        ]

    def history_rows(self, owner_id: Optional[str] = None) -> List[Dict[str, Any]]:
        stmt = select(
            OrderStatusHistory.id,
            OrderStatusHistory.order_id,
            OrderStatusHistory.new_state,
            OrderStatusHistory.changed_at,
        ).join(Order, Order.id == OrderStatusHistory.order_id)
        if owner_id is not None:
            stmt = stmt.where(Order.user_id == owner_id)
        return [
            {"id": r.id, "order_id": r.order_id, "new_state": r.new_state, "changed_at": r.changed_at}
            for r in self.session.execute(stmt)
        ]

    def top_products(self, owner_id: Optional[str] = None, limit: int = 5) -> List[Dict[str, Any]]:
        total_qty = func.sum(OrderProduct.quantity).label("total_comprado")
        stmt = (
            select(
                OrderProduct.product_id,
                OrderProduct.name,
                OrderProduct.brand,
                OrderProduct.model,
                total_qty,
                func.count(distinct(OrderProduct.order_id)).label("veces_ordenado"),
            )
            .join(Order, Order.id == OrderProduct.order_id)
            .group_by(OrderProduct.product_id, OrderProduct.name, OrderProduct.brand, OrderProduct.model)
            .order_by(desc(total_qty), OrderProduct.product_id)
            .limit(limit)
        )
        if owner_id is not None:
            stmt = stmt.where(Order.user_id == owner_id)
        return [
            {
                "producto_id": r.product_id,
                "nombre": r.name,
                "marca": r.brand,
                "modelo": r.model,
                "total_comprado": int(r.total_comprado or 0),
                "veces_ordenado": int(r.veces_ordenado or 0),
            }
            for r in self.session.execute(stmt)
        ]
