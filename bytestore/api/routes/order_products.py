# bytestore/api/routes/order_products.py
from decimal import Decimal
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Path, status
from sqlalchemy.orm import Session

from bytestore.api.deps import get_current_principal
from bytestore.api.routes.orders import build_line
from bytestore.api.schemas.order import MAX_LINE_QUANTITY, OrderLineIn, OrderLineUpdate
from bytestore.core.errors import Forbidden, InvalidInput, InvalidTransition, NotFound
from bytestore.core.security import Principal, is_admin_or_owner
from bytestore.core.state_machine import OrderState, OrderStatusMachine
from bytestore.database import commit, get_orders_db
from bytestore.db.order_repository import OrderRepository
from bytestore.models.order import Order

router = APIRouter(prefix="/orders/{order_id}/products", tags=["order-products"])


def _editable_order(repo: OrderRepository, order_id: int, principal: Principal) -> Order:
    """Lines can only change while the order is still pending."""
    order = repo.find_by_id(order_id, with_products=True)
    if not order:
        raise NotFound("Order not found")
    if not is_admin_or_owner(principal, order.user_id):
        raise Forbidden("Not allowed to modify this order")
    if order.state != OrderState.PENDING.value:
        raise InvalidTransition(
            order.state,
            OrderStatusMachine(order.state).allowed_next(),
            message=f"Products can only be changed while the order is '{OrderState.PENDING.value}'",
        )
    return order


@router.get("")
def list_order_products(
    order_id: int = Path(..., gt=0),
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_orders_db),
) -> Dict[str, Any]:
    order = OrderRepository(session).find_by_id(order_id, with_products=True)
    if not order:
        raise NotFound("Order not found")
    if not is_admin_or_owner(principal, order.user_id):
        raise Forbidden("Not allowed to view this order")
    lines = [p.to_dict() for p in order.products]
    return {
        "data": lines,
        "total_productos": len(lines),
        "total_items": sum(p.quantity for p in order.products),
        "subtotal_orden": float(order.total or 0),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def add_order_product(
    order_id: int = Path(..., gt=0),
    payload: OrderLineIn = Body(...),
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_orders_db),
) -> Dict[str, Any]:
    """Add a line; adding a product already in the order increases its quantity."""
    repo = OrderRepository(session)
    order = _editable_order(repo, order_id, principal)

    line = next((p for p in order.products if p.product_id == payload.producto_id), None)
    if line is not None:
        if line.quantity + payload.cantidad > MAX_LINE_QUANTITY:
            raise InvalidInput(f"Quantity per product cannot exceed {MAX_LINE_QUANTITY}")
        line.quantity += payload.cantidad
    else:
        line = build_line(payload)
        order.products.append(line)

    repo.recalculate_total(order)
    commit(session, "add product to order", order_id=order_id, product_id=payload.producto_id)
    return {"message": "Product added to order", "data": order.to_dict_with_products()}


@router.put("/{producto_id}")
def update_order_product(
    order_id: int = Path(..., gt=0),
    producto_id: int = Path(..., gt=0),
    payload: OrderLineUpdate = Body(...),
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_orders_db),
) -> Dict[str, Any]:
    repo = OrderRepository(session)
    order = _editable_order(repo, order_id, principal)
    line = next((p for p in order.products if p.product_id == producto_id), None)
    if line is None:
        raise NotFound("Product not found in order")
    if payload.cantidad is None and payload.precio is None and payload.descuento is None:
        raise InvalidInput("No fields to update")

    if payload.cantidad is not None:
        line.quantity = payload.cantidad
    if payload.precio is not None:
        line.price = Decimal(str(payload.precio))
    if payload.descuento is not None:
        line.discount = Decimal(str(payload.descuento))

    repo.recalculate_total(order)
    commit(session, "update order product", order_id=order_id, product_id=producto_id)
    return {"message": "Order product updated", "data": order.to_dict_with_products()}


@router.delete("/{producto_id}")
def remove_order_product(
    order_id: int = Path(..., gt=0),
    producto_id: int = Path(..., gt=0),
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_orders_db),
) -> Dict[str, Any]:
    """An order keeps at least one line; cancel the order instead of emptying it."""
    repo = OrderRepository(session)
    order = _editable_order(repo, order_id, principal)
    line = next((p for p in order.products if p.product_id == producto_id), None)
    if line is None:
        raise NotFound("Product not found in order")
    if len(order.products) <= 1:
        raise InvalidInput("Cannot remove the last product of an order; cancel the order instead")

    order.products.remove(line)
    repo.recalculate_total(order)
    commit(session, "remove order product", order_id=order_id, product_id=producto_id)
    return {"message": "Product removed from order", "data": order.to_dict_with_products()}
