# bytestore/api/routes/orders.py
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from bytestore.api.deps import get_current_principal, require_admin
from bytestore.api.schemas.order import MAX_LINE_QUANTITY, OrderCreate, OrderLineIn, OrderUpdate
from bytestore.core.errors import Forbidden, InvalidInput, NotFound
from bytestore.core.security import Principal, is_admin, is_admin_or_owner
from bytestore.core.state_machine import OrderState
from bytestore.core.timestamps import parse_iso
from bytestore.database import commit, get_orders_db
from bytestore.db.order_repository import OrderRepository
from bytestore.db.pagination import page_response, paginate
from bytestore.models.order import Order, OrderProduct
from bytestore.services import order_stats
from bytestore.services.order_status import OrderStatusService

router = APIRouter(prefix="/orders", tags=["orders"])

SORT_COLUMNS = {
    "fecha_pago": Order.paid_at,
    "total": Order.total,
    "estado": Order.state,
}


def build_line(line: OrderLineIn) -> OrderProduct:
    """Turn a validated payload line into an OrderProduct, filling catalog defaults."""
    pid = line.producto_id
    return OrderProduct(
        product_id=pid,
        quantity=line.cantidad,
        price=Decimal(str(line.precio)),
        discount=Decimal(str(line.descuento or 0)),
        name=line.nombre or f"Producto {pid}",
        brand=line.marca or "Marca Genérica",
        model=line.modelo or f"Modelo-{pid}",
        image=str(line.imagen) if line.imagen else f"https://example.com/images/producto-{pid}.jpg",
    )


def _parse_date_filter(name: str, value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return parse_iso(value)
    except ValueError:
        raise InvalidInput(f"Invalid '{name}': use ISO-8601 format")


def _load_visible(repo: OrderRepository, order_id: int, principal: Principal, action: str) -> Order:
    order = repo.find_by_id(order_id, with_products=True)
    if not order:
        raise NotFound("Order not found")
    if not is_admin_or_owner(principal, order.user_id):
        raise Forbidden(f"Not allowed to {action} this order")
    return order


@router.post("", status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderCreate = Body(...),
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_orders_db),
) -> Dict[str, Any]:
    """
    Create a pending order with its product lines in one transaction.
    Users may only create orders for themselves; admins for anyone.
    Repeated producto_id lines are merged when they agree on price and
    discount; the merged quantity is held to the same per-line cap.
    """
    if not is_admin_or_owner(principal, payload.user_id):
        raise Forbidden("Not allowed to create orders for another user")

    lines: Dict[int, OrderProduct] = {}
    for it in payload.productos:
        line = lines.get(it.producto_id)
        if line is None:
            lines[it.producto_id] = build_line(it)
            continue
        if line.price != Decimal(str(it.precio)) or line.discount != Decimal(str(it.descuento or 0)):
            raise InvalidInput(
                f"Product {it.producto_id} is listed more than once with different precio or descuento"
            )
        if line.quantity + it.cantidad > MAX_LINE_QUANTITY:
            raise InvalidInput(f"Quantity per product cannot exceed {MAX_LINE_QUANTITY}")
        line.quantity += it.cantidad

    order = Order(
        user_id=payload.user_id,
        email=str(payload.correo_usuario),
        address=payload.direccion,
        full_name=payload.nombre_completo,
        state=OrderState.PENDING.value,
        paid_at=datetime.utcnow(),
        products=list(lines.values()),
    )
    repo = OrderRepository(session)
    repo.recalculate_total(order)
    session.add(order)
    commit(session, "create order", user_id=payload.user_id)

    return {"message": "Order created successfully", "data": order.to_dict_with_products()}


@router.get("")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_id: Optional[str] = Query(None),
    estado: Optional[OrderState] = Query(None),
    fecha_desde: Optional[str] = Query(None, description="ISO-8601 lower bound on fecha_pago"),
    fecha_hasta: Optional[str] = Query(None, description="ISO-8601 upper bound on fecha_pago"),
    sort: Literal["fecha_pago", "total", "estado"] = Query("fecha_pago"),
    order: Literal["ASC", "DESC"] = Query("DESC"),
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_orders_db),
) -> Dict[str, Any]:
    """
    Paginated order listing. Non-admins only ever see their own orders;
    the `user_id` filter is honoured for admins only.
    """
    since = _parse_date_filter("fecha_desde", fecha_desde)
    until = _parse_date_filter("fecha_hasta", fecha_hasta)

    stmt = select(Order)
    if not is_admin(principal):
        stmt = stmt.where(Order.user_id == principal.id)
    elif user_id:
        stmt = stmt.where(Order.user_id == user_id.strip())
    if estado is not None:
        stmt = stmt.where(Order.state == OrderState(estado).value)
    if since is not None:
        stmt = stmt.where(Order.paid_at >= since)
    if until is not None:
        stmt = stmt.where(Order.paid_at <= until)

    column = SORT_COLUMNS[sort]
    if order == "ASC":
        stmt = stmt.order_by(column.asc(), Order.id.asc())
    else:
        stmt = stmt.order_by(column.desc(), Order.id.desc())

    result = paginate(session, stmt, page, limit)
    return page_response(result, [o.to_dict_with_products() for o in result["items"]])


@router.get("/stats")
def order_stats_summary(
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_orders_db),
) -> Dict[str, Any]:
    """Order counts per state, amount spent and the five most bought products."""
    owner = None if is_admin(principal) else principal.id
    repo = OrderRepository(session)
    return {
        "data": {
            "estadisticas": order_stats.order_summary(repo.order_rows(owner_id=owner)),
            "productos_favoritos": repo.top_products(owner_id=owner),
        }
    }


@router.get("/{order_id}")
def get_order(
    order_id: int = Path(..., gt=0),
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_orders_db),
) -> Dict[str, Any]:
    order = _load_visible(OrderRepository(session), order_id, principal, "view")
    return {"data": order.to_dict_with_products()}


@router.put("/{order_id}")
def update_order(
    order_id: int = Path(..., gt=0),
    payload: OrderUpdate = Body(...),
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_orders_db),
) -> Dict[str, Any]:
    """
    Owner or admin may change the address. A status change is admin-only
    and goes through the order status service.
    """
    repo = OrderRepository(session)
    order = repo.find_by_id(order_id)
    if not order:
        raise NotFound("Order not found")
    if payload.estado is not None and not is_admin(principal):
        raise Forbidden("Only administrators can change the status of orders")
    if payload.direccion is not None and not is_admin_or_owner(principal, order.user_id):
        raise Forbidden("Not allowed to update this order")
    if payload.estado is None and payload.direccion is None:
        raise InvalidInput("No fields to update")
    if payload.fecha_entrega is not None and payload.estado != OrderState.DELIVERED.value:
        raise InvalidInput("fecha_entrega can only be set when marking an order as delivered")

    response: Dict[str, Any] = {"message": "Order updated successfully"}
    # transition first so a rejected status change leaves the order untouched
    if payload.estado is not None:
        result = OrderStatusService(session, repo).request_transition(
            order_id,
            payload.estado,
            principal,
            reason=payload.motivo,
            delivered_at=payload.fecha_entrega,
        )
        response["transicion"] = result["transicion"]

    if payload.direccion is not None:
        order = repo.find_by_id(order_id)
        order.address = payload.direccion
        commit(session, "update order", order_id=order_id)

    order = repo.find_by_id(order_id, with_products=True)
    response["data"] = order.to_dict_with_products()
    return response


@router.delete("/{order_id}")
def delete_order(
    order_id: int = Path(..., gt=0),
    principal: Principal = Depends(require_admin),
    session: Session = Depends(get_orders_db),
) -> Dict[str, Any]:
    """Admin-only. Product lines and status history go with the order."""
    repo = OrderRepository(session)
    order = repo.find_by_id(order_id)
    if not order:
        raise NotFound("Order not found")
    repo.delete(order)
    commit(session, "delete order", order_id=order_id)
    return {"message": "Order deleted successfully"}
