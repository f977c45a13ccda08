# bytestore/api/routes/order_status.py
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Path
from sqlalchemy.orm import Session

from bytestore.api.deps import get_current_principal, require_admin
from bytestore.api.schemas.status import CancelRequest, StatusUpdate
from bytestore.core.security import Principal
from bytestore.database import get_orders_db
from bytestore.services.order_status import OrderStatusService

router = APIRouter(prefix="/orders", tags=["order-status"])


def get_status_service(session: Session = Depends(get_orders_db)) -> OrderStatusService:
    return OrderStatusService(session)


@router.get("/status/stats")
def order_status_stats(
    principal: Principal = Depends(get_current_principal),
    service: OrderStatusService = Depends(get_status_service),
) -> Dict[str, Any]:
    """
    Aggregates per state, monthly trends and average dwell time.
    Admins see every order; other callers only their own.
    """
    return service.get_status_statistics(principal)


@router.put("/{order_id}/status")
def update_order_status(
    order_id: int = Path(..., gt=0),
    payload: StatusUpdate = Body(...),
    principal: Principal = Depends(require_admin),
    service: OrderStatusService = Depends(get_status_service),
) -> Dict[str, Any]:
    """
    Admin-only: move an order along the transition table.
    Body: { "estado": "<state>", "motivo"?: "...", "fecha_entrega"?: "<ISO-8601>" }
    """
    return service.request_transition(
        order_id,
        payload.estado,
        principal,
        reason=payload.motivo,
        delivered_at=payload.fecha_entrega,
    )


@router.get("/{order_id}/status/history")
def order_status_history(
    order_id: int = Path(..., gt=0),
    principal: Principal = Depends(get_current_principal),
    service: OrderStatusService = Depends(get_status_service),
) -> Dict[str, Any]:
    return service.get_history(order_id, principal)


@router.put("/{order_id}/cancel")
def cancel_order(
    order_id: int = Path(..., gt=0),
    payload: CancelRequest = Body(...),
    principal: Principal = Depends(get_current_principal),
    service: OrderStatusService = Depends(get_status_service),
) -> Dict[str, Any]:
    """Owner or admin may cancel while the order is pending or processing."""
    return service.cancel_order(order_id, payload.motivo, principal)
