# bytestore/services/order_status.py
"""
Order status lifecycle: the only code path that writes `orders.state`.

Every successful transition updates the order and appends its history row
in one db transaction. The order update is conditioned on the state read
at the start of the request, so two concurrent requests starting from the
same state cannot both succeed; the loser gets InvalidTransition.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bytestore.core.errors import Forbidden, Internal, InvalidInput, InvalidTransition, NotFound, ServiceError
from bytestore.core.security import Principal, is_admin, is_admin_or_owner
from bytestore.core.state_machine import (
    CANCELLABLE_STATES,
    STATE_ORDER,
    OrderState,
    OrderStatusMachine,
    Transition,
    ordered,
    transition_table,
)
from bytestore.db.order_repository import OrderRepository
from bytestore.services import order_stats

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 500


class OrderStatusService:
    def __init__(self, session: Session, repository: Optional[OrderRepository] = None):
        self.session = session
        self.repo = repository or OrderRepository(session)

    def _load(self, order_id: int):
        order = self.repo.find_by_id(order_id)
        if order is None:
            raise NotFound("Order not found")
        return order

    def _apply(self, order_id: int, transition: Transition, delivered_at: Optional[datetime] = None,
               **conflict_extra: Any) -> None:
        """Conditionally update the order and append history, atomically."""
        try:
            changed = self.repo.update_state(
                order_id,
                expected_state=transition.from_state.value,
                new_state=transition.to_state.value,
                delivered_at=delivered_at,
            )
            if not changed:
                self.session.rollback()
                current = self.repo.current_state(order_id)
                if current is None:
                    raise NotFound("Order not found")
                logger.info(
                    "Order %s moved to %s concurrently; rejecting %s -> %s",
                    order_id, current, transition.from_state.value, transition.to_state.value,
                )
                raise InvalidTransition(
                    current,
                    OrderStatusMachine(current).allowed_next(),
                    requested=transition.to_state.value,
                    message=f"Order state changed concurrently: it is now '{current}'",
                    **conflict_extra,
                )
            self.repo.append_history(
                order_id,
                previous_state=transition.from_state.value,
                new_state=transition.to_state.value,
                reason=transition.reason,
                changed_by=transition.actor,
                changed_at=transition.at,
            )
            self.session.commit()
        except ServiceError:
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise Internal(
                "Failed to persist order transition",
                order_id=order_id,
                transition=f"{transition.from_state.value}->{transition.to_state.value}",
            ) from exc
        logger.info(
            "Order %s: %s -> %s by %s",
            order_id, transition.from_state.value, transition.to_state.value, transition.actor,
        )

    def request_transition(self, order_id: int, requested_state: str, principal: Principal,
                           reason: Optional[str] = None, delivered_at: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Admin-only direct transition to any successor the table allows.
        When moving to `delivered`, `delivered_at` defaults to the server time;
        for any other target it must not be given.
        """
        if not is_admin(principal):
            raise Forbidden("Only administrators can change the status of orders")
        try:
            target = OrderState(requested_state)
        except ValueError:
            raise InvalidInput(f"Unknown order state '{requested_state}'",
                               estados_disponibles=[s.value for s in STATE_ORDER])
        if reason is not None and len(reason) > MAX_REASON_LENGTH:
            raise InvalidInput(f"Reason must be at most {MAX_REASON_LENGTH} characters")
        if delivered_at is not None and target != OrderState.DELIVERED:
            raise InvalidInput("fecha_entrega can only be set when marking an order as delivered")

        order = self._load(order_id)
        transition = OrderStatusMachine(order.state).plan(target.value, actor=principal.id, reason=reason)

        stamp = None
        if transition.to_state == OrderState.DELIVERED:
            stamp = delivered_at or transition.at
        self._apply(order_id, transition, delivered_at=stamp)

        updated = self._load(order_id)
        return {
            "message": f"Order status updated to '{transition.to_state.value}'",
            "data": updated.to_dict(),
            "transicion": transition.summary(),
        }

    def cancel_order(self, order_id: int, reason: str, principal: Principal) -> Dict[str, Any]:
        """Owner or admin cancellation; only from states that can reach `cancelled`."""
        if not reason or not reason.strip():
            raise InvalidInput("A cancellation reason is required")
        if len(reason) > MAX_REASON_LENGTH:
            raise InvalidInput(f"Reason must be at most {MAX_REASON_LENGTH} characters")

        order = self._load(order_id)
        if not is_admin_or_owner(principal, order.user_id):
            raise Forbidden("You are not allowed to cancel this order")

        machine = OrderStatusMachine(order.state)
        cancellable = ordered(CANCELLABLE_STATES)
        if not machine.can_transition(OrderState.CANCELLED):
            raise InvalidTransition(
                machine.state.value,
                machine.allowed_next(),
                requested=OrderState.CANCELLED.value,
                message=f"Cannot cancel an order in state '{machine.state.value}'",
                estados_cancelables=cancellable,
            )
        transition = machine.plan(OrderState.CANCELLED, actor=principal.id, reason=reason)
        self._apply(order_id, transition, estados_cancelables=cancellable)

        updated = self._load(order_id)
        return {
            "message": "Order cancelled successfully",
            "motivo": reason,
            "data": updated.to_dict(),
            "transicion": transition.summary(),
        }

    def get_history(self, order_id: int, principal: Principal) -> Dict[str, Any]:
        """Full audit trail, oldest first."""
        order = self._load(order_id)
        if not is_admin_or_owner(principal, order.user_id):
            raise Forbidden("You are not allowed to view the history of this order")
        entries = self.repo.list_history(order_id)
        return {
            "data": [e.to_dict() for e in entries],
            "total_cambios": len(entries),
        }

    def get_status_statistics(self, principal: Principal, now: Optional[datetime] = None) -> Dict[str, Any]:
        owner = None if is_admin(principal) else principal.id
        orders = self.repo.order_rows(owner_id=owner)
        history = self.repo.history_rows(owner_id=owner)
        return {
            "data": {
                "estadisticas_por_estado": order_stats.state_summary(orders),
                "tendencias_mensuales": order_stats.monthly_trends(orders, now=now),
                "tiempo_promedio_por_estado": order_stats.average_dwell_hours(history),
                "estados_disponibles": [s.value for s in STATE_ORDER],
                "transiciones_validas": transition_table(),
            }
        }
