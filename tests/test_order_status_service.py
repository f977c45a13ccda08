from datetime import datetime

import pytest
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from bytestore.core.errors import Forbidden, Internal, InvalidInput, InvalidTransition, NotFound
from bytestore.core.state_machine import is_valid_path
from bytestore.db.order_repository import OrderRepository
from bytestore.models.order import Order
from bytestore.services.order_status import OrderStatusService


class RacingRepository(OrderRepository):
    """Another writer cancels the order right before our conditional update runs."""

    def update_state(self, order_id, expected_state, new_state, delivered_at=None):
        self.session.execute(update(Order).where(Order.id == order_id).values(state="cancelled"))
        self.session.commit()
        return super().update_state(order_id, expected_state, new_state, delivered_at)


class BrokenHistoryRepository(OrderRepository):
    def append_history(self, *args, **kwargs):
        raise SQLAlchemyError("disk full")


def _state(session, order_id):
    return OrderRepository(session).current_state(order_id)


def test_admin_walks_full_lifecycle(db_session, make_order, admin):
    oid = make_order()
    service = OrderStatusService(db_session)

    service.request_transition(oid, "processing", admin)
    service.request_transition(oid, "shipped", admin, reason="courier picked up")
    result = service.request_transition(oid, "delivered", admin)

    assert result["data"]["estado"] == "delivered"
    assert result["data"]["fecha_entrega"] is not None
    history = service.get_history(oid, admin)
    assert history["total_cambios"] == 3
    edges = [(e["estado_anterior"], e["estado_nuevo"]) for e in history["data"]]
    assert is_valid_path(edges)
    assert history["data"][1]["motivo"] == "courier picked up"


def test_delivered_at_uses_supplied_timestamp(db_session, make_order, admin):
    oid = make_order(state="shipped")
    when = datetime(2024, 3, 10, 15, 30, 0)
    result = OrderStatusService(db_session).request_transition(oid, "delivered", admin, delivered_at=when)
    assert result["data"]["fecha_entrega"] == "2024-03-10T15:30:00.000Z"


def test_non_admin_cannot_transition(db_session, make_order, owner):
    oid = make_order()
    with pytest.raises(Forbidden):
        OrderStatusService(db_session).request_transition(oid, "processing", owner)
    assert _state(db_session, oid) == "pending"


def test_unknown_order(db_session, admin):
    with pytest.raises(NotFound):
        OrderStatusService(db_session).request_transition(999, "processing", admin)


def test_unknown_state_is_invalid_input(db_session, make_order, admin):
    oid = make_order()
    with pytest.raises(InvalidInput):
        OrderStatusService(db_session).request_transition(oid, "lost", admin)


def test_terminal_state_rejects_everything(db_session, make_order, admin):
    oid = make_order(state="delivered")
    with pytest.raises(InvalidTransition) as exc:
        OrderStatusService(db_session).request_transition(oid, "cancelled", admin)
    assert exc.value.current_state == "delivered"
    assert exc.value.allowed == []


def test_owner_cancels_pending_order(db_session, make_order, owner):
    oid = make_order()
    result = OrderStatusService(db_session).cancel_order(oid, "changed mind", owner)
    assert result["data"]["estado"] == "cancelled"
    assert result["motivo"] == "changed mind"
    history = OrderRepository(db_session).list_history(oid)
    assert len(history) == 1
    assert history[0].previous_state == "pending"
    assert history[0].changed_by == owner.id


def test_cancel_requires_reason(db_session, make_order, owner):
    oid = make_order()
    with pytest.raises(InvalidInput):
        OrderStatusService(db_session).cancel_order(oid, "   ", owner)


def test_other_user_cannot_cancel(db_session, make_order, other_user):
    oid = make_order()
    with pytest.raises(Forbidden):
        OrderStatusService(db_session).cancel_order(oid, "not mine", other_user)


def test_cancel_shipped_reports_cancellable_states(db_session, make_order, owner):
    oid = make_order(state="shipped")
    with pytest.raises(InvalidTransition) as exc:
        OrderStatusService(db_session).cancel_order(oid, "too late", owner)
    payload = exc.value.to_payload()
    assert payload["estado_actual"] == "shipped"
    assert payload["transiciones_validas"] == ["delivered"]
    assert payload["estados_cancelables"] == ["pending", "processing"]


def test_lost_race_is_invalid_transition(db_session, make_order, admin):
    oid = make_order()
    service = OrderStatusService(db_session, RacingRepository(db_session))
    with pytest.raises(InvalidTransition) as exc:
        service.request_transition(oid, "processing", admin)
    assert exc.value.current_state == "cancelled"
    assert OrderRepository(db_session).list_history(oid) == []


def test_history_failure_rolls_back_state(db_session, make_order, admin):
    oid = make_order()
    service = OrderStatusService(db_session, BrokenHistoryRepository(db_session))
    with pytest.raises(Internal):
        service.request_transition(oid, "processing", admin)
    assert _state(db_session, oid) == "pending"
    assert OrderRepository(db_session).list_history(oid) == []


def test_history_visibility(db_session, make_order, owner, other_user, admin):
    oid = make_order()
    service = OrderStatusService(db_session)
    service.request_transition(oid, "processing", admin)
    assert service.get_history(oid, owner)["total_cambios"] == 1
    with pytest.raises(Forbidden):
        service.get_history(oid, other_user)


def test_statistics_scoped_to_owner(db_session, make_order, owner, admin):
    make_order(state="pending", total="10.00")
    make_order(state="pending", total="30.00")
    make_order(user_id="user-2", state="shipped", total="99.00")
    service = OrderStatusService(db_session)

    mine = service.get_status_statistics(owner)["data"]
    assert mine["estadisticas_por_estado"] == [
        {"estado": "pending", "cantidad": 2, "valor_total": 40.0, "valor_promedio": 20.0},
    ]

    everything = service.get_status_statistics(admin)["data"]
    assert [s["estado"] for s in everything["estadisticas_por_estado"]] == ["pending", "shipped"]
    assert everything["estados_disponibles"] == ["pending", "processing", "shipped", "delivered", "cancelled"]
    assert everything["transiciones_validas"]["shipped"] == ["delivered"]


def test_transition_reason_length_boundary(db_session, make_order, admin):
    service = OrderStatusService(db_session)
    oid = make_order()
    with pytest.raises(InvalidInput):
        service.request_transition(oid, "processing", admin, reason="x" * 501)
    assert _state(db_session, oid) == "pending"

    result = service.request_transition(oid, "processing", admin, reason="x" * 500)
    assert result["transicion"]["motivo"] == "x" * 500


def test_cancel_reason_length_boundary(db_session, make_order, owner):
    service = OrderStatusService(db_session)
    oid = make_order()
    with pytest.raises(InvalidInput):
        service.cancel_order(oid, "y" * 501, owner)
    assert OrderRepository(db_session).list_history(oid) == []

    result = service.cancel_order(oid, "y" * 500, owner)
    assert result["data"]["estado"] == "cancelled"
    assert OrderRepository(db_session).list_history(oid)[0].reason == "y" * 500


def test_delivered_at_only_with_delivered_target(db_session, make_order, admin):
    oid = make_order()
    with pytest.raises(InvalidInput):
        OrderStatusService(db_session).request_transition(
            oid, "processing", admin, delivered_at=datetime(2024, 3, 10, 15, 30, 0)
        )
    assert _state(db_session, oid) == "pending"
