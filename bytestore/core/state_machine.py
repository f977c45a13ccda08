from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple

from bytestore.core.errors import InvalidTransition


class OrderState(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# from -> allowed successors; built once, never mutated
TRANSITIONS: Mapping[OrderState, FrozenSet[OrderState]] = MappingProxyType({
    OrderState.PENDING: frozenset({OrderState.PROCESSING, OrderState.CANCELLED}),
    OrderState.PROCESSING: frozenset({OrderState.SHIPPED, OrderState.CANCELLED}),
    OrderState.SHIPPED: frozenset({OrderState.DELIVERED}),
    OrderState.DELIVERED: frozenset(),
    OrderState.CANCELLED: frozenset(),
})

# fixed domain ordering used for reports
STATE_ORDER: Tuple[OrderState, ...] = (
    OrderState.PENDING,
    OrderState.PROCESSING,
    OrderState.SHIPPED,
    OrderState.DELIVERED,
    OrderState.CANCELLED,
)
STATE_RANK: Mapping[str, int] = MappingProxyType({s.value: i for i, s in enumerate(STATE_ORDER)})

TERMINAL_STATES: FrozenSet[OrderState] = frozenset(s for s, nxt in TRANSITIONS.items() if not nxt)

CANCELLABLE_STATES: FrozenSet[OrderState] = frozenset(
    s for s, nxt in TRANSITIONS.items() if OrderState.CANCELLED in nxt
)


def ordered(states) -> list:
    """Return state values sorted by STATE_ORDER."""
    return sorted((OrderState(s).value for s in states), key=STATE_RANK.__getitem__)


def transition_table() -> dict:
    """JSON-friendly copy of the transition table."""
    return {s.value: ordered(TRANSITIONS[s]) for s in STATE_ORDER}


@dataclass(frozen=True)
class Transition:
    from_state: OrderState
    to_state: OrderState
    reason: Optional[str]
    actor: str
    at: datetime

    def summary(self) -> dict:
        return {"de": self.from_state.value, "a": self.to_state.value, "motivo": self.reason}


class OrderStatusMachine:
    """
    Validates order state changes against TRANSITIONS.

    Usage:
      sm = OrderStatusMachine(order.state)
      t = sm.plan("processing", actor=principal.id, reason="picked")
      # persist t.to_state conditioned on t.from_state still holding

    The machine itself holds no persistence; callers apply the planned
    Transition atomically together with its history record.
    """

    def __init__(self, state: str):
        self.state = OrderState(state)

    def allowed_next(self) -> list:
        return ordered(TRANSITIONS[self.state])

    def can_transition(self, to_state: str) -> bool:
        return OrderState(to_state) in TRANSITIONS[self.state]

    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def plan(self, to_state: str, actor: str, reason: Optional[str] = None,
             at: Optional[datetime] = None) -> Transition:
        """
        Return the Transition from the current state to `to_state`.
        Raises InvalidTransition when the table does not allow it.
        """
        target = OrderState(to_state)
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransition(self.state.value, self.allowed_next(), requested=target.value)
        return Transition(
            from_state=self.state,
            to_state=target,
            reason=reason,
            actor=actor,
            at=at or datetime.utcnow(),
        )


def is_valid_path(edges) -> bool:
    """
    True if the (previous, new) pairs, in order, form a walk through the
    transition table starting at `pending`.
    """
    current = OrderState.PENDING
    for prev, new in edges:
        if OrderState(prev) != current or OrderState(new) not in TRANSITIONS[current]:
            return False
        current = OrderState(new)
    return True
