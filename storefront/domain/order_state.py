# storefront/domain/order_state.py
"""Order status lifecycle.

PENDING is the only non-terminal status. An order leaves it exactly once,
to COMPLETE or FAILED, and never moves again. Transitions operate on frozen
``OrderRead`` snapshots and return a new snapshot; writing the result is the
order store's job.
"""

from __future__ import annotations

from typing import Any

from storefront.domain.enums import OrderStatus
from storefront.schemas.order import OrderRead
from storefront.services.exceptions import InvalidTransitionError

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.pending: frozenset({OrderStatus.complete, OrderStatus.failed}),
    OrderStatus.complete: frozenset(),
    OrderStatus.failed: frozenset(),
}

# Fields a transition may set alongside the status.
_TRANSITION_FIELDS = frozenset({"failure_reason", "payment_reference"})


def is_terminal(status: OrderStatus) -> bool:
    return not ALLOWED_TRANSITIONS[status]


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(order: OrderRead, target: OrderStatus, **changes: Any) -> OrderRead:
    """Return a copy of ``order`` moved to ``target``.

    Raises ``InvalidTransitionError`` when the move is not allowed; the input
    snapshot is left untouched either way.
    """
    if not can_transition(order.status, target):
        raise InvalidTransitionError(
            f"Order {order.id} cannot move from {order.status.value} to {target.value}"
        )
    unknown = set(changes) - _TRANSITION_FIELDS
    if unknown:
        raise ValueError(f"Unsupported transition fields: {sorted(unknown)}")
    return order.model_copy(update={"status": target, **changes})
