"""
Order State Machine
===================
Formal status transitions for the order lifecycle.

State invariants:
- Progress is monotonic: pending -> preparing -> ready -> delivered
- Cancellation is reachable from any non-terminal state
- Delivered and cancelled are terminal (no way out)
- Every transition is validated, logged and recorded in the order history
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Dict, List

from prometheus_client import Counter

from errors import StateTransitionError
from models import Order, OrderStatus, TERMINAL_STATUSES


logger = logging.getLogger(__name__)


order_state_transitions = Counter(
    'order_state_transitions_total',
    'Order state transitions',
    ['from_state', 'to_state']
)


# Define valid state transitions
VALID_TRANSITIONS: Dict[OrderStatus, set] = {
    OrderStatus.PENDING: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

# Single forward step used by advance()
NEXT_STATUS: Dict[OrderStatus, OrderStatus] = {
    OrderStatus.PENDING: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.DELIVERED,
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


def next_status(current: OrderStatus) -> Optional[OrderStatus]:
    """Next status in the forward chain, or None from a terminal state."""
    return NEXT_STATUS.get(current)


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


class OrderStateMachine:
    """
    Applies status transitions to one order.

    Enforces:
    - Valid transition paths only
    - State change logging
    - Transition metrics
    """

    def __init__(self, order: Order):
        self.order = order

    @property
    def current_state(self) -> OrderStatus:
        return self.order.status

    def can_transition_to(self, target_state: OrderStatus) -> bool:
        return can_transition(self.order.status, target_state)

    def transition(self, target_state: OrderStatus, reason: Optional[str] = None) -> Order:
        """
        Attempt state transition with validation.

        Args:
            target_state: Desired next state
            reason: Optional reason for transition

        Returns:
            The (mutated) order

        Raises:
            StateTransitionError: If transition is invalid
        """
        current = self.order.status

        if not self.can_transition_to(target_state):
            error_msg = (
                f"Invalid transition: {current.value} -> {target_state.value}"
            )
            logger.warning(
                f"{error_msg} (order {self.order.id})"
            )
            raise StateTransitionError(error_msg)

        now = datetime.now(timezone.utc).isoformat()
        self.order.status = target_state
        self.order.updated_at = now
        self.order.status_history.append({
            "status": target_state.value,
            "at": now,
            "reason": reason or "",
        })

        order_state_transitions.labels(
            from_state=current.value,
            to_state=target_state.value
        ).inc()

        logger.info(
            f"Order {self.order.id}: {current.value} -> {target_state.value}"
        )

        return self.order

    def advance(self) -> Order:
        """Move to the single next state; terminal states cannot advance."""
        target = next_status(self.order.status)
        if target is None:
            raise StateTransitionError(
                f"Order {self.order.id} is {self.order.status.value} and cannot advance"
            )
        return self.transition(target, reason="advance")

    def cancel(self, reason: Optional[str] = None) -> Order:
        if is_terminal(self.order.status):
            raise StateTransitionError(
                f"Order {self.order.id} is {self.order.status.value} and cannot be cancelled"
            )
        return self.transition(OrderStatus.CANCELLED, reason=reason or "cancel")

    def get_history(self) -> List[Dict[str, str]]:
        return list(self.order.status_history)

    def __repr__(self):
        return f"<OrderStateMachine order_id={self.order.id} state={self.order.status.value}>"
