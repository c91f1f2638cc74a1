import pytest

from errors import StateTransitionError, ValidationError
from models import Order, OrderStatus
from order_state import OrderStateMachine, can_transition, next_status


def _order(status=OrderStatus.PENDING):
    return Order(
        id="TAR-1-abcd", number=1, customer_name="Ana", customer_phone="555",
        address="Centro", items=[], subtotal=0.0, tip=0.0, total=0.0, status=status,
    )


def test_advance_walks_the_chain():
    machine = OrderStateMachine(_order())
    for expected in (OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.DELIVERED):
        assert machine.advance().status == expected
    assert [h["status"] for h in machine.get_history()] == ["preparing", "ready", "delivered"]


@pytest.mark.parametrize("status", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
def test_terminal_states_cannot_advance_or_cancel(status):
    machine = OrderStateMachine(_order(status))
    with pytest.raises(StateTransitionError):
        machine.advance()
    with pytest.raises(StateTransitionError):
        machine.cancel()


@pytest.mark.parametrize("status", [OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.READY])
def test_cancel_from_non_terminal(status):
    order = OrderStateMachine(_order(status)).cancel("customer asked")
    assert order.status == OrderStatus.CANCELLED
    assert order.status_history[-1]["reason"] == "customer asked"


def test_skipping_ahead_is_rejected():
    machine = OrderStateMachine(_order())
    with pytest.raises(ValidationError) as exc:
        machine.transition(OrderStatus.DELIVERED)
    assert exc.value.reason == "invalid_transition"
    assert machine.current_state == OrderStatus.PENDING


def test_transition_table():
    assert can_transition(OrderStatus.READY, OrderStatus.DELIVERED)
    assert not can_transition(OrderStatus.READY, OrderStatus.PENDING)
    assert next_status(OrderStatus.DELIVERED) is None
