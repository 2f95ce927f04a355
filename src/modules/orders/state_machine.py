"""Order state machine: edge and guard checks over ``VALID_TRANSITIONS``.

Pure functions; persistence and the compare-and-set write live in
``OrderService.transition``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from modules.orders.constants import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
    PaymentStatus,
)
from modules.orders.exceptions import (
    CancellationNotAllowed,
    InvalidOrderTransition,
    UnknownOrderStatus,
)

if TYPE_CHECKING:
    from modules.orders.models import Order


def allowed_targets(status: str) -> list[str]:
    """Next statuses reachable from *status*, in declaration order."""
    targets = VALID_TRANSITIONS.get(status, set())
    return [value for value in OrderStatus.values if value in targets]


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATES


def can_transition(current: str, target: str) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


def ensure_known_status(status: str) -> None:
    if status not in OrderStatus.values:
        raise UnknownOrderStatus(f"Unknown order status {status!r}.", field="status")


def check_edge(current: str, target: str) -> None:
    """Raise ``InvalidOrderTransition`` unless ``current -> target`` is an edge."""
    if can_transition(current, target):
        return
    allowed = allowed_targets(current)
    allowed_text = ", ".join(allowed) if allowed else "none (terminal status)"
    raise InvalidOrderTransition(
        f"Cannot transition from {current} to {target}. "
        f"Allowed next statuses: {allowed_text}.",
        current_status=current,
        allowed=allowed,
    )


def check_guard(order: Order, target: str, authorize_refund: bool = False) -> None:
    """Business preconditions beyond graph membership.

    Cancelling a paid order requires an explicit refund authorization.
    """
    if (
        target == OrderStatus.CANCELLED
        and order.payment_status == PaymentStatus.PAID
        and not authorize_refund
    ):
        raise CancellationNotAllowed(
            f"Order {order.order_number} is paid; cancelling it requires "
            f"refund authorization."
        )


def payment_status_after(
    payment_status: str, target: str, authorize_refund: bool = False
) -> str:
    """Payment status implied by entering *target*."""
    if payment_status != PaymentStatus.PAID:
        return payment_status
    if target == OrderStatus.REFUNDED:
        return PaymentStatus.REFUNDED
    if target == OrderStatus.CANCELLED and authorize_refund:
        return PaymentStatus.REFUNDED
    return payment_status
