"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.  Each one
extends the shared taxonomy in ``modules.core.exceptions`` so the API
layer maps it to an HTTP status without per-view ``try`` blocks.
"""

from __future__ import annotations

from modules.core.exceptions import (
    GuardFailed,
    InsufficientStock,
    InvalidTransition,
    NotFound,
    StateConflict,
    ValidationError,
)

__all__ = [
    "CancellationNotAllowed",
    "DeliveryAttemptRejected",
    "InactiveProduct",
    "InsufficientStock",
    "InvalidOrderTransition",
    "OrderNotFound",
    "OrderStateConflict",
    "ProductNotFound",
    "StatusWriteViolation",
    "UnknownOrderStatus",
]


class OrderNotFound(NotFound):
    """The requested order does not exist."""


class ProductNotFound(NotFound):
    """A product referenced by an order item does not exist."""


class InactiveProduct(GuardFailed):
    """A product referenced by an order item is not sellable."""


class UnknownOrderStatus(ValidationError):
    """The requested status is not part of the order vocabulary."""


class InvalidOrderTransition(InvalidTransition):
    """The requested edge is not in the transition graph."""


class CancellationNotAllowed(GuardFailed):
    """A paid order was cancelled without refund authorization."""


class DeliveryAttemptRejected(GuardFailed):
    """The order cannot take another delivery attempt right now."""


class OrderStateConflict(StateConflict):
    """The order changed between read and write; re-read and retry."""


class StatusWriteViolation(Exception):
    """Code tried to save ``Order.status`` outside the state machine."""
