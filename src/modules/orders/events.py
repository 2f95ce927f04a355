"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class OrderCreated(DomainEvent):
    """Raised when an order is created."""

    order_number: str
    total_amount: str
    payment_method: str


@dataclass(frozen=True, kw_only=True)
class OrderStatusChanged(DomainEvent):
    """Raised when an order status changes."""

    old_status: Optional[str]
    new_status: str
    actor: str


@dataclass(frozen=True, kw_only=True)
class OrderPaymentStatusChanged(DomainEvent):
    old_payment_status: str
    new_payment_status: str


@dataclass(frozen=True, kw_only=True)
class TrackingEventAdded(DomainEvent):
    status: str
    source: str
    location: str = ""


@dataclass(frozen=True, kw_only=True)
class DeliveryAttemptRecorded(DomainEvent):
    attempt_number: int
    status: str


@dataclass(frozen=True, kw_only=True)
class DeliveryDelayed(DomainEvent):
    """Raised by the periodic scan when an order is past its delivery window."""

    order_number: str
    days_late: int
