"""What the order services need from storage.

Extends ``ILockingRepository[Order]`` with what the Order aggregate needs:
atomic creation with items, the version-guarded state write, and the
append-only logs hanging off an order (status history, tracking events,
delivery attempts).

``OrderService``, ``TrackingService`` and the delivery-delay task only
see this contract; ``factories.build_services`` supplies the Django one.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from modules.core.repositories.interfaces import ILockingRepository

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.orders.models import (
        DeliveryAttempt,
        Order,
        OrderStatusHistory,
        TrackingEvent,
    )


class IOrderRepository(ILockingRepository["Order"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Insert an order and its lines in one transaction.

        ``data`` must include ``items`` (list of dicts with ``product_id``,
        ``quantity``, ``unit_price``) and may include ``customer_id``,
        ``payment_method``, ``idempotency_key`` and ``notes``.
        """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with prefetched items and status history."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its checkout idempotency key."""

    @abstractmethod
    def get_by_tracking_number(self, tracking_number: str) -> Optional[Order]:
        """Retrieve the order shipped under *tracking_number*."""

    @abstractmethod
    def compare_and_set(
        self,
        id: str,
        expected_version: int,
        changes: Dict[str, Any],
        expected_status: Optional[str] = None,
    ) -> bool:
        """Apply *changes* only if the row still has the expected version.

        Increments ``version``.  Returns ``False`` when zero rows matched.
        """

    @abstractmethod
    def update_fields(self, order: Order, fields: List[str]) -> Order:
        """Persist non-state fields of an order (tracking info, notes)."""

    @abstractmethod
    def flush_events(self, order: Order) -> int:
        """Write the order's collected domain events to the outbox."""

    # Status history

    @abstractmethod
    def add_history(
        self,
        order: Order,
        old_status: Optional[str],
        new_status: str,
        notes: str = "",
        actor: str = "system",
        idempotency_key: Optional[str] = None,
    ) -> OrderStatusHistory:
        """Append a status change with the next per-order sequence."""

    @abstractmethod
    def get_history_by_key(
        self, order_id: str, idempotency_key: str
    ) -> Optional[OrderStatusHistory]:
        """Retrieve the history entry written under *idempotency_key*."""

    @abstractmethod
    def list_history(self, order_id: str) -> List[OrderStatusHistory]:
        """History entries of an order, oldest first."""

    # Tracking events and delivery attempts

    @abstractmethod
    def add_tracking_event(self, order: Order, data: Dict[str, Any]) -> TrackingEvent:
        """Append a tracking event."""

    @abstractmethod
    def list_tracking_events(self, order_id: str) -> List[TrackingEvent]:
        """Tracking events of an order, ascending by ``event_time``."""

    @abstractmethod
    def add_delivery_attempt(
        self, order: Order, data: Dict[str, Any]
    ) -> DeliveryAttempt:
        """Append a delivery attempt numbered ``max(existing) + 1``."""

    @abstractmethod
    def list_delivery_attempts(
        self, order_id: str, since: Optional[datetime] = None
    ) -> List[DeliveryAttempt]:
        """Delivery attempts of an order, newest first."""

    @abstractmethod
    def count_delivery_attempts(self, order_id: str) -> int:
        """Number of delivery attempts recorded for an order."""

    @abstractmethod
    def list_overdue(self, eta_cutoff: datetime, created_cutoff: datetime) -> QuerySet:
        """Undelivered open orders whose delivery window closed.

        An order is overdue when its ``estimated_delivery`` is before
        *eta_cutoff*, or when it has none and was created before
        *created_cutoff*.
        """
