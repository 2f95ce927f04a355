"""``IOrderRepository`` on the Django ORM.

An order and its lines are inserted in one transaction.

Concurrency control on state changes is optimistic: ``compare_and_set``
issues ``UPDATE ... WHERE id=? AND version=? [AND status=?]`` and reports
whether a row matched.  Append-only children take the next per-order
number (``sequence``, ``attempt_number``) while the caller holds the
order's row lock or has just won the version check.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, Max, Q, QuerySet
from django.utils import timezone

from modules.core.outbox import flush_entity_events
from modules.orders.constants import TERMINAL_STATES, OrderStatus, PaymentMethod
from modules.orders.models import (
    DeliveryAttempt,
    Order,
    OrderItem,
    OrderStatusHistory,
    TrackingEvent,
)
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    def _base_queryset(self) -> QuerySet:
        return Order.objects.select_related("customer").prefetch_related(
            "items__product", "status_history"
        )

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        order = Order(
            customer_id=data.get("customer_id"),
            payment_method=data.get("payment_method", PaymentMethod.CARD),
            idempotency_key=data.get("idempotency_key"),
            notes=data.get("notes", ""),
        )

        items = data.get("items", [])
        order.total_amount = sum(
            (item["unit_price"] * item["quantity"] for item in items), Decimal("0.00")
        )
        order.save()

        for item_data in items:
            OrderItem.objects.create(
                order=order,
                product_id=item_data["product_id"],
                quantity=item_data["quantity"],
                unit_price=item_data["unit_price"],
            )

        logger.info("order.persisted", order_id=str(order.id), item_count=len(items))
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with eager-loaded relations.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return self._base_queryset().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Order]:
        try:
            return Order.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        return self._base_queryset().filter(idempotency_key=key).first()

    def get_by_tracking_number(self, tracking_number: str) -> Optional[Order]:
        if not tracking_number:
            return None
        return Order.objects.filter(tracking_number=tracking_number).first()

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """List orders with optional ORM look-ups and eager-loaded relations."""
        queryset = Order.objects.select_related("customer").prefetch_related("items")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def list_overdue(self, eta_cutoff: datetime, created_cutoff: datetime) -> QuerySet:
        open_statuses = (
            set(OrderStatus.values) - TERMINAL_STATES - {OrderStatus.DELIVERED}
        )
        return Order.objects.filter(status__in=open_statuses).filter(
            Q(estimated_delivery__lt=eta_cutoff)
            | Q(estimated_delivery__isnull=True, created_at__lt=created_cutoff)
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist non-state fields and flush collected domain events."""
        entity.save()
        event_count = flush_entity_events(entity, topic="orders")
        logger.info("order.saved", order_id=str(entity.id), event_count=event_count)
        return entity

    def update_fields(self, order: Order, fields: List[str]) -> Order:
        order.save(update_fields=fields)
        return order

    def flush_events(self, order: Order) -> int:
        return flush_entity_events(order, topic="orders")

    def compare_and_set(
        self,
        id: str,
        expected_version: int,
        changes: Dict[str, Any],
        expected_status: Optional[str] = None,
    ) -> bool:
        queryset = Order.objects.filter(id=id, version=expected_version)
        if expected_status is not None:
            queryset = queryset.filter(status=expected_status)
        updated = queryset.update(
            **changes,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        return updated == 1

    # ------------------------------------------------------------------
    # Status history
    # ------------------------------------------------------------------

    def add_history(
        self,
        order: Order,
        old_status: Optional[str],
        new_status: str,
        notes: str = "",
        actor: str = "system",
        idempotency_key: Optional[str] = None,
    ) -> OrderStatusHistory:
        last = OrderStatusHistory.objects.filter(order_id=order.id).aggregate(
            last=Max("sequence")
        )["last"]
        history = OrderStatusHistory.objects.create(
            order_id=order.id,
            sequence=(last or 0) + 1,
            old_status=old_status,
            new_status=new_status,
            notes=notes,
            actor=actor,
            idempotency_key=idempotency_key,
        )
        logger.info(
            "order.history_added",
            order_id=str(order.id),
            sequence=history.sequence,
            old_status=old_status,
            new_status=new_status,
        )
        return history

    def get_history_by_key(
        self, order_id: str, idempotency_key: str
    ) -> Optional[OrderStatusHistory]:
        try:
            return OrderStatusHistory.objects.filter(
                order_id=order_id, idempotency_key=idempotency_key
            ).first()
        except (ValueError, ValidationError):
            return None

    def list_history(self, order_id: str) -> List[OrderStatusHistory]:
        return list(
            OrderStatusHistory.objects.filter(order_id=order_id).order_by(
                "created_at", "sequence"
            )
        )

    # ------------------------------------------------------------------
    # Tracking events and delivery attempts
    # ------------------------------------------------------------------

    def add_tracking_event(self, order: Order, data: Dict[str, Any]) -> TrackingEvent:
        return TrackingEvent.objects.create(order_id=order.id, **data)

    def list_tracking_events(self, order_id: str) -> List[TrackingEvent]:
        return list(
            TrackingEvent.objects.filter(order_id=order_id).order_by(
                "event_time", "created_at"
            )
        )

    def add_delivery_attempt(
        self, order: Order, data: Dict[str, Any]
    ) -> DeliveryAttempt:
        last = DeliveryAttempt.objects.filter(order_id=order.id).aggregate(
            last=Max("attempt_number")
        )["last"]
        return DeliveryAttempt.objects.create(
            order_id=order.id,
            attempt_number=(last or 0) + 1,
            **data,
        )

    def list_delivery_attempts(
        self, order_id: str, since: Optional[datetime] = None
    ) -> List[DeliveryAttempt]:
        queryset = DeliveryAttempt.objects.filter(order_id=order_id)
        if since is not None:
            queryset = queryset.filter(created_at__gte=since)
        return list(queryset.order_by("-attempt_number"))

    def count_delivery_attempts(self, order_id: str) -> int:
        return DeliveryAttempt.objects.filter(order_id=order_id).count()
