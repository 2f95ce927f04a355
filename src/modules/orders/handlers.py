"""Bus subscribers for order and delivery events.

They only log today; notification fan-out hooks in here.
"""

from __future__ import annotations

import structlog

from modules.orders.events import (
    DeliveryAttemptRecorded,
    DeliveryDelayed,
    OrderCreated,
    OrderStatusChanged,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderCreatedHandler(IEventHandler[OrderCreated]):
    def handle(self, event: OrderCreated) -> None:
        logger.info(
            "order.event.created",
            order_id=str(event.aggregate_id),
            order_number=event.order_number,
            total_amount=event.total_amount,
        )


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            "order.event.status_changed",
            order_id=str(event.aggregate_id),
            old_status=event.old_status,
            new_status=event.new_status,
            actor=event.actor,
        )


class DeliveryAttemptRecordedHandler(IEventHandler[DeliveryAttemptRecorded]):
    def handle(self, event: DeliveryAttemptRecorded) -> None:
        logger.info(
            "order.event.delivery_attempt",
            order_id=str(event.aggregate_id),
            attempt_number=event.attempt_number,
            status=event.status,
        )


class DeliveryDelayedHandler(IEventHandler[DeliveryDelayed]):
    def handle(self, event: DeliveryDelayed) -> None:
        logger.warning(
            "order.event.delivery_delayed",
            order_id=str(event.aggregate_id),
            order_number=event.order_number,
            days_late=event.days_late,
        )


order_created_handler = OrderCreatedHandler()
order_status_changed_handler = OrderStatusChangedHandler()
delivery_attempt_recorded_handler = DeliveryAttemptRecordedHandler()
delivery_delayed_handler = DeliveryDelayedHandler()
