"""Tracking event log and delivery attempt log.

Tracking events are informational: appending one never changes
``Order.status``.  Delivery attempts are numbered per order under the
order's row lock; a run of failed attempts escalates the order to
``delivery_failed`` through the ``FulfillmentCoordinator``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.db import IntegrityError, transaction

from modules.core.exceptions import ValidationError
from modules.orders.constants import (
    DELIVERY_ATTEMPT_MAX_RETRIES,
    DELIVERY_ATTEMPT_STATES,
    DeliveryAttemptStatus,
    TrackingSource,
)
from modules.orders.events import DeliveryAttemptRecorded, TrackingEventAdded
from modules.orders.exceptions import (
    DeliveryAttemptRejected,
    OrderNotFound,
    OrderStateConflict,
)
from modules.orders.timeline import project

if TYPE_CHECKING:
    from modules.orders.dtos import CarrierUpdateDTO, TimelineDTO, UpdateTrackingInfoDTO
    from modules.orders.fulfillment import FulfillmentCoordinator
    from modules.orders.models import DeliveryAttempt, Order, TrackingEvent
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.services import OrderService, TransitionResult

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AttemptResult:
    attempt: DeliveryAttempt
    escalation: Optional[TransitionResult] = None


@dataclass(frozen=True)
class TrackingDetail:
    order: Order
    events: List[TrackingEvent]
    attempts: List[DeliveryAttempt]
    timeline: TimelineDTO


def build_tracking_url(carrier: str, tracking_number: str) -> str:
    """Carrier tracking page for *tracking_number*, or ``""`` if unknown."""
    template = settings.CARRIER_TRACKING_URL_TEMPLATES.get(carrier.strip().lower())
    if not template or not tracking_number:
        return ""
    return template.format(tracking_number=tracking_number)


class TrackingService:
    def __init__(
        self,
        order_repository: IOrderRepository,
        order_service: OrderService,
        coordinator: FulfillmentCoordinator,
        max_attempts: Optional[int] = None,
    ) -> None:
        self._order_repo = order_repository
        self._orders = order_service
        self._coordinator = coordinator
        self._max_attempts = (
            max_attempts if max_attempts is not None else settings.DELIVERY_MAX_ATTEMPTS
        )

    # ------------------------------------------------------------------
    # Tracking events
    # ------------------------------------------------------------------

    @transaction.atomic
    def add_tracking_event(
        self,
        order_id: UUID | str,
        status: str,
        location: str = "",
        description: str = "",
        source: str = TrackingSource.STAFF,
        event_time: Optional[datetime] = None,
        actor: str = "system",
    ) -> TrackingEvent:
        """Append a tracking event.  ``Order.status`` is left untouched.

        Raises:
            ValidationError: blank status.
            OrderNotFound: order does not exist.
        """
        status = (status or "").strip()
        if not status:
            raise ValidationError("Tracking status is required.", field="status")
        order = self._orders.get_order(str(order_id))
        return self._append_event(
            order, status, location, description, source, event_time, actor
        )

    @transaction.atomic
    def handle_carrier_update(self, dto: CarrierUpdateDTO) -> TrackingEvent:
        """Record a carrier scan against the order shipped under its number.

        Raises:
            OrderNotFound: no order has that tracking number.
        """
        order = self._order_repo.get_by_tracking_number(dto.tracking_number)
        if order is None:
            logger.warning(
                "tracking.unknown_tracking_number",
                tracking_number=dto.tracking_number,
            )
            raise OrderNotFound(
                f"No order found for tracking number {dto.tracking_number}."
            )
        return self._append_event(
            order,
            dto.status.strip(),
            dto.location,
            dto.description,
            TrackingSource.CARRIER,
            dto.event_time,
            actor=order.carrier or "carrier",
        )

    @transaction.atomic
    def update_tracking_info(
        self, order_id: UUID | str, dto: UpdateTrackingInfoDTO, actor: str = "system"
    ) -> Order:
        """Apply the supplied shipping fields and rebuild ``tracking_url``.

        A new tracking number appends a ``label_created`` tracking event.

        Raises:
            OrderNotFound: order does not exist.
            ValidationError: tracking number already used by another order.
        """
        order = self._orders.get_order(str(order_id))
        supplied = dto.model_fields_set
        previous_number = order.tracking_number
        fields = []

        if "tracking_number" in supplied:
            number = (dto.tracking_number or "").strip()
            other = self._order_repo.get_by_tracking_number(number)
            if other is not None and other.id != order.id:
                raise ValidationError(
                    f"Tracking number {number} is already assigned to another order.",
                    field="tracking_number",
                )
            order.tracking_number = number
            fields.append("tracking_number")
        if "carrier" in supplied:
            order.carrier = (dto.carrier or "").strip()
            fields.append("carrier")
        if "estimated_delivery" in supplied:
            order.estimated_delivery = dto.estimated_delivery
            fields.append("estimated_delivery")
        if "delivery_notes" in supplied:
            order.delivery_notes = dto.delivery_notes or ""
            fields.append("delivery_notes")

        tracking_url = build_tracking_url(order.carrier, order.tracking_number)
        if tracking_url != order.tracking_url:
            order.tracking_url = tracking_url
            fields.append("tracking_url")

        if fields:
            self._order_repo.update_fields(order, fields)
            logger.info(
                "tracking.info_updated",
                order_id=str(order.id),
                fields=fields,
                actor=actor,
            )

        if order.tracking_number and order.tracking_number != previous_number:
            carrier = order.carrier or "carrier"
            self._append_event(
                order,
                "label_created",
                "",
                f"Shipping label created with {carrier} ({order.tracking_number}).",
                TrackingSource.SYSTEM,
                None,
                actor,
            )
        return self._orders.get_order(str(order.id))

    # ------------------------------------------------------------------
    # Delivery attempts
    # ------------------------------------------------------------------

    @transaction.atomic
    def record_delivery_attempt(
        self,
        order_id: UUID | str,
        status: str,
        notes: str = "",
        contact: str = "",
        actor: str = "system",
    ) -> AttemptResult:
        """Append a delivery attempt, escalating after repeated failures.

        Raises:
            ValidationError: unknown attempt status.
            OrderNotFound: order does not exist.
            DeliveryAttemptRejected: order is not with the carrier, or the
                attempt limit has been reached.
        """
        if status not in DeliveryAttemptStatus.values:
            raise ValidationError(
                f"Unknown delivery attempt status {status!r}.", field="status"
            )

        order = self._order_repo.get_for_update(str(order_id))
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        log = logger.bind(order_id=str(order.id), order_status=order.status)

        if order.status not in DELIVERY_ATTEMPT_STATES:
            raise DeliveryAttemptRejected(
                f"Delivery attempts cannot be recorded while the order is "
                f"{order.status}."
            )
        if self._order_repo.count_delivery_attempts(str(order.id)) >= self._max_attempts:
            raise DeliveryAttemptRejected(
                f"Order {order.order_number} already has {self._max_attempts} "
                f"delivery attempts."
            )

        attempt = None
        for retry in range(1, DELIVERY_ATTEMPT_MAX_RETRIES + 1):
            try:
                with transaction.atomic():
                    attempt = self._order_repo.add_delivery_attempt(
                        order,
                        {
                            "status": status,
                            "notes": notes,
                            "contact": contact,
                            "actor": actor,
                        },
                    )
                break
            except IntegrityError:
                log.warning("tracking.attempt_number_collision", retry=retry)
        if attempt is None:
            raise OrderStateConflict(
                f"Could not number a delivery attempt for order {order.order_number}."
            )

        order.record_event(
            DeliveryAttemptRecorded(
                aggregate_id=order.id,
                attempt_number=attempt.attempt_number,
                status=attempt.status,
            )
        )
        self._order_repo.flush_events(order)
        log.info(
            "tracking.delivery_attempt_recorded",
            attempt_number=attempt.attempt_number,
            status=attempt.status,
            contact=contact,
        )

        escalation = None
        if attempt.status == DeliveryAttemptStatus.FAILED:
            escalation = self._coordinator.escalate_failed_deliveries(
                order, self._orders, attempt.attempt_number
            )
        return AttemptResult(attempt=attempt, escalation=escalation)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_tracking(self, order_id: UUID | str) -> TrackingDetail:
        order = self._orders.get_order(str(order_id))
        events = self._order_repo.list_tracking_events(str(order.id))
        return TrackingDetail(
            order=order,
            events=events,
            attempts=self._order_repo.list_delivery_attempts(str(order.id)),
            timeline=project(order, self._order_repo.list_history(str(order.id)), events),
        )

    def get_timeline(self, order_id: UUID | str) -> TimelineDTO:
        order = self._orders.get_order(str(order_id))
        return project(
            order,
            self._order_repo.list_history(str(order.id)),
            self._order_repo.list_tracking_events(str(order.id)),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _append_event(
        self,
        order: Order,
        status: str,
        location: str,
        description: str,
        source: str,
        event_time: Optional[datetime],
        actor: str,
    ) -> TrackingEvent:
        data = {
            "status": status,
            "location": location or "",
            "description": description or "",
            "source": source,
            "actor": actor,
        }
        if event_time is not None:
            data["event_time"] = event_time
        event = self._order_repo.add_tracking_event(order, data)

        order.record_event(
            TrackingEventAdded(
                aggregate_id=order.id,
                status=event.status,
                source=event.source,
                location=event.location,
            )
        )
        self._order_repo.flush_events(order)
        logger.info(
            "tracking.event_added",
            order_id=str(order.id),
            status=event.status,
            source=event.source,
        )
        return event
