"""Unit tests for ``TrackingService``: tracking events, shipping details and
delivery attempts with failure escalation."""

from __future__ import annotations

from datetime import timedelta

import pytest
from django.utils import timezone

from modules.core.exceptions import ValidationError
from modules.core.models import OutboxEvent
from modules.orders.constants import (
    DeliveryAttemptStatus,
    OrderStatus,
    TrackingSource,
)
from modules.orders.dtos import CarrierUpdateDTO, UpdateTrackingInfoDTO
from modules.orders.exceptions import DeliveryAttemptRejected, OrderNotFound
from modules.orders.models import DeliveryAttempt, OrderStatusHistory, TrackingEvent
from modules.orders.tracking import TrackingService, build_tracking_url

pytestmark = pytest.mark.unit

SHIPPING_PATH = (OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED)


@pytest.fixture()
def shipped_order(make_product, make_order, advance):
    product = make_product(sku="TRK-1", stock=10)
    return advance(make_order((product, 1)), *SHIPPING_PATH)


@pytest.fixture()
def out_for_delivery(shipped_order, advance):
    return advance(shipped_order, OrderStatus.OUT_FOR_DELIVERY)


class TestTrackingEvents:
    def test_event_does_not_change_status(self, services, shipped_order):
        event = services.tracking.add_tracking_event(
            shipped_order.id, "delivered", location="Porto", description="Left at door"
        )

        assert event.source == TrackingSource.STAFF
        assert event.location == "Porto"
        shipped_order.refresh_from_db()
        assert shipped_order.status == OrderStatus.SHIPPED
        assert OrderStatusHistory.objects.filter(order=shipped_order).count() == 4

    def test_blank_status_rejected(self, services, shipped_order):
        with pytest.raises(ValidationError) as exc_info:
            services.tracking.add_tracking_event(shipped_order.id, "   ")
        assert exc_info.value.field == "status"

    def test_explicit_event_time_kept(self, services, shipped_order):
        scanned_at = timezone.now() - timedelta(hours=5)
        event = services.tracking.add_tracking_event(
            shipped_order.id, "in_transit", event_time=scanned_at
        )
        assert event.event_time == scanned_at

    def test_event_written_to_outbox(self, services, shipped_order):
        services.tracking.add_tracking_event(shipped_order.id, "in_transit")
        row = OutboxEvent.objects.get(event_type="TrackingEventAdded")
        assert row.payload["status"] == "in_transit"
        assert row.payload["source"] == TrackingSource.STAFF


class TestCarrierUpdates:
    def test_update_routed_by_tracking_number(self, services, shipped_order):
        services.tracking.update_tracking_info(
            shipped_order.id,
            UpdateTrackingInfoDTO(tracking_number="1Z999", carrier="UPS"),
        )

        event = services.tracking.handle_carrier_update(
            CarrierUpdateDTO(tracking_number="1Z999", status="in_transit", location="Lisbon")
        )

        assert event.order_id == shipped_order.id
        assert event.source == TrackingSource.CARRIER
        assert event.actor == "UPS"

    def test_unknown_tracking_number(self, services, shipped_order):
        with pytest.raises(OrderNotFound):
            services.tracking.handle_carrier_update(
                CarrierUpdateDTO(tracking_number="NOPE", status="in_transit")
            )


class TestTrackingInfo:
    def test_sets_number_carrier_and_url(self, services, shipped_order):
        order = services.tracking.update_tracking_info(
            shipped_order.id,
            UpdateTrackingInfoDTO(tracking_number=" 1Z999 ", carrier="UPS"),
        )

        assert order.tracking_number == "1Z999"
        assert order.tracking_url == "https://www.ups.com/track?tracknum=1Z999"

    def test_new_number_appends_label_event(self, services, shipped_order):
        services.tracking.update_tracking_info(
            shipped_order.id,
            UpdateTrackingInfoDTO(tracking_number="1Z999", carrier="ups"),
        )
        services.tracking.update_tracking_info(
            shipped_order.id, UpdateTrackingInfoDTO(delivery_notes="Ring twice")
        )

        events = TrackingEvent.objects.filter(order=shipped_order)
        assert [e.status for e in events] == ["label_created"]
        assert events[0].source == TrackingSource.SYSTEM

    def test_only_supplied_fields_change(self, services, shipped_order):
        services.tracking.update_tracking_info(
            shipped_order.id,
            UpdateTrackingInfoDTO(tracking_number="1Z999", carrier="ups"),
        )
        order = services.tracking.update_tracking_info(
            shipped_order.id, UpdateTrackingInfoDTO(delivery_notes="Ring twice")
        )

        assert order.tracking_number == "1Z999"
        assert order.carrier == "ups"
        assert order.delivery_notes == "Ring twice"

    def test_unknown_carrier_has_no_url(self, services, shipped_order):
        order = services.tracking.update_tracking_info(
            shipped_order.id,
            UpdateTrackingInfoDTO(tracking_number="X-1", carrier="Local Courier"),
        )
        assert order.tracking_url == ""

    def test_number_taken_by_another_order(
        self, services, shipped_order, make_order, make_product
    ):
        other = make_order((make_product(sku="TRK-2", stock=1), 1))
        services.tracking.update_tracking_info(
            other.id, UpdateTrackingInfoDTO(tracking_number="DUP-1", carrier="dhl")
        )

        with pytest.raises(ValidationError) as exc_info:
            services.tracking.update_tracking_info(
                shipped_order.id, UpdateTrackingInfoDTO(tracking_number="DUP-1")
            )
        assert exc_info.value.field == "tracking_number"

    def test_build_tracking_url(self):
        assert build_tracking_url(" FedEx ", "77") == (
            "https://www.fedex.com/fedextrack/?trknbr=77"
        )
        assert build_tracking_url("fedex", "") == ""


class TestDeliveryAttempts:
    def test_attempts_are_numbered(self, services, out_for_delivery):
        first = services.tracking.record_delivery_attempt(
            out_for_delivery.id, DeliveryAttemptStatus.ATTEMPTED, notes="No answer"
        )
        second = services.tracking.record_delivery_attempt(
            out_for_delivery.id, DeliveryAttemptStatus.SUCCESSFUL
        )

        assert first.attempt.attempt_number == 1
        assert second.attempt.attempt_number == 2
        assert first.escalation is None

    def test_rejected_before_shipping(self, services, make_order, make_product):
        order = make_order((make_product(sku="TRK-3", stock=1), 1))
        with pytest.raises(DeliveryAttemptRejected):
            services.tracking.record_delivery_attempt(
                order.id, DeliveryAttemptStatus.FAILED
            )
        assert not DeliveryAttempt.objects.filter(order=order).exists()

    def test_unknown_attempt_status(self, services, out_for_delivery):
        with pytest.raises(ValidationError):
            services.tracking.record_delivery_attempt(out_for_delivery.id, "lost")

    def test_third_consecutive_failure_escalates(self, services, out_for_delivery):
        results = [
            services.tracking.record_delivery_attempt(
                out_for_delivery.id, DeliveryAttemptStatus.FAILED
            )
            for _ in range(3)
        ]

        assert results[0].escalation is None
        assert results[1].escalation is None
        escalation = results[2].escalation
        assert escalation is not None
        assert escalation.order.status == OrderStatus.DELIVERY_FAILED
        assert escalation.history_entry.actor == "system"

    def test_success_breaks_the_streak(self, services, out_for_delivery):
        for status in (
            DeliveryAttemptStatus.FAILED,
            DeliveryAttemptStatus.FAILED,
            DeliveryAttemptStatus.ATTEMPTED,
            DeliveryAttemptStatus.FAILED,
        ):
            result = services.tracking.record_delivery_attempt(out_for_delivery.id, status)

        assert result.escalation is None
        out_for_delivery.refresh_from_db()
        assert out_for_delivery.status == OrderStatus.OUT_FOR_DELIVERY

    def test_failures_before_a_retry_do_not_count(
        self, services, advance, out_for_delivery
    ):
        for _ in range(3):
            services.tracking.record_delivery_attempt(
                out_for_delivery.id, DeliveryAttemptStatus.FAILED
            )
        advance(out_for_delivery, OrderStatus.OUT_FOR_DELIVERY)

        result = services.tracking.record_delivery_attempt(
            out_for_delivery.id, DeliveryAttemptStatus.FAILED
        )

        assert result.escalation is None
        assert result.attempt.attempt_number == 4

    def test_streak_survives_going_out_for_delivery(
        self, services, advance, shipped_order
    ):
        for _ in range(2):
            services.tracking.record_delivery_attempt(
                shipped_order.id, DeliveryAttemptStatus.FAILED
            )
        advance(shipped_order, OrderStatus.OUT_FOR_DELIVERY)

        result = services.tracking.record_delivery_attempt(
            shipped_order.id, DeliveryAttemptStatus.FAILED
        )

        assert result.escalation is not None
        shipped_order.refresh_from_db()
        assert shipped_order.status == OrderStatus.DELIVERY_FAILED

    def test_attempt_limit(self, services, out_for_delivery):
        limited = TrackingService(
            order_repository=services.orders._order_repo,
            order_service=services.orders,
            coordinator=services.orders._coordinator,
            max_attempts=2,
        )
        for _ in range(2):
            limited.record_delivery_attempt(
                out_for_delivery.id, DeliveryAttemptStatus.ATTEMPTED
            )

        with pytest.raises(DeliveryAttemptRejected):
            limited.record_delivery_attempt(
                out_for_delivery.id, DeliveryAttemptStatus.ATTEMPTED
            )


class TestTrackingQueries:
    def test_tracking_detail(self, services, out_for_delivery):
        services.tracking.add_tracking_event(out_for_delivery.id, "out_for_delivery")
        services.tracking.record_delivery_attempt(
            out_for_delivery.id, DeliveryAttemptStatus.ATTEMPTED
        )

        detail = services.tracking.get_tracking(out_for_delivery.id)

        assert detail.order.id == out_for_delivery.id
        assert [e.status for e in detail.events] == ["out_for_delivery"]
        assert len(detail.attempts) == 1
        assert detail.timeline.progress == 80

    def test_unknown_order(self, services):
        with pytest.raises(OrderNotFound):
            services.tracking.get_timeline("00000000-0000-0000-0000-000000000000")
