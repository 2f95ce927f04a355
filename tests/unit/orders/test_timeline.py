"""Unit tests for the timeline projection (no database access needed)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from modules.orders.constants import OrderStatus
from modules.orders.timeline import estimate_delivery, project

pytestmark = pytest.mark.unit

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
NOW = T0 + timedelta(days=3)


def _order(status, estimated_delivery=None, actual_delivery=None):
    return SimpleNamespace(
        id=uuid4(),
        status=status,
        created_at=T0,
        estimated_delivery=estimated_delivery,
        actual_delivery=actual_delivery,
    )


def _history(*statuses):
    entries, previous = [], None
    for index, status in enumerate(statuses):
        entries.append(
            SimpleNamespace(
                sequence=index + 1,
                old_status=previous,
                new_status=status,
                created_at=T0 + timedelta(hours=index),
            )
        )
        previous = status
    return entries


def _event(status, hours):
    return SimpleNamespace(status=status, event_time=T0 + timedelta(hours=hours))


def _project(order, history, events=()):
    return project(
        order, history, events, now=NOW, default_delivery_days=7, window_days=2
    )


class TestMilestones:
    def test_pending_order_has_no_progress(self):
        timeline = _project(_order(OrderStatus.PENDING), _history(OrderStatus.PENDING))

        assert timeline.progress == 0
        assert [m.active for m in timeline.milestones] == [True, False, False, False, False]
        assert timeline.branch is None

    def test_shipped_order(self):
        history = _history(
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
        )
        timeline = _project(_order(OrderStatus.SHIPPED), history)

        assert timeline.progress == 60
        assert [m.key for m in timeline.milestones if m.completed] == [
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
        ]
        active = [m for m in timeline.milestones if m.active]
        assert [m.key for m in active] == [OrderStatus.OUT_FOR_DELIVERY]
        assert timeline.milestones[2].date == T0 + timedelta(hours=3)

    def test_delivered_order_is_complete(self):
        history = _history(
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.OUT_FOR_DELIVERY,
            OrderStatus.DELIVERED,
        )
        timeline = _project(_order(OrderStatus.DELIVERED, actual_delivery=NOW), history)

        assert timeline.progress == 100
        assert not any(m.active for m in timeline.milestones)

    def test_first_entry_dates_a_repeated_milestone(self):
        history = _history(
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.OUT_FOR_DELIVERY,
            OrderStatus.DELIVERY_FAILED,
            OrderStatus.OUT_FOR_DELIVERY,
        )
        timeline = _project(_order(OrderStatus.OUT_FOR_DELIVERY), history)

        assert timeline.milestones[3].date == T0 + timedelta(hours=4)
        assert timeline.progress == 80

    def test_completed_milestones_never_shrink(self):
        path = (
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERY_FAILED,
            OrderStatus.CANCELLED,
        )
        previous = set()
        for length in range(1, len(path) + 1):
            steps = path[:length]
            timeline = _project(_order(steps[-1]), _history(*steps))
            completed = {m.key for m in timeline.milestones if m.completed}
            assert previous <= completed, steps[-1]
            previous = completed

        assert previous == {
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
        }


class TestTrackingBackfill:
    def test_tracking_event_dates_but_never_completes(self):
        history = _history(OrderStatus.PENDING, OrderStatus.CONFIRMED)
        events = [_event("label_created", 5), _event("in_transit", 6)]

        timeline = _project(_order(OrderStatus.CONFIRMED), history, events)

        processing, shipped = timeline.milestones[1], timeline.milestones[2]
        assert processing.completed is False
        assert processing.date == T0 + timedelta(hours=5)
        assert shipped.date == T0 + timedelta(hours=6)
        assert timeline.progress == 20

    def test_history_date_wins_over_tracking(self):
        history = _history(
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
        )
        events = [_event("picked_up", 1)]

        timeline = _project(_order(OrderStatus.SHIPPED), history, events)

        assert timeline.milestones[2].date == T0 + timedelta(hours=3)

    def test_unmapped_carrier_status_ignored(self):
        history = _history(OrderStatus.PENDING)
        timeline = _project(
            _order(OrderStatus.PENDING), history, [_event("customs_hold", 2)]
        )
        assert all(m.date is None for m in timeline.milestones)


class TestBranches:
    def test_cancelled_order_reports_branch(self):
        history = _history(OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.CANCELLED)

        timeline = _project(_order(OrderStatus.CANCELLED), history)

        assert timeline.progress is None
        assert timeline.branch.key == OrderStatus.CANCELLED
        assert timeline.branch.title == "Order cancelled"
        assert timeline.branch.date == T0 + timedelta(hours=2)
        assert timeline.milestones[0].completed is True
        assert not any(m.active for m in timeline.milestones)

    def test_branch_uses_latest_entry(self):
        history = _history(
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERY_FAILED,
            OrderStatus.OUT_FOR_DELIVERY,
            OrderStatus.DELIVERY_FAILED,
        )

        timeline = _project(_order(OrderStatus.DELIVERY_FAILED), history)

        assert timeline.branch.date == T0 + timedelta(hours=6)


class TestDeliveryEstimate:
    def test_default_lead_time(self):
        estimate = estimate_delivery(
            _order(OrderStatus.CONFIRMED), NOW, default_delivery_days=7, window_days=2
        )

        assert estimate.estimated_delivery == T0 + timedelta(days=7)
        assert estimate.window_end == T0 + timedelta(days=9)
        assert estimate.days_remaining == 4
        assert estimate.is_delayed is False

    def test_explicit_estimate_used(self):
        eta = T0 + timedelta(days=2)
        estimate = estimate_delivery(
            _order(OrderStatus.SHIPPED, estimated_delivery=eta),
            NOW,
            default_delivery_days=7,
            window_days=2,
        )
        assert estimate.estimated_delivery == eta
        assert estimate.days_remaining == -1

    def test_delayed_past_window(self):
        late = T0 + timedelta(days=10)
        estimate = estimate_delivery(
            _order(OrderStatus.SHIPPED), late, default_delivery_days=7, window_days=2
        )
        assert estimate.is_delayed is True

    def test_delivered_order_never_delayed(self):
        late = T0 + timedelta(days=30)
        estimate = estimate_delivery(
            _order(OrderStatus.DELIVERED, actual_delivery=T0 + timedelta(days=12)),
            late,
            default_delivery_days=7,
            window_days=2,
        )
        assert estimate.is_delayed is False
        assert estimate.actual_delivery == T0 + timedelta(days=12)
