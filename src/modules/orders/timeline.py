"""Timeline projection: one view of delivery progress from two logs.

``project`` is pure: it reads the order, its status history and its
tracking events and never writes.  Completion comes from the status
history only; tracking events can date a milestone the history has no
entry for, but never complete it.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from django.conf import settings
from django.utils import timezone

from modules.orders.constants import (
    BRANCH_STATES,
    CANONICAL_MILESTONES,
    MILESTONE_TITLES,
    TRACKING_STATUS_MILESTONES,
    OrderStatus,
)
from modules.orders.dtos import (
    BranchDTO,
    DeliveryEstimateDTO,
    MilestoneDTO,
    TimelineDTO,
)

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderStatusHistory, TrackingEvent


def project(
    order: Order,
    status_history: Iterable[OrderStatusHistory],
    tracking_events: Iterable[TrackingEvent],
    now: Optional[datetime] = None,
    default_delivery_days: Optional[int] = None,
    window_days: Optional[int] = None,
) -> TimelineDTO:
    now = now or timezone.now()
    history = sorted(status_history, key=lambda h: (h.created_at, h.sequence))

    history_dates: Dict[str, datetime] = {}
    for entry in history:
        history_dates.setdefault(entry.new_status, entry.created_at)

    tracking_dates: Dict[str, datetime] = {}
    for event in sorted(tracking_events, key=lambda e: e.event_time):
        key = TRACKING_STATUS_MILESTONES.get(event.status.strip().lower())
        if key:
            tracking_dates.setdefault(key, event.event_time)

    reached = -1
    for index, key in enumerate(CANONICAL_MILESTONES):
        if key in history_dates:
            reached = index

    on_branch = order.status in BRANCH_STATES
    milestones: List[MilestoneDTO] = []
    active_assigned = on_branch
    for index, key in enumerate(CANONICAL_MILESTONES):
        completed = index <= reached
        active = not completed and not active_assigned
        if active:
            active_assigned = True
        milestones.append(
            MilestoneDTO(
                key=key,
                title=MILESTONE_TITLES[key],
                completed=completed,
                active=active,
                date=history_dates.get(key) or tracking_dates.get(key),
            )
        )

    branch = None
    progress: Optional[int] = None
    if on_branch:
        branch = BranchDTO(
            key=order.status,
            title=MILESTONE_TITLES[order.status],
            date=_latest_entry_date(history, order.status),
        )
    else:
        completed_count = sum(1 for m in milestones if m.completed)
        progress = round(completed_count / len(milestones) * 100)

    return TimelineDTO(
        order_id=order.id,
        status=order.status,
        milestones=milestones,
        progress=progress,
        branch=branch,
        delivery=estimate_delivery(order, now, default_delivery_days, window_days),
    )


def estimate_delivery(
    order: Order,
    now: Optional[datetime] = None,
    default_delivery_days: Optional[int] = None,
    window_days: Optional[int] = None,
) -> DeliveryEstimateDTO:
    """Delivery window from ``estimated_delivery`` or the default lead time."""
    now = now or timezone.now()
    if default_delivery_days is None:
        default_delivery_days = settings.DEFAULT_DELIVERY_DAYS
    if window_days is None:
        window_days = settings.DELIVERY_WINDOW_DAYS

    eta = order.estimated_delivery or order.created_at + timedelta(
        days=default_delivery_days
    )
    window_end = eta + timedelta(days=window_days)
    delivered = order.status == OrderStatus.DELIVERED or order.actual_delivery
    return DeliveryEstimateDTO(
        estimated_delivery=eta,
        window_start=eta,
        window_end=window_end,
        is_delayed=bool(now > window_end and not delivered),
        days_remaining=math.ceil((eta - now) / timedelta(days=1)),
        actual_delivery=order.actual_delivery,
    )


def _latest_entry_date(
    history: List[OrderStatusHistory], status: str
) -> Optional[datetime]:
    for entry in reversed(history):
        if entry.new_status == status:
            return entry.created_at
    return None
