"""Periodic order checks (Celery beat)."""

from __future__ import annotations

from datetime import timedelta

import structlog
from celery import shared_task
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from modules.orders.events import DeliveryDelayed
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.timeline import estimate_delivery

logger = structlog.get_logger(__name__)


@shared_task(name="orders.flag_delayed_deliveries")
def flag_delayed_deliveries() -> int:
    """Emit ``DeliveryDelayed`` for open orders past their delivery window."""
    now = timezone.now()
    window = timedelta(days=settings.DELIVERY_WINDOW_DAYS)
    repository = OrderDjangoRepository()
    overdue = repository.list_overdue(
        eta_cutoff=now - window,
        created_cutoff=now - window - timedelta(days=settings.DEFAULT_DELIVERY_DAYS),
    )

    flagged = 0
    for order in overdue.iterator():
        estimate = estimate_delivery(order, now)
        days_late = max((now - estimate.window_end).days, 0)
        with transaction.atomic():
            order.record_event(
                DeliveryDelayed(
                    aggregate_id=order.id,
                    order_number=order.order_number,
                    days_late=days_late,
                )
            )
            repository.flush_events(order)
        logger.warning(
            "order.delivery_delayed",
            order_id=str(order.id),
            status=order.status,
            days_late=days_late,
        )
        flagged += 1

    logger.info("order.delayed_scan_completed", flagged=flagged)
    return flagged
