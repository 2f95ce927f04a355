"""Asynchronous tasks of the core module."""

import structlog
from celery import shared_task
from django.db import transaction

from modules.core.models import OutboxEvent
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)

OUTBOX_BATCH_SIZE = 100
OUTBOX_MAX_RETRIES = 5


@shared_task(name="core.publish_outbox_events")
def publish_outbox_events(batch_size: int = OUTBOX_BATCH_SIZE) -> dict:
    """Hand a batch of outbox rows to the event bus.

    Rows are claimed with ``SKIP LOCKED`` so two workers never publish the
    same row in one run.
    """
    published = failed = 0
    with transaction.atomic():
        batch = OutboxEvent.objects.dispatchable(OUTBOX_MAX_RETRIES)
        for row in batch.select_for_update(skip_locked=True)[:batch_size]:
            try:
                event_bus.publish(DomainEvent.from_payload(row.payload))
            except Exception as exc:
                logger.exception(
                    "outbox.publish_failed",
                    outbox_id=str(row.id),
                    event_type=row.event_type,
                    retry_count=row.retry_count + 1,
                )
                row.mark_as_failed(str(exc))
                failed += 1
            else:
                row.mark_as_published()
                published += 1

    if published or failed:
        logger.info("outbox.publish_completed", published=published, failed=failed)
    return {"published": published, "failed": failed}
