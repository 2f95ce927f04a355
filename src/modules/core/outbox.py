"""Writing domain events into the outbox table."""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, Iterable, List

from django.core.serializers.json import DjangoJSONEncoder

from modules.core.models import OutboxEvent
from shared.domain.events import DomainEvent, DomainEventMixin


class EventPayloadEncoder(DjangoJSONEncoder):
    """Django's encoder (UUID, Decimal) with lossless datetimes.

    ``DjangoJSONEncoder`` truncates to milliseconds; ``from_payload`` must
    rebuild the exact ``occurred_on``.
    """

    def default(self, o: Any) -> Any:
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def serialize_event_payload(event: DomainEvent) -> Dict[str, Any]:
    return json.loads(json.dumps(asdict(event), cls=EventPayloadEncoder))


def write_events(events: Iterable[DomainEvent], topic: str) -> List[OutboxEvent]:
    """Store *events* as ``PENDING`` rows in the caller's transaction."""
    return [
        OutboxEvent.objects.create(
            event_type=event.event_name,
            aggregate_id=str(event.aggregate_id),
            payload=serialize_event_payload(event),
            topic=topic,
        )
        for event in events
    ]


def flush_entity_events(entity: DomainEventMixin, topic: str) -> int:
    return len(write_events(entity.pull_events(), topic))
