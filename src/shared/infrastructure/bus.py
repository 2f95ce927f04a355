"""In-process event bus used by the outbox publisher."""

from __future__ import annotations

from typing import Dict, List, Sequence, Type

import structlog

from shared.domain.bus import IEventBus, IEventHandler
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class InMemoryEventBus(IEventBus):
    """Dispatches an event to the handlers subscribed to its exact class.

    Handler exceptions propagate to ``publish`` so the outbox row that
    carried the event is marked ``FAILED`` and retried.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[IEventHandler]] = {}

    def subscribe(self, event_class: Type[DomainEvent], handler: IEventHandler) -> None:
        handlers = self._handlers.setdefault(event_class, [])
        if handler not in handlers:
            handlers.append(handler)

    def handlers_for(self, event_class: Type[DomainEvent]) -> Sequence[IEventHandler]:
        return tuple(self._handlers.get(event_class, ()))

    def publish(self, event: DomainEvent) -> None:
        handlers = self.handlers_for(type(event))
        if not handlers:
            logger.debug("event_bus.no_subscribers", event_name=event.event_name)
            return
        for handler in handlers:
            handler.handle(event)
        logger.debug(
            "event_bus.dispatched",
            event_name=event.event_name,
            event_id=str(event.event_id),
            handler_count=len(handlers),
        )


event_bus = InMemoryEventBus()
