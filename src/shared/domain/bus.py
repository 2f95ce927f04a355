"""Event bus contracts.

Handlers run when the outbox publisher dispatches a stored event, not
inside the transaction that produced it.  A handler that raises leaves
the row ``FAILED`` and it is dispatched again on a later run, so handlers
must tolerate seeing the same event twice.
"""

from __future__ import annotations

from typing import Generic, Mapping, Protocol, Sequence, Type, TypeVar

from shared.domain.events import DomainEvent

E = TypeVar("E", bound=DomainEvent, contravariant=True)


class IEventHandler(Protocol, Generic[E]):
    def handle(self, event: E) -> None: ...


class IEventBus(Protocol):
    def publish(self, event: DomainEvent) -> None: ...

    def subscribe(self, event_class: Type[E], handler: IEventHandler[E]) -> None: ...

    def handlers_for(self, event_class: Type[DomainEvent]) -> Sequence[IEventHandler]: ...


def subscribe_all(
    bus: IEventBus, subscriptions: Mapping[Type[DomainEvent], IEventHandler]
) -> None:
    """Register one handler per event class (used from ``AppConfig.ready``)."""
    for event_class, handler in subscriptions.items():
        bus.subscribe(event_class, handler)
