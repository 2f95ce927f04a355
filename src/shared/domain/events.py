"""Domain events raised by orders and stock, and their payload round trip."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Type
from uuid import UUID, uuid4


@dataclass(frozen=True)
class DomainEvent:
    """Base domain event (immutable).

    Concrete events declare their payload as keyword-only dataclass fields
    and are registered by class name so outbox rows can be rebuilt into
    event objects by ``from_payload``.
    """

    registry: ClassVar[Dict[str, Type["DomainEvent"]]] = {}

    aggregate_id: UUID
    event_id: UUID = field(default_factory=uuid4)
    occurred_on: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_name: str = field(init=False)

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        DomainEvent.registry[cls.__name__] = cls

    def __post_init__(self) -> None:
        object.__setattr__(self, "event_name", self.__class__.__name__)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "DomainEvent":
        """Rebuild an event from its JSON outbox payload."""
        event_cls = DomainEvent.registry.get(payload.get("event_name", ""), cls)
        init_names = {f.name for f in fields(event_cls) if f.init}
        data = {key: value for key, value in payload.items() if key in init_names}
        data["aggregate_id"] = UUID(str(data["aggregate_id"]))
        if "event_id" in data:
            data["event_id"] = UUID(str(data["event_id"]))
        if isinstance(data.get("occurred_on"), str):
            data["occurred_on"] = datetime.fromisoformat(data["occurred_on"])
        return event_cls(**data)


class DomainEventMixin:
    """Lets an aggregate queue events until its repository writes them out."""

    def record_event(self, event: DomainEvent) -> None:
        self.__dict__.setdefault("_pending_events", []).append(event)

    def pull_events(self) -> List[DomainEvent]:
        """Return the queued events and forget them."""
        return self.__dict__.pop("_pending_events", [])
