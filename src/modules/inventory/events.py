"""Domain events for the Inventory bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class StockMovementApplied(DomainEvent):
    """Raised when a movement is appended to an item's ledger."""

    movement_id: UUID
    movement_type: str
    quantity_delta: int
    resulting_stock: int


@dataclass(frozen=True, kw_only=True)
class LowStockDetected(DomainEvent):
    """Raised when a movement leaves an item at or below its minimum level."""

    current_stock: int
    minimum_stock_level: int
    stock_status: str
