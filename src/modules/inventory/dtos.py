"""Inventory DTOs for the Service Layer.

Pydantic v2 frozen models: inputs for the Stock Ledger service and the
report shapes it returns.  Business rules (sign per movement type,
threshold consistency) are enforced by the service, not here.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from modules.inventory.constants import MovementType, StockStatus

# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class StockMovementDTO(BaseModel):
    """One signed change to an item's stock."""

    model_config = ConfigDict(frozen=True)

    inventory_item_id: UUID
    quantity_delta: int
    movement_type: MovementType
    reason: str = ""
    actor: str = "system"
    idempotency_key: Optional[str] = Field(default=None, max_length=255)


class InventorySettingsDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    minimum_stock_level: int
    maximum_stock_level: Optional[int] = None
    reorder_quantity: int
    location: str = ""


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class LowStockAlertDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    inventory_item_id: UUID
    product_id: UUID
    product_name: str
    product_sku: str
    current_stock: int
    minimum_stock_level: int
    reorder_quantity: int
    stock_needed: int
    stock_status: StockStatus


class InventoryStatsDTO(BaseModel):
    """Aggregate view over all items plus recent ledger activity."""

    model_config = ConfigDict(frozen=True)

    total_items: int
    in_stock: int
    low_stock: int
    out_of_stock: int
    total_units: int
    average_stock: float
    recent_movements: Dict[str, int]


class LedgerReportDTO(BaseModel):
    """Result of replaying an item's movements against its stock column.

    ``chain_breaks`` lists the sequence numbers whose ``previous_stock``
    does not match the ``resulting_stock`` of the movement before them.
    """

    model_config = ConfigDict(frozen=True)

    inventory_item_id: UUID
    current_stock: int
    ledger_sum: int
    movement_count: int
    chain_breaks: List[int]
    checked_at: datetime

    @property
    def is_consistent(self) -> bool:
        return not self.chain_breaks and self.ledger_sum == self.current_stock
