"""Event handlers for Inventory domain events."""

from __future__ import annotations

import structlog

from modules.inventory.events import LowStockDetected, StockMovementApplied
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class StockMovementAppliedHandler(IEventHandler[StockMovementApplied]):
    def handle(self, event: StockMovementApplied) -> None:
        logger.info(
            "inventory.event.movement_applied",
            inventory_item_id=str(event.aggregate_id),
            movement_type=event.movement_type,
            quantity_delta=event.quantity_delta,
            resulting_stock=event.resulting_stock,
        )


class LowStockDetectedHandler(IEventHandler[LowStockDetected]):
    """Surfaces low stock to whoever reads the logs (purchasing)."""

    def handle(self, event: LowStockDetected) -> None:
        logger.warning(
            "inventory.event.low_stock",
            inventory_item_id=str(event.aggregate_id),
            current_stock=event.current_stock,
            minimum_stock_level=event.minimum_stock_level,
            stock_status=event.stock_status,
        )


stock_movement_applied_handler = StockMovementAppliedHandler()
low_stock_detected_handler = LowStockDetectedHandler()
