"""Stock Ledger service (Use Cases).

Every change to ``InventoryItem.current_stock`` goes through
``StockLedgerService.apply_movement``, which appends exactly one
``StockMovement`` per accepted change.  All writes are atomic.

Business rules enforced:
- ``quantity_delta`` is never zero and carries the sign of its movement
  type (sales and damage debit, purchases and returns credit,
  adjustments go either way).
- Stock never drops below zero: the movement is rejected, not clamped.
- The stock write is version-guarded; a lost race is retried a bounded
  number of times and then surfaces as ``StateConflict``.
- Movements with an idempotency key are applied at most once.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from modules.core.exceptions import StateConflict
from modules.core.outbox import write_events
from modules.inventory.constants import MOVEMENT_SIGNS, RECENT_ACTIVITY_DAYS, StockStatus
from modules.inventory.dtos import (
    InventorySettingsDTO,
    InventoryStatsDTO,
    LedgerReportDTO,
    LowStockAlertDTO,
    StockMovementDTO,
)
from modules.inventory.events import LowStockDetected, StockMovementApplied
from modules.inventory.exceptions import (
    InsufficientStock,
    InvalidInventorySettings,
    InvalidMovement,
    InventoryItemNotFound,
    MovementKeyConflict,
)

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.inventory.models import InventoryItem, StockMovement
    from modules.inventory.repositories.interfaces import IInventoryRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AppliedMovement:
    item: InventoryItem
    movement: StockMovement
    replayed: bool = False


class StockLedgerService:
    """Application service for the inventory ledger.

    Receives the repository via constructor injection (DIP).
    """

    def __init__(
        self,
        inventory_repository: IInventoryRepository,
        max_retries: Optional[int] = None,
    ) -> None:
        self._repo = inventory_repository
        self._max_retries = (
            max_retries if max_retries is not None else settings.STOCK_WRITE_MAX_RETRIES
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def apply_movement(self, dto: StockMovementDTO) -> AppliedMovement:
        """Append one movement and move ``current_stock`` by its delta.

        Steps:
        1. Validate the delta against the movement type.
        2. Lock the item row (SELECT FOR UPDATE).
        3. Replay: a movement with the same idempotency key is returned as is.
        4. Compute the new stock; reject it when negative.
        5. Version-guarded write, re-reading and retrying on a lost race.
        6. Append the movement and its outbox event.

        Raises:
            InvalidMovement: zero delta or wrong sign for the type.
            InventoryItemNotFound: the item does not exist.
            InsufficientStock: the movement would make stock negative.
            StateConflict: the version-guarded write kept losing.
        """
        log = logger.bind(
            inventory_item_id=str(dto.inventory_item_id),
            movement_type=str(dto.movement_type),
            quantity_delta=dto.quantity_delta,
        )
        self._validate_delta(dto.movement_type, dto.quantity_delta)

        for attempt in range(1, self._max_retries + 1):
            item = self._repo.get_for_update(str(dto.inventory_item_id))
            if item is None:
                raise InventoryItemNotFound(
                    f"Inventory item {dto.inventory_item_id} not found."
                )

            if dto.idempotency_key:
                existing = self._repo.get_movement_by_key(dto.idempotency_key)
                if existing is not None:
                    if (
                        existing.inventory_item_id != item.id
                        or existing.quantity_delta != dto.quantity_delta
                        or existing.movement_type != dto.movement_type
                    ):
                        log.warning(
                            "inventory.movement_key_conflict", key=dto.idempotency_key
                        )
                        raise MovementKeyConflict(
                            f"Idempotency key {dto.idempotency_key!r} already recorded "
                            f"a different movement ({existing.id})."
                        )
                    log.info(
                        "inventory.movement_replayed",
                        movement_id=str(existing.id),
                        key=dto.idempotency_key,
                    )
                    return AppliedMovement(
                        item=existing.inventory_item, movement=existing, replayed=True
                    )

            previous_stock = item.current_stock
            new_stock = previous_stock + dto.quantity_delta
            if new_stock < 0:
                log.warning("inventory.insufficient_stock", available=previous_stock)
                raise InsufficientStock(
                    f"Product {item.product.sku}: requested {-dto.quantity_delta}, "
                    f"available {previous_stock}.",
                    available=previous_stock,
                    requested=-dto.quantity_delta,
                )

            if self._repo.compare_and_set_stock(str(item.id), item.version, new_stock):
                break
            log.warning("inventory.stock_write_conflict", attempt=attempt)
        else:
            raise StateConflict(
                f"Inventory item {dto.inventory_item_id} changed concurrently; "
                f"gave up after {self._max_retries} attempts."
            )

        movement = self._repo.add_movement(
            item,
            {
                "movement_type": dto.movement_type,
                "quantity_delta": dto.quantity_delta,
                "previous_stock": previous_stock,
                "resulting_stock": new_stock,
                "reason": dto.reason,
                "actor": dto.actor,
                "idempotency_key": dto.idempotency_key,
            },
        )
        item.refresh_from_db(fields=["current_stock", "version", "updated_at"])

        events: List[Any] = [
            StockMovementApplied(
                aggregate_id=item.id,
                movement_id=movement.id,
                movement_type=movement.movement_type,
                quantity_delta=movement.quantity_delta,
                resulting_stock=movement.resulting_stock,
            )
        ]
        stock_status = item.computed_status
        if stock_status != StockStatus.IN_STOCK:
            log.warning(
                "inventory.low_stock",
                current_stock=item.current_stock,
                minimum_stock_level=item.minimum_stock_level,
                stock_status=str(stock_status),
            )
            events.append(
                LowStockDetected(
                    aggregate_id=item.id,
                    current_stock=item.current_stock,
                    minimum_stock_level=item.minimum_stock_level,
                    stock_status=str(stock_status),
                )
            )
        write_events(events, topic="inventory")

        log.info(
            "inventory.movement_applied",
            movement_id=str(movement.id),
            sequence=movement.sequence,
            previous_stock=previous_stock,
            resulting_stock=new_stock,
        )
        return AppliedMovement(item=item, movement=movement)

    @transaction.atomic
    def update_settings(self, item_id: str, dto: InventorySettingsDTO) -> InventoryItem:
        """Replace the thresholds, reorder quantity and location of an item.

        Raises:
            InventoryItemNotFound: the item does not exist.
            InvalidInventorySettings: inconsistent thresholds.
        """
        if dto.minimum_stock_level < 0:
            raise InvalidInventorySettings(
                "Minimum stock level cannot be negative.",
                field="minimum_stock_level",
            )
        if dto.reorder_quantity <= 0:
            raise InvalidInventorySettings(
                "Reorder quantity must be greater than zero.",
                field="reorder_quantity",
            )
        if (
            dto.maximum_stock_level is not None
            and dto.maximum_stock_level < dto.minimum_stock_level
        ):
            raise InvalidInventorySettings(
                "Maximum stock level must be greater than or equal to the minimum.",
                field="maximum_stock_level",
            )

        item = self._repo.get_for_update(item_id)
        if item is None:
            raise InventoryItemNotFound(f"Inventory item {item_id} not found.")

        item.minimum_stock_level = dto.minimum_stock_level
        item.maximum_stock_level = dto.maximum_stock_level
        item.reorder_quantity = dto.reorder_quantity
        item.location = dto.location
        self._repo.save(item)

        logger.info(
            "inventory.settings_updated",
            inventory_item_id=str(item.id),
            minimum_stock_level=item.minimum_stock_level,
            maximum_stock_level=item.maximum_stock_level,
            reorder_quantity=item.reorder_quantity,
        )
        return item

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_item(self, item_id: str) -> InventoryItem:
        item = self._repo.get_by_id(item_id)
        if item is None:
            raise InventoryItemNotFound(f"Inventory item {item_id} not found.")
        return item

    def get_item_for_product(self, product_id: str) -> InventoryItem:
        item = self._repo.get_by_product_id(product_id)
        if item is None:
            raise InventoryItemNotFound(f"No inventory item for product {product_id}.")
        return item

    def list_items(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        return self._repo.list(filters)

    def applied_keys(self, keys: List[str]) -> set[str]:
        """The subset of movement idempotency *keys* already in the ledger."""
        return self._repo.movement_keys(keys)

    def list_movements(self, item_id: str) -> QuerySet:
        """Movements of one item, newest first."""
        item = self.get_item(item_id)
        return self._repo.list_movements(str(item.id))

    def low_stock_alerts(self) -> List[LowStockAlertDTO]:
        return [
            LowStockAlertDTO(
                inventory_item_id=item.id,
                product_id=item.product_id,
                product_name=item.product.name,
                product_sku=item.product.sku,
                current_stock=item.current_stock,
                minimum_stock_level=item.minimum_stock_level,
                reorder_quantity=item.reorder_quantity,
                stock_needed=item.stock_needed,
                stock_status=item.computed_status,
            )
            for item in self._repo.low_stock()
        ]

    def stats(self) -> InventoryStatsDTO:
        summary = self._repo.stock_summary()
        since = timezone.now() - timedelta(days=RECENT_ACTIVITY_DAYS)
        return InventoryStatsDTO(
            total_items=summary["total_items"],
            in_stock=summary["in_stock"],
            low_stock=summary["low_stock"],
            out_of_stock=summary["out_of_stock"],
            total_units=summary["total_units"] or 0,
            average_stock=round(float(summary["average_stock"] or 0), 2),
            recent_movements=self._repo.movement_counts_since(since),
        )

    def verify_ledger(self, item_id: str) -> LedgerReportDTO:
        """Replay the item's movements and compare with ``current_stock``."""
        item = self.get_item(item_id)
        running = 0
        ledger_sum = 0
        count = 0
        chain_breaks: List[int] = []
        for movement in self._repo.list_movements(str(item.id)).reverse():
            if movement.previous_stock != running:
                chain_breaks.append(movement.sequence)
            running = movement.resulting_stock
            ledger_sum += movement.quantity_delta
            count += 1

        report = LedgerReportDTO(
            inventory_item_id=item.id,
            current_stock=item.current_stock,
            ledger_sum=ledger_sum,
            movement_count=count,
            chain_breaks=chain_breaks,
            checked_at=timezone.now(),
        )
        if not report.is_consistent:
            logger.error(
                "inventory.ledger_mismatch",
                inventory_item_id=str(item.id),
                current_stock=item.current_stock,
                ledger_sum=ledger_sum,
                chain_breaks=chain_breaks,
            )
        return report

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_delta(movement_type: str, quantity_delta: int) -> None:
        if quantity_delta == 0:
            raise InvalidMovement(
                "Quantity delta cannot be zero.", field="quantity_delta"
            )
        sign = MOVEMENT_SIGNS.get(movement_type)
        if sign is None:
            raise InvalidMovement(
                f"Unknown movement type {movement_type!r}.", field="movement_type"
            )
        if sign and (quantity_delta > 0) != (sign > 0):
            direction = "positive" if sign > 0 else "negative"
            raise InvalidMovement(
                f"A {movement_type} movement must have a {direction} quantity delta.",
                field="quantity_delta",
            )
