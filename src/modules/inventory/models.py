"""InventoryItem and StockMovement models.

Rules implemented here:
- One inventory item per product, created together with the product.
- ``current_stock`` is a projection of the ledger: only the Stock Ledger's
  conditional update may change it (``save()`` refuses to write it).
- ``maximum_stock_level`` (when set) must be >= ``minimum_stock_level``;
  ``reorder_quantity`` must be positive.
- Stock movements are append-only; ``resulting_stock`` is never negative
  and always equals ``previous_stock + quantity_delta``.
- ``sequence`` numbers movements per item in commit order.
"""

from __future__ import annotations

from typing import Any

from django.db import models

from modules.core.models import AppendOnlyModel, BaseModel
from modules.inventory.constants import MovementType, StockStatus
from modules.inventory.exceptions import LedgerWriteViolation


def computed_status(current_stock: int, minimum_stock_level: int) -> str:
    """Derive the stock health from the live stock level.

    ``out_of_stock`` at zero, ``low_stock`` while at or below the minimum,
    ``in_stock`` otherwise.
    """
    if current_stock <= 0:
        return StockStatus.OUT_OF_STOCK
    if current_stock <= minimum_stock_level:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


class InventoryItem(BaseModel):
    LEDGER_FIELDS = frozenset({"current_stock", "version"})

    product: models.OneToOneField = models.OneToOneField(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="inventory",
    )
    current_stock: models.PositiveIntegerField = models.PositiveIntegerField(
        default=0, editable=False
    )
    minimum_stock_level: models.PositiveIntegerField = models.PositiveIntegerField(
        default=0
    )
    maximum_stock_level: models.PositiveIntegerField = models.PositiveIntegerField(
        null=True, blank=True
    )
    reorder_quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1
    )
    location: models.CharField = models.CharField(
        max_length=100, blank=True, default=""
    )
    version: models.PositiveIntegerField = models.PositiveIntegerField(
        default=0, editable=False
    )

    class Meta:
        db_table = "inventory_items"
        ordering = ["current_stock", "product__name"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(current_stock__gte=0),
                name="inventory_items_stock_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(reorder_quantity__gt=0),
                name="inventory_items_reorder_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(maximum_stock_level__isnull=True)
                | models.Q(maximum_stock_level__gte=models.F("minimum_stock_level")),
                name="inventory_items_max_gte_min",
            ),
        ]

    @property
    def computed_status(self) -> str:
        return computed_status(self.current_stock, self.minimum_stock_level)

    @property
    def stock_needed(self) -> int:
        return max(self.minimum_stock_level - self.current_stock, 0)

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            update_fields = kwargs.get("update_fields")
            if update_fields is None:
                kwargs["update_fields"] = [
                    field.name
                    for field in self._meta.concrete_fields
                    if not field.primary_key and field.name not in self.LEDGER_FIELDS
                ]
            elif self.LEDGER_FIELDS & set(update_fields):
                raise LedgerWriteViolation(
                    "current_stock can only change through a stock movement."
                )
        elif self.current_stock:
            raise LedgerWriteViolation(
                "Inventory items start empty; record a purchase movement instead."
            )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.product_id} stock={self.current_stock}"


class StockMovement(AppendOnlyModel):
    inventory_item: models.ForeignKey = models.ForeignKey(
        "inventory.InventoryItem",
        on_delete=models.PROTECT,
        related_name="movements",
    )
    sequence: models.PositiveIntegerField = models.PositiveIntegerField()
    movement_type: models.CharField = models.CharField(
        max_length=20, choices=MovementType.choices
    )
    quantity_delta: models.IntegerField = models.IntegerField()
    previous_stock: models.PositiveIntegerField = models.PositiveIntegerField()
    resulting_stock: models.PositiveIntegerField = models.PositiveIntegerField()
    reason: models.CharField = models.CharField(max_length=255, blank=True, default="")
    actor: models.CharField = models.CharField(max_length=150, default="system")
    idempotency_key: models.CharField = models.CharField(
        max_length=255, unique=True, null=True, blank=True
    )

    class Meta:
        db_table = "stock_movements"
        ordering = ["inventory_item", "sequence"]
        indexes = [
            models.Index(
                fields=["inventory_item", "-created_at"],
                name="stock_mov_item_created_idx",
            ),
            models.Index(fields=["movement_type"], name="stock_mov_type_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["inventory_item", "sequence"],
                name="stock_movements_item_sequence_uniq",
            ),
            models.CheckConstraint(
                condition=models.Q(resulting_stock__gte=0),
                name="stock_movements_resulting_non_negative",
            ),
            models.CheckConstraint(
                condition=~models.Q(quantity_delta=0),
                name="stock_movements_delta_non_zero",
            ),
            models.CheckConstraint(
                condition=models.Q(
                    resulting_stock=models.F("previous_stock")
                    + models.F("quantity_delta")
                ),
                name="stock_movements_resulting_matches_delta",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"{self.inventory_item_id} #{self.sequence} {self.movement_type} "
            f"{self.quantity_delta:+d} -> {self.resulting_stock}"
        )
