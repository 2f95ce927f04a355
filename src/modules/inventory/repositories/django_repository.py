"""Django ORM implementation of the Inventory repository.

The stock write is a conditional ``UPDATE ... WHERE id=? AND version=?``
issued through ``QuerySet.update`` so it bypasses ``InventoryItem.save``
(which refuses ledger fields).  Movements are inserted with the next
per-item ``sequence``; callers hold the item's row lock while appending.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Avg, Count, F, Max, Q, QuerySet, Sum
from django.utils import timezone

from modules.inventory.constants import StockStatus
from modules.inventory.models import InventoryItem, StockMovement
from modules.inventory.repositories.interfaces import IInventoryRepository

logger = structlog.get_logger(__name__)


class InventoryDjangoRepository(IInventoryRepository):
    """Concrete Inventory repository backed by Django ORM."""

    def _base_queryset(self) -> QuerySet:
        return InventoryItem.objects.select_related("product")

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def create_for_product(self, product) -> InventoryItem:
        item, created = InventoryItem.objects.get_or_create(product=product)
        if created:
            logger.info(
                "inventory.item_created",
                inventory_item_id=str(item.id),
                product_id=str(product.id),
            )
        return item

    def get_by_id(self, id: str) -> Optional[InventoryItem]:
        try:
            return self._base_queryset().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_product_id(self, product_id: str) -> Optional[InventoryItem]:
        try:
            return self._base_queryset().filter(product_id=product_id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[InventoryItem]:
        try:
            return (
                InventoryItem.objects.select_for_update()
                .select_related("product")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """List items ordered by stock ascending, then product name.

        Supported filter keys:
        - ``search``: product name or SKU (case-insensitive contains)
        - ``stock_status``: one of ``StockStatus``
        - ``low_stock``: ``True`` keeps items at or below their minimum
        """
        queryset = self._base_queryset().order_by("current_stock", "product__name")
        filters = filters or {}

        search = filters.get("search")
        if search:
            queryset = queryset.filter(
                Q(product__name__icontains=search) | Q(product__sku__icontains=search)
            )

        stock_status = filters.get("stock_status")
        if stock_status == StockStatus.OUT_OF_STOCK:
            queryset = queryset.filter(current_stock=0)
        elif stock_status == StockStatus.LOW_STOCK:
            queryset = queryset.filter(
                current_stock__gt=0, current_stock__lte=F("minimum_stock_level")
            )
        elif stock_status == StockStatus.IN_STOCK:
            queryset = queryset.filter(current_stock__gt=F("minimum_stock_level"))

        if filters.get("low_stock"):
            queryset = queryset.filter(current_stock__lte=F("minimum_stock_level"))
        return queryset

    @transaction.atomic
    def save(self, entity: InventoryItem) -> InventoryItem:
        """Persist settings fields; ``current_stock`` is never written here."""
        entity.save()
        logger.info("inventory.item_saved", inventory_item_id=str(entity.id))
        return entity

    def compare_and_set_stock(
        self, id: str, expected_version: int, new_stock: int
    ) -> bool:
        updated = InventoryItem.objects.filter(id=id, version=expected_version).update(
            current_stock=new_stock,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        return updated == 1

    def low_stock(self) -> QuerySet:
        return self._base_queryset().filter(
            current_stock__lte=F("minimum_stock_level")
        )

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    def add_movement(self, item: InventoryItem, data: Dict[str, Any]) -> StockMovement:
        last = StockMovement.objects.filter(inventory_item_id=item.id).aggregate(
            last=Max("sequence")
        )["last"]
        return StockMovement.objects.create(
            inventory_item_id=item.id,
            sequence=(last or 0) + 1,
            **data,
        )

    def get_movement_by_key(self, idempotency_key: str) -> Optional[StockMovement]:
        return (
            StockMovement.objects.select_related("inventory_item__product")
            .filter(idempotency_key=idempotency_key)
            .first()
        )

    def list_movements(self, item_id: str) -> QuerySet:
        return StockMovement.objects.filter(inventory_item_id=item_id).order_by(
            "-sequence"
        )

    def movement_keys(self, keys: List[str]) -> set[str]:
        return set(
            StockMovement.objects.filter(idempotency_key__in=keys).values_list(
                "idempotency_key", flat=True
            )
        )

    def movement_counts_since(self, since: datetime) -> Dict[str, int]:
        rows = (
            StockMovement.objects.filter(created_at__gte=since)
            .values("movement_type")
            .annotate(total=Count("id"))
            .order_by()
        )
        return {row["movement_type"]: row["total"] for row in rows}

    def stock_summary(self) -> Dict[str, Any]:
        return InventoryItem.objects.aggregate(
            total_items=Count("id"),
            out_of_stock=Count("id", filter=Q(current_stock=0)),
            low_stock=Count(
                "id",
                filter=Q(
                    current_stock__gt=0,
                    current_stock__lte=F("minimum_stock_level"),
                ),
            ),
            in_stock=Count("id", filter=Q(current_stock__gt=F("minimum_stock_level"))),
            total_units=Sum("current_stock"),
            average_stock=Avg("current_stock"),
        )
