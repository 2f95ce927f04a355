"""Inventory repository interface.

Extends ``ILockingRepository[InventoryItem]`` with the ledger primitives the
Stock Ledger service needs: a row lock, the version-guarded stock write
and append-only movement storage.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from modules.core.repositories.interfaces import ILockingRepository

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.inventory.models import InventoryItem, StockMovement
    from modules.products.models import Product


class IInventoryRepository(ILockingRepository["InventoryItem"]):
    """Repository contract for inventory items and their movement ledger."""

    @abstractmethod
    def create_for_product(self, product: Product) -> InventoryItem:
        """Create the (empty) inventory item owned by *product*."""

    @abstractmethod
    def get_by_product_id(self, product_id: str) -> Optional[InventoryItem]:
        """Retrieve the inventory item of a product."""

    @abstractmethod
    def compare_and_set_stock(
        self, id: str, expected_version: int, new_stock: int
    ) -> bool:
        """Write ``new_stock`` only if the row still has ``expected_version``.

        Increments ``version`` on success.  Returns ``False`` when another
        writer got there first (zero rows updated).
        """

    @abstractmethod
    def add_movement(self, item: InventoryItem, data: Dict[str, Any]) -> StockMovement:
        """Append a movement to the item's ledger with the next sequence."""

    @abstractmethod
    def get_movement_by_key(self, idempotency_key: str) -> Optional[StockMovement]:
        """Retrieve a movement by its idempotency key."""

    @abstractmethod
    def list_movements(self, item_id: str) -> QuerySet:
        """Movements of one item, newest first."""

    @abstractmethod
    def movement_keys(self, keys: List[str]) -> set[str]:
        """Return the subset of *keys* that already have a movement."""

    @abstractmethod
    def low_stock(self) -> QuerySet:
        """Items whose stock is at or below their minimum level."""

    @abstractmethod
    def movement_counts_since(self, since: datetime) -> Dict[str, int]:
        """Number of movements per type created at or after *since*."""

    @abstractmethod
    def stock_summary(self) -> Dict[str, Any]:
        """Counts per computed status, total units and average stock."""
