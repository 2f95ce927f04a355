"""Inventory domain exceptions.

Raised by the Stock Ledger service.  The shared taxonomy in
``modules.core.exceptions`` carries the HTTP mapping.
"""

from __future__ import annotations

from modules.core.exceptions import (
    InsufficientStock,
    NotFound,
    StateConflict,
    ValidationError,
)

__all__ = [
    "InsufficientStock",
    "InventoryItemNotFound",
    "InvalidMovement",
    "InvalidInventorySettings",
    "LedgerWriteViolation",
    "MovementKeyConflict",
]


class InventoryItemNotFound(NotFound):
    """The requested inventory item does not exist."""


class InvalidMovement(ValidationError):
    """A movement's delta is zero or carries the wrong sign for its type."""


class InvalidInventorySettings(ValidationError):
    """Stock thresholds or reorder quantity are inconsistent."""


class MovementKeyConflict(StateConflict):
    """An idempotency key was reused for a different movement."""


class LedgerWriteViolation(Exception):
    """Code tried to write ``current_stock`` outside the ledger."""
