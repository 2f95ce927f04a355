"""Inventory domain constants.

Movement types and the sign each one must carry, plus the computed
stock health statuses.
"""

from django.db import models


class MovementType(models.TextChoices):
    PURCHASE = "purchase", "Purchase"
    SALE = "sale", "Sale"
    RETURN = "return", "Return"
    DAMAGE = "damage", "Damage"
    ADJUSTMENT = "adjustment", "Adjustment"


class StockStatus(models.TextChoices):
    IN_STOCK = "in_stock", "In stock"
    LOW_STOCK = "low_stock", "Low stock"
    OUT_OF_STOCK = "out_of_stock", "Out of stock"


# +1: delta must be positive, -1: negative, 0: either sign.
MOVEMENT_SIGNS: dict[str, int] = {
    MovementType.PURCHASE: 1,
    MovementType.RETURN: 1,
    MovementType.SALE: -1,
    MovementType.DAMAGE: -1,
    MovementType.ADJUSTMENT: 0,
}

RECENT_ACTIVITY_DAYS = 7
