"""Periodic inventory checks (Celery beat)."""

from __future__ import annotations

from typing import Any, Dict

import structlog
from celery import shared_task

from modules.inventory.models import InventoryItem
from modules.inventory.repositories.django_repository import InventoryDjangoRepository
from modules.inventory.services import StockLedgerService

logger = structlog.get_logger(__name__)


@shared_task(name="inventory.scan_low_stock")
def scan_low_stock() -> int:
    """Log one alert per item at or below its minimum level."""
    service = StockLedgerService(inventory_repository=InventoryDjangoRepository())
    alerts = service.low_stock_alerts()
    for alert in alerts:
        logger.warning(
            "inventory.low_stock_alert",
            inventory_item_id=str(alert.inventory_item_id),
            product_sku=alert.product_sku,
            current_stock=alert.current_stock,
            stock_needed=alert.stock_needed,
            reorder_quantity=alert.reorder_quantity,
        )
    logger.info("inventory.low_stock_scan_completed", alert_count=len(alerts))
    return len(alerts)


@shared_task(name="inventory.verify_ledgers")
def verify_ledgers() -> Dict[str, Any]:
    """Check every item's stock column against its movement ledger."""
    service = StockLedgerService(inventory_repository=InventoryDjangoRepository())
    inconsistent = []
    checked = 0
    for item_id in InventoryItem.objects.values_list("id", flat=True).iterator():
        report = service.verify_ledger(str(item_id))
        checked += 1
        if not report.is_consistent:
            inconsistent.append(str(item_id))

    logger.info(
        "inventory.ledger_verification_completed",
        checked=checked,
        inconsistent=len(inconsistent),
    )
    return {"checked": checked, "inconsistent": inconsistent}
