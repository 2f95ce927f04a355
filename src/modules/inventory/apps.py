from django.apps import AppConfig


class InventoryConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.inventory"
    label = "inventory"

    def ready(self) -> None:
        from modules.inventory import events, handlers, signals  # noqa: F401
        from shared.domain.bus import subscribe_all
        from shared.infrastructure.bus import event_bus

        subscribe_all(
            event_bus,
            {
                events.StockMovementApplied: handlers.stock_movement_applied_handler,
                events.LowStockDetected: handlers.low_stock_detected_handler,
            },
        )
