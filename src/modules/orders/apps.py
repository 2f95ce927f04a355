from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.orders"
    label = "orders"

    def ready(self) -> None:
        from modules.orders import events, handlers
        from shared.domain.bus import subscribe_all
        from shared.infrastructure.bus import event_bus

        subscribe_all(
            event_bus,
            {
                events.OrderCreated: handlers.order_created_handler,
                events.OrderStatusChanged: handlers.order_status_changed_handler,
                events.DeliveryAttemptRecorded: handlers.delivery_attempt_recorded_handler,
                events.DeliveryDelayed: handlers.delivery_delayed_handler,
            },
        )
