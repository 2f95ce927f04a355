"""Wiring of the order services with their Django repositories."""

from __future__ import annotations

from typing import NamedTuple

from modules.inventory.repositories.django_repository import InventoryDjangoRepository
from modules.inventory.services import StockLedgerService
from modules.orders.fulfillment import FulfillmentCoordinator
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.orders.tracking import TrackingService
from modules.products.repositories.django_repository import ProductDjangoRepository


class OrderServices(NamedTuple):
    orders: OrderService
    tracking: TrackingService


def build_services() -> OrderServices:
    order_repository = OrderDjangoRepository()
    coordinator = FulfillmentCoordinator(
        ledger=StockLedgerService(inventory_repository=InventoryDjangoRepository()),
        order_repository=order_repository,
    )
    orders = OrderService(
        order_repository=order_repository,
        product_repository=ProductDjangoRepository(),
        coordinator=coordinator,
    )
    tracking = TrackingService(
        order_repository=order_repository,
        order_service=orders,
        coordinator=coordinator,
    )
    return OrderServices(orders=orders, tracking=tracking)
