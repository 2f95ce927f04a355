from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from modules.inventory.constants import MovementType
from modules.inventory.dtos import InventorySettingsDTO, StockMovementDTO
from modules.inventory.exceptions import InsufficientStock
from modules.inventory.repositories.django_repository import InventoryDjangoRepository
from modules.inventory.services import StockLedgerService
from modules.orders.constants import OrderStatus, PaymentMethod, PaymentStatus
from modules.orders.dtos import CheckoutDTO, CheckoutItemDTO, UpdateTrackingInfoDTO
from modules.orders.factories import build_services
from modules.products.models import Product, ProductStatus

# Fulfillment path walked by seeded orders, by final status.
STATUS_PATHS = {
    OrderStatus.PENDING: [],
    OrderStatus.CONFIRMED: [OrderStatus.CONFIRMED],
    OrderStatus.PROCESSING: [OrderStatus.CONFIRMED, OrderStatus.PROCESSING],
    OrderStatus.SHIPPED: [
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
    ],
    OrderStatus.DELIVERED: [
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
    ],
    OrderStatus.CANCELLED: [OrderStatus.CANCELLED],
}

CARRIERS = ["ups", "fedex", "usps", "dhl"]


class Command(BaseCommand):
    help = "Load a demo catalogue, opening stock and orders at every fulfillment stage."

    def add_arguments(self, parser):
        parser.add_argument("--orders", type=int, default=30)

    def handle(self, *args, **options):
        random.seed(42)

        users_created = self._seed_users()
        products = self._seed_products()
        self._seed_stock(products)
        orders_created = self._seed_orders(products, options["orders"])

        self.stdout.write(
            self.style.SUCCESS(
                f"{users_created} users, {len(products)} products and "
                f"{orders_created} orders loaded."
            )
        )

    def _seed_users(self) -> int:
        User = get_user_model()
        created = 0
        accounts = [
            ("ops", {"is_staff": True, "is_superuser": True}),
            ("warehouse", {"is_staff": True}),
            ("alice", {}),
            ("bruno", {}),
            ("carla", {}),
        ]
        for username, flags in accounts:
            if User.objects.filter(username=username).exists():
                continue
            User.objects.create_user(username, password=f"{username}-demo", **flags)
            created += 1
        return created

    def _seed_products(self) -> list[Product]:
        products: list[Product] = []
        catalog = [
            ("ELEC-001", 'Monitor 27"', Decimal("1299.90")),
            ("ELEC-002", "Mechanical Keyboard", Decimal("399.90")),
            ("ELEC-003", "Gaming Mouse", Decimal("249.90")),
            ("ELEC-004", 'Laptop 14"', Decimal("3999.00")),
            ("ELEC-005", "Headset", Decimal("299.90")),
            ("HOME-001", "Office Desk", Decimal("899.00")),
            ("HOME-002", "Ergonomic Chair", Decimal("1499.00")),
            ("HOME-003", "Bookshelf", Decimal("699.00")),
            ("OFF-001", "A4 Paper", Decimal("29.90")),
            ("OFF-002", "Blue Pen", Decimal("4.90")),
            ("OFF-003", "Notebook", Decimal("19.90")),
            ("OFF-004", "Desk Lamp", Decimal("59.90")),
        ]
        for sku, name, price in catalog:
            product, _ = Product.objects.get_or_create(
                sku=sku,
                defaults={"name": name, "price": price, "status": ProductStatus.ACTIVE},
            )
            products.append(product)
        return products

    def _seed_stock(self, products: list[Product]) -> None:
        """Opening stock goes through the ledger like any other receipt."""
        ledger = StockLedgerService(inventory_repository=InventoryDjangoRepository())
        for product in products:
            item = ledger.get_item_for_product(str(product.id))
            ledger.update_settings(
                str(item.id),
                InventorySettingsDTO(
                    minimum_stock_level=10,
                    maximum_stock_level=500,
                    reorder_quantity=50,
                    location=f"A-{random.randint(1, 20):02d}",
                ),
            )
            ledger.apply_movement(
                StockMovementDTO(
                    inventory_item_id=item.id,
                    quantity_delta=random.randint(20, 200),
                    movement_type=MovementType.PURCHASE,
                    reason="Opening stock",
                    actor="seed",
                    idempotency_key=f"seed:{product.sku}:opening",
                )
            )
        self.stdout.write(f"Opening stock received for {len(products)} products.")

    def _seed_orders(self, products: list[Product], count: int) -> int:
        User = get_user_model()
        customers = list(User.objects.filter(is_staff=False))
        if not customers or not products:
            self.stdout.write(self.style.WARNING("No customers or products to order with."))
            return 0

        services = build_services()
        final_statuses = list(STATUS_PATHS)
        weights = [0.15, 0.15, 0.1, 0.2, 0.3, 0.1]
        orders_created = 0

        for i in range(count):
            customer = random.choice(customers)
            target = random.choices(final_statuses, weights=weights, k=1)[0]
            lines = random.sample(products, k=random.randint(1, 3))

            try:
                with transaction.atomic():
                    result = self._place(services, customer, target, lines, i + 1)
            except InsufficientStock as exc:
                self.stdout.write(self.style.WARNING(f"Order {i + 1} not placed: {exc}"))
                continue
            if result is not None:
                orders_created += 1

        return orders_created

    def _place(self, services, customer, target, lines, number: int):
        """Check out one order and walk it to *target*; ``None`` if already seeded."""
        result = services.orders.create_order(
            CheckoutDTO(
                customer_id=customer.pk,
                payment_method=PaymentMethod.CARD,
                items=[
                    CheckoutItemDTO(product_id=product.id, quantity=random.randint(1, 3))
                    for product in lines
                ],
                notes=f"Seed order {number}",
                idempotency_key=f"seed-order-{number}",
                actor=customer.get_username(),
            )
        )
        if result.replayed:
            return None

        order = result.order
        for step, status in enumerate(STATUS_PATHS[target]):
            if status == OrderStatus.CONFIRMED:
                services.orders.update_payment_status(
                    order.id, PaymentStatus.PAID, actor="seed"
                )
                continue
            if status == OrderStatus.SHIPPED:
                services.tracking.update_tracking_info(
                    order.id,
                    UpdateTrackingInfoDTO(
                        tracking_number=f"SEED{number:06d}",
                        carrier=random.choice(CARRIERS),
                    ),
                    actor="seed",
                )
            services.orders.transition(
                order.id,
                status,
                notes="Seeded",
                actor="seed",
                idempotency_key=f"seed-order-{number}:{step}",
            )
        return order
