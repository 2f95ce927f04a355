from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from modules.inventory.constants import MovementType
from modules.inventory.dtos import StockMovementDTO
from modules.inventory.repositories.django_repository import InventoryDjangoRepository
from modules.inventory.services import StockLedgerService
from modules.orders.constants import PaymentMethod
from modules.orders.dtos import CheckoutDTO, CheckoutItemDTO
from modules.orders.factories import build_services
from modules.products.models import Product, ProductStatus

User = get_user_model()


@pytest.fixture(autouse=True)
def _use_db(db):
    """Every test may touch the database."""


@pytest.fixture()
def api_client():
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    cid = "checkout-trace-0001"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture()
def customer():
    return User.objects.create_user(username="alice", password="alice-pass-123")


@pytest.fixture()
def other_customer():
    return User.objects.create_user(username="bruno", password="bruno-pass-123")


@pytest.fixture()
def staff_user():
    return User.objects.create_user(
        username="warehouse", password="warehouse-pass-123", is_staff=True
    )


@pytest.fixture()
def customer_client(customer):
    client = APIClient()
    client.force_authenticate(user=customer)
    return client


@pytest.fixture()
def staff_client(staff_user):
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture()
def ledger():
    return StockLedgerService(inventory_repository=InventoryDjangoRepository())


@pytest.fixture()
def services():
    return build_services()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_product(ledger):
    """Create an active product and receive *stock* units through the ledger."""

    def _make(sku="SKU-1", price="10.00", stock=0, status=ProductStatus.ACTIVE):
        product = Product.objects.create(
            sku=sku, name=f"Product {sku}", price=Decimal(price), status=status
        )
        if stock:
            ledger.apply_movement(
                StockMovementDTO(
                    inventory_item_id=product.inventory.id,
                    quantity_delta=stock,
                    movement_type=MovementType.PURCHASE,
                    reason="Initial receipt",
                )
            )
        return product

    return _make


@pytest.fixture()
def make_order(services, customer):
    """Check out an order for ``customer``; *lines* are (product, quantity)."""

    def _make(*lines, payment_method=PaymentMethod.CARD, key=None, owner=None):
        owner = owner or customer
        result = services.orders.create_order(
            CheckoutDTO(
                customer_id=owner.pk,
                payment_method=payment_method,
                items=[
                    CheckoutItemDTO(product_id=product.id, quantity=quantity)
                    for product, quantity in lines
                ],
                idempotency_key=key,
                actor=owner.get_username(),
            )
        )
        return result.order

    return _make


@pytest.fixture()
def advance(services):
    """Walk an order through *statuses*, one transition each."""

    def _advance(order, *statuses, actor="warehouse"):
        for status in statuses:
            order = services.orders.transition(order.id, status, actor=actor).order
        return order

    return _advance


@pytest.fixture()
def stock_of():
    """Current stock of a product, read from the database."""

    def _stock_of(product):
        product.inventory.refresh_from_db()
        return product.inventory.current_stock

    return _stock_of
