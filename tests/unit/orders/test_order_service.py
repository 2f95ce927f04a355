"""Unit tests for ``OrderService``.

Covers:
- Checkout: price snapshot, validation, up-front stock check, idempotency.
- Transitions: history per accepted change, conflict detection, replay.
- Stock side effects: debit on confirm, credit on cancel/refund, once only.
- Payment status updates and bulk transitions.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest

from modules.core.models import OutboxEvent
from modules.inventory.models import StockMovement
from modules.orders.constants import OrderStatus, PaymentMethod, PaymentStatus
from modules.orders.dtos import CheckoutDTO, CheckoutItemDTO
from modules.orders.exceptions import (
    CancellationNotAllowed,
    InactiveProduct,
    InsufficientStock,
    InvalidOrderTransition,
    OrderNotFound,
    OrderStateConflict,
    ProductNotFound,
    UnknownOrderStatus,
)
from modules.orders.models import Order, OrderStatusHistory
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.products.models import ProductStatus

pytestmark = pytest.mark.unit


@pytest.fixture()
def keyboard(make_product):
    return make_product(sku="KB-1", price="50.00", stock=5)


@pytest.fixture()
def mouse(make_product):
    return make_product(sku="MS-1", price="20.00", stock=3)


# ===========================================================================
# Checkout
# ===========================================================================


class TestCreateOrder:
    def test_creates_pending_order_with_snapshot_prices(self, make_order, keyboard, mouse):
        order = make_order((keyboard, 2), (mouse, 1))

        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.total_amount == Decimal("120.00")
        assert {line.product_id: line.unit_price for line in order.items.all()} == {
            keyboard.id: Decimal("50.00"),
            mouse.id: Decimal("20.00"),
        }

    def test_initial_history_entry(self, make_order, keyboard):
        order = make_order((keyboard, 1))

        entry = OrderStatusHistory.objects.get(order=order)
        assert entry.old_status is None
        assert entry.new_status == OrderStatus.PENDING
        assert entry.sequence == 1
        assert entry.actor == "alice"

    def test_checkout_does_not_move_stock(self, make_order, keyboard, stock_of):
        make_order((keyboard, 2))
        assert stock_of(keyboard) == 5

    def test_unknown_product(self, make_order, keyboard):
        ghost = type("Ghost", (), {"id": uuid4()})()
        with pytest.raises(ProductNotFound):
            make_order((keyboard, 1), (ghost, 1))
        assert Order.objects.count() == 0

    def test_inactive_product(self, make_order, make_product):
        retired = make_product(sku="OLD-1", stock=5, status=ProductStatus.INACTIVE)
        with pytest.raises(InactiveProduct):
            make_order((retired, 1))

    def test_line_above_stock_rejected_up_front(self, make_order, keyboard, mouse):
        with pytest.raises(InsufficientStock):
            make_order((keyboard, 1), (mouse, 4))
        assert Order.objects.count() == 0
        assert not OutboxEvent.objects.filter(event_type="OrderCreated").exists()

    def test_same_key_returns_same_order(self, services, customer, keyboard):
        dto = CheckoutDTO(
            customer_id=customer.pk,
            items=[CheckoutItemDTO(product_id=keyboard.id, quantity=1)],
            idempotency_key="checkout-1",
        )
        first = services.orders.create_order(dto)
        second = services.orders.create_order(dto)

        assert first.replayed is False
        assert second.replayed is True
        assert second.order.id == first.order.id
        assert Order.objects.count() == 1

    def test_duplicate_lines_rejected_by_dto(self, keyboard):
        with pytest.raises(ValueError):
            CheckoutDTO(
                items=[
                    CheckoutItemDTO(product_id=keyboard.id, quantity=1),
                    CheckoutItemDTO(product_id=keyboard.id, quantity=2),
                ]
            )

    def test_cash_on_delivery_confirms_and_debits(self, make_order, keyboard, stock_of):
        order = make_order((keyboard, 2), payment_method=PaymentMethod.CASH_ON_DELIVERY)

        assert order.status == OrderStatus.CONFIRMED
        assert stock_of(keyboard) == 3
        assert [h.new_status for h in order.status_history.all()] == [
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
        ]

    def test_order_created_event(self, make_order, keyboard):
        order = make_order((keyboard, 1))
        row = OutboxEvent.objects.get(event_type="OrderCreated")
        assert row.aggregate_id == str(order.id)
        assert row.topic == "orders"
        assert row.payload["order_number"] == order.order_number


# ===========================================================================
# Transitions
# ===========================================================================


class TestTransition:
    def test_each_transition_appends_one_history_entry(self, make_order, advance, keyboard):
        order = make_order((keyboard, 1))
        order = advance(order, OrderStatus.CONFIRMED, OrderStatus.PROCESSING)

        entries = list(OrderStatusHistory.objects.filter(order=order))
        assert [(e.old_status, e.new_status) for e in entries] == [
            (None, OrderStatus.PENDING),
            (OrderStatus.PENDING, OrderStatus.CONFIRMED),
            (OrderStatus.CONFIRMED, OrderStatus.PROCESSING),
        ]
        assert [e.sequence for e in entries] == [1, 2, 3]
        assert order.version == 2

    def test_result_carries_history_entry(self, services, make_order, keyboard):
        order = make_order((keyboard, 1))
        result = services.orders.transition(
            order.id, OrderStatus.CONFIRMED, notes="Payment captured", actor="ops"
        )
        assert result.order.status == OrderStatus.CONFIRMED
        assert result.history_entry.new_status == OrderStatus.CONFIRMED
        assert result.history_entry.notes == "Payment captured"
        assert result.history_entry.actor == "ops"
        assert result.replayed is False

    def test_invalid_edge_changes_nothing(self, services, make_order, keyboard):
        order = make_order((keyboard, 1))
        with pytest.raises(InvalidOrderTransition):
            services.orders.transition(order.id, OrderStatus.SHIPPED)

        order.refresh_from_db()
        assert order.status == OrderStatus.PENDING
        assert OrderStatusHistory.objects.filter(order=order).count() == 1

    def test_unknown_status(self, services, make_order, keyboard):
        order = make_order((keyboard, 1))
        with pytest.raises(UnknownOrderStatus):
            services.orders.transition(order.id, "lost_in_space")

    def test_unknown_order(self, services):
        with pytest.raises(OrderNotFound):
            services.orders.transition(uuid4(), OrderStatus.CONFIRMED)

    def test_stale_expected_status_conflicts(self, services, make_order, advance, keyboard):
        order = advance(make_order((keyboard, 1)), OrderStatus.CONFIRMED)
        with pytest.raises(OrderStateConflict):
            services.orders.transition(
                order.id, OrderStatus.CANCELLED, expected_status=OrderStatus.PENDING
            )

    def test_same_status_conflicts(self, services, make_order, keyboard):
        order = make_order((keyboard, 1))
        with pytest.raises(OrderStateConflict):
            services.orders.transition(order.id, OrderStatus.PENDING)

    def test_lost_version_check_conflicts(self, services, make_order, keyboard, stock_of):
        order = make_order((keyboard, 1))
        with patch.object(OrderDjangoRepository, "compare_and_set", return_value=False):
            with pytest.raises(OrderStateConflict):
                services.orders.transition(order.id, OrderStatus.CONFIRMED)

        assert OrderStatusHistory.objects.filter(order=order).count() == 1
        assert stock_of(keyboard) == 5

    def test_version_guard_rejects_stale_version(self, make_order, keyboard):
        order = make_order((keyboard, 1))
        repository = OrderDjangoRepository()

        assert repository.compare_and_set(
            str(order.id), order.version, {"status": OrderStatus.CONFIRMED}
        )
        assert not repository.compare_and_set(
            str(order.id), order.version, {"status": OrderStatus.CANCELLED}
        )
        order.refresh_from_db()
        assert order.status == OrderStatus.CONFIRMED
        assert order.version == 1

    def test_retry_with_same_key_replays(self, services, make_order, keyboard, stock_of):
        order = make_order((keyboard, 2))
        first = services.orders.transition(
            order.id, OrderStatus.CONFIRMED, idempotency_key="confirm-1"
        )
        second = services.orders.transition(
            order.id, OrderStatus.CONFIRMED, idempotency_key="confirm-1"
        )

        assert second.replayed is True
        assert second.history_entry.id == first.history_entry.id
        assert stock_of(keyboard) == 3
        assert OrderStatusHistory.objects.filter(order=order).count() == 2

    def test_key_reused_for_another_status_conflicts(
        self, services, make_order, keyboard, stock_of
    ):
        order = make_order((keyboard, 2))
        services.orders.transition(
            order.id, OrderStatus.CONFIRMED, idempotency_key="step-1"
        )

        with pytest.raises(OrderStateConflict):
            services.orders.transition(
                order.id, OrderStatus.PROCESSING, idempotency_key="step-1"
            )

        order.refresh_from_db()
        assert order.status == OrderStatus.CONFIRMED
        assert stock_of(keyboard) == 3
        assert OrderStatusHistory.objects.filter(order=order).count() == 2

    def test_status_changed_event(self, make_order, advance, keyboard):
        order = advance(make_order((keyboard, 1)), OrderStatus.CONFIRMED)
        row = OutboxEvent.objects.get(event_type="OrderStatusChanged")
        assert row.aggregate_id == str(order.id)
        assert row.payload["old_status"] == OrderStatus.PENDING
        assert row.payload["new_status"] == OrderStatus.CONFIRMED

    def test_delivered_stamps_actual_delivery(self, make_order, advance, keyboard):
        order = advance(
            make_order((keyboard, 1)),
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.OUT_FOR_DELIVERY,
            OrderStatus.DELIVERED,
        )
        assert order.actual_delivery is not None


# ===========================================================================
# Stock side effects
# ===========================================================================


class TestStockEffects:
    def test_confirm_debits_every_line(self, make_order, advance, keyboard, mouse, stock_of):
        advance(make_order((keyboard, 2), (mouse, 3)), OrderStatus.CONFIRMED)

        assert stock_of(keyboard) == 3
        assert stock_of(mouse) == 0

    def test_confirm_fails_atomically_when_stock_ran_out(
        self, services, make_order, keyboard, mouse, stock_of
    ):
        first = make_order((mouse, 3))
        second = make_order((keyboard, 1), (mouse, 1))
        services.orders.transition(first.id, OrderStatus.CONFIRMED)

        with pytest.raises(InsufficientStock):
            services.orders.transition(second.id, OrderStatus.CONFIRMED)

        second.refresh_from_db()
        assert second.status == OrderStatus.PENDING
        assert stock_of(keyboard) == 5
        assert OrderStatusHistory.objects.filter(order=second).count() == 1

    def test_cancel_after_confirm_restocks(self, make_order, advance, keyboard, stock_of):
        advance(make_order((keyboard, 2)), OrderStatus.CONFIRMED, OrderStatus.CANCELLED)
        assert stock_of(keyboard) == 5

    def test_cancel_pending_order_moves_no_stock(self, make_order, advance, keyboard):
        order = advance(make_order((keyboard, 2)), OrderStatus.CANCELLED)

        assert order.status == OrderStatus.CANCELLED
        assert not StockMovement.objects.filter(reason__contains=order.order_number).exists()

    def test_refund_restocks_once(self, services, make_order, advance, keyboard, stock_of):
        order = advance(
            make_order((keyboard, 2)),
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.OUT_FOR_DELIVERY,
            OrderStatus.DELIVERED,
        )
        assert stock_of(keyboard) == 3

        services.orders.transition(order.id, OrderStatus.REFUNDED)
        assert stock_of(keyboard) == 5

        services.orders._coordinator.credit_order(Order.objects.get(id=order.id))
        assert stock_of(keyboard) == 5

    def test_debit_is_idempotent(self, services, make_order, advance, keyboard, stock_of):
        order = advance(make_order((keyboard, 2)), OrderStatus.CONFIRMED)
        applied = services.orders._coordinator.debit_order(Order.objects.get(id=order.id))

        assert all(result.replayed for result in applied)
        assert stock_of(keyboard) == 3


# ===========================================================================
# Payment
# ===========================================================================


class TestPayment:
    def test_paid_confirms_pending_order(self, services, make_order, keyboard, stock_of):
        order = make_order((keyboard, 1))
        order = services.orders.update_payment_status(order.id, PaymentStatus.PAID)

        assert order.payment_status == PaymentStatus.PAID
        assert order.status == OrderStatus.CONFIRMED
        assert stock_of(keyboard) == 4

    def test_paid_order_cancel_requires_refund_authorization(
        self, services, make_order, keyboard
    ):
        order = make_order((keyboard, 1))
        services.orders.update_payment_status(order.id, PaymentStatus.PAID)

        with pytest.raises(CancellationNotAllowed):
            services.orders.transition(order.id, OrderStatus.CANCELLED)

        result = services.orders.transition(
            order.id, OrderStatus.CANCELLED, authorize_refund=True
        )
        assert result.order.status == OrderStatus.CANCELLED
        assert result.order.payment_status == PaymentStatus.REFUNDED

    def test_unknown_payment_status(self, services, make_order, keyboard):
        order = make_order((keyboard, 1))
        with pytest.raises(UnknownOrderStatus):
            services.orders.update_payment_status(order.id, "maybe")


# ===========================================================================
# Bulk
# ===========================================================================


class TestBulkTransition:
    def test_failures_do_not_block_others(self, services, make_order, advance, keyboard):
        pending = make_order((keyboard, 1))
        cancelled = advance(make_order((keyboard, 1)), OrderStatus.CANCELLED)
        missing = uuid4()

        results = services.orders.bulk_transition(
            [pending.id, cancelled.id, missing], OrderStatus.CONFIRMED
        )

        by_id = {r.order_id: r for r in results}
        assert by_id[str(pending.id)].ok is True
        assert by_id[str(pending.id)].status == OrderStatus.CONFIRMED
        assert by_id[str(cancelled.id)].code == "invalid_transition"
        assert by_id[str(missing)].code == "not_found"
