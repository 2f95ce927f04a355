"""Integration tests for the order API: checkout, listing, state machine
endpoints and the standardized error payloads."""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.orders.constants import OrderStatus, PaymentStatus

pytestmark = pytest.mark.integration

BASE_URL = "/api/v1/orders/"


def _url(order, suffix=""):
    return f"{BASE_URL}{order.id}/{suffix}"


@pytest.fixture()
def product(make_product):
    return make_product(sku="API-1", price="15.00", stock=10)


@pytest.fixture()
def order(make_order, product):
    return make_order((product, 2))


def _checkout_payload(product, quantity=1, **extra):
    return {"items": [{"product_id": str(product.id), "quantity": quantity}], **extra}


class TestCheckout:
    def test_create_returns_201(self, customer_client, customer, product):
        response = customer_client.post(
            BASE_URL, _checkout_payload(product, 3), format="json"
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == OrderStatus.PENDING
        assert data["customer_id"] == customer.pk
        assert data["total_amount"] == "45.00"
        assert data["items"][0]["product_sku"] == "API-1"
        assert data["status_history"][0]["new_status"] == OrderStatus.PENDING

    def test_replay_with_idempotency_key_returns_200(self, customer_client, product):
        headers = {"HTTP_IDEMPOTENCY_KEY": "checkout-abc"}
        first = customer_client.post(
            BASE_URL, _checkout_payload(product), format="json", **headers
        )
        second = customer_client.post(
            BASE_URL, _checkout_payload(product), format="json", **headers
        )

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["id"] == first.json()["id"]

    def test_cash_on_delivery_is_confirmed(self, customer_client, product, stock_of):
        response = customer_client.post(
            BASE_URL, _checkout_payload(product, 4, payment_method="cod"), format="json"
        )

        assert response.status_code == 201
        assert response.json()["status"] == OrderStatus.CONFIRMED
        assert stock_of(product) == 6

    def test_empty_items_rejected(self, customer_client):
        response = customer_client.post(BASE_URL, {"items": []}, format="json")

        assert response.status_code == 400
        data = response.json()
        assert data["type"] == "validation_error"
        assert data["errors"][0]["attr"].startswith("items")

    def test_insufficient_stock_is_409(self, customer_client, product):
        response = customer_client.post(
            BASE_URL, _checkout_payload(product, 11), format="json"
        )

        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "insufficient_stock"

    def test_unknown_product_is_404(self, customer_client, product):
        payload = {"items": [{"product_id": str(uuid4()), "quantity": 1}]}
        response = customer_client.post(BASE_URL, payload, format="json")

        assert response.status_code == 404
        assert response.json()["errors"][0]["code"] == "not_found"

    def test_requires_authentication(self, api_client, product):
        response = api_client.post(BASE_URL, _checkout_payload(product), format="json")
        assert response.status_code == 401
        data = response.json()
        assert data["type"] == "client_error"
        assert data["errors"][0]["code"] == "not_authenticated"


class TestListAndRetrieve:
    def test_customer_sees_only_own_orders(
        self, customer_client, make_order, product, other_customer
    ):
        mine = make_order((product, 1))
        make_order((product, 1), owner=other_customer)

        response = customer_client.get(BASE_URL)

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["results"][0]["id"] == str(mine.id)

    def test_staff_sees_all_orders(self, staff_client, make_order, product, other_customer):
        make_order((product, 1))
        make_order((product, 1), owner=other_customer)

        response = staff_client.get(BASE_URL)

        assert response.json()["count"] == 2

    def test_filter_by_status(self, staff_client, make_order, advance, product):
        make_order((product, 1))
        advance(make_order((product, 1)), OrderStatus.CONFIRMED)

        response = staff_client.get(BASE_URL, {"status": OrderStatus.CONFIRMED})

        results = response.json()["results"]
        assert [r["status"] for r in results] == [OrderStatus.CONFIRMED]

    def test_retrieve_own_order(self, customer_client, order):
        response = customer_client.get(_url(order))

        assert response.status_code == 200
        assert response.json()["order_number"] == order.order_number

    def test_retrieve_other_customers_order_forbidden(
        self, api_client, other_customer, order
    ):
        api_client.force_authenticate(user=other_customer)
        response = api_client.get(_url(order))
        assert response.status_code == 403

    def test_retrieve_unknown_order(self, customer_client):
        response = customer_client.get(f"{BASE_URL}{uuid4()}/")
        assert response.status_code == 404

    def test_history(self, customer_client, advance, order):
        advance(order, OrderStatus.CONFIRMED)

        response = customer_client.get(_url(order, "history/"))

        assert response.status_code == 200
        assert [h["new_status"] for h in response.json()] == [
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
        ]


class TestTransitionEndpoint:
    def test_staff_transition(self, staff_client, order, stock_of, product):
        response = staff_client.post(
            _url(order, "transition/"),
            {"status": "confirmed", "notes": "Paid at counter"},
            format="json",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["order"]["status"] == OrderStatus.CONFIRMED
        assert data["history_entry"]["actor"] == "warehouse"
        assert data["history_entry"]["notes"] == "Paid at counter"
        assert data["replayed"] is False
        assert stock_of(product) == 8

    def test_customer_cannot_transition(self, customer_client, order):
        response = customer_client.post(
            _url(order, "transition/"), {"status": "confirmed"}, format="json"
        )
        assert response.status_code == 403

    def test_invalid_edge_is_422(self, staff_client, order):
        response = staff_client.post(
            _url(order, "transition/"), {"status": "delivered"}, format="json"
        )

        assert response.status_code == 422
        error = response.json()["errors"][0]
        assert error["code"] == "invalid_transition"
        assert "confirmed, cancelled" in error["detail"]

    def test_unknown_status_is_400(self, staff_client, order):
        response = staff_client.post(
            _url(order, "transition/"), {"status": "teleported"}, format="json"
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "status"

    def test_stale_expected_status_is_409(self, staff_client, advance, order):
        advance(order, OrderStatus.CONFIRMED)

        response = staff_client.post(
            _url(order, "transition/"),
            {"status": "cancelled", "expected_status": "pending"},
            format="json",
        )

        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "state_conflict"

    def test_retry_with_idempotency_key(self, staff_client, order):
        kwargs = {"format": "json", "HTTP_IDEMPOTENCY_KEY": "confirm-once"}
        first = staff_client.post(_url(order, "transition/"), {"status": "confirmed"}, **kwargs)
        second = staff_client.post(_url(order, "transition/"), {"status": "confirmed"}, **kwargs)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["replayed"] is True
        assert second.json()["history_entry"]["id"] == first.json()["history_entry"]["id"]


class TestCancelEndpoint:
    def test_customer_cancels_unpaid_order(self, customer_client, order):
        response = customer_client.post(
            _url(order, "cancel/"), {"reason": "Changed my mind"}, format="json"
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == OrderStatus.CANCELLED
        assert data["status_history"][-1]["notes"] == "Changed my mind"

    def test_customer_cannot_authorize_refund(self, customer_client, services, order):
        services.orders.update_payment_status(order.id, PaymentStatus.PAID)

        response = customer_client.post(
            _url(order, "cancel/"), {"authorize_refund": True}, format="json"
        )

        assert response.status_code == 422
        assert response.json()["errors"][0]["code"] == "guard_failed"

    def test_staff_cancels_paid_order_with_refund(
        self, staff_client, services, order, stock_of, product
    ):
        services.orders.update_payment_status(order.id, PaymentStatus.PAID)

        response = staff_client.post(
            _url(order, "cancel/"), {"authorize_refund": True}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["payment_status"] == PaymentStatus.REFUNDED
        assert stock_of(product) == 10

    def test_other_customer_cannot_cancel(self, api_client, other_customer, order):
        api_client.force_authenticate(user=other_customer)
        response = api_client.post(_url(order, "cancel/"), {}, format="json")
        assert response.status_code == 403

    def test_shipped_order_cannot_be_cancelled(self, customer_client, advance, order):
        advance(
            order, OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED
        )
        response = customer_client.post(_url(order, "cancel/"), {}, format="json")
        assert response.status_code == 422


class TestPaymentEndpoint:
    def test_paid_confirms_order(self, staff_client, order):
        response = staff_client.post(
            _url(order, "payment/"), {"payment_status": "paid"}, format="json"
        )

        assert response.status_code == 200
        data = response.json()
        assert data["payment_status"] == PaymentStatus.PAID
        assert data["status"] == OrderStatus.CONFIRMED

    def test_customer_cannot_mark_paid(self, customer_client, order):
        response = customer_client.post(
            _url(order, "payment/"), {"payment_status": "paid"}, format="json"
        )
        assert response.status_code == 403


class TestBulkTransition:
    def test_mixed_outcomes(self, staff_client, make_order, advance, product):
        ok = make_order((product, 1))
        done = advance(make_order((product, 1)), OrderStatus.CANCELLED)

        response = staff_client.post(
            f"{BASE_URL}bulk-transition/",
            {"order_ids": [str(ok.id), str(done.id)], "status": "confirmed"},
            format="json",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["succeeded"] == 1
        assert data["failed"] == 1
        failed = next(r for r in data["results"] if not r["ok"])
        assert failed["order_id"] == str(done.id)
        assert failed["code"] == "invalid_transition"

    def test_requires_staff(self, customer_client, order):
        response = customer_client.post(
            f"{BASE_URL}bulk-transition/",
            {"order_ids": [str(order.id)], "status": "confirmed"},
            format="json",
        )
        assert response.status_code == 403
