"""Integration tests for tracking endpoints and the carrier webhook."""

from __future__ import annotations

import pytest

from modules.orders.constants import OrderStatus

pytestmark = pytest.mark.integration

BASE_URL = "/api/v1/orders/"
WEBHOOK_URL = "/api/v1/orders/carrier-webhook/"
CARRIER_TOKEN = {"HTTP_X_CARRIER_TOKEN": "test-carrier-token"}


def _url(order, suffix):
    return f"{BASE_URL}{order.id}/{suffix}"


@pytest.fixture()
def shipped(make_product, make_order, advance):
    product = make_product(sku="SHIP-1", stock=5)
    return advance(
        make_order((product, 1)),
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
    )


@pytest.fixture()
def labelled(staff_client, shipped):
    response = staff_client.patch(
        _url(shipped, "tracking-info/"),
        {"tracking_number": "1Z999AA1", "carrier": "ups"},
        format="json",
    )
    assert response.status_code == 200
    return shipped


class TestTrackingInfo:
    def test_patch_sets_tracking_url(self, staff_client, shipped):
        response = staff_client.patch(
            _url(shipped, "tracking-info/"),
            {"tracking_number": "1Z999AA1", "carrier": "ups"},
            format="json",
        )

        data = response.json()
        assert data["tracking_number"] == "1Z999AA1"
        assert data["tracking_url"] == "https://www.ups.com/track?tracknum=1Z999AA1"

    def test_customer_cannot_patch(self, customer_client, shipped):
        response = customer_client.patch(
            _url(shipped, "tracking-info/"), {"carrier": "dhl"}, format="json"
        )
        assert response.status_code == 403


class TestTrackingEvents:
    def test_staff_adds_event(self, staff_client, shipped):
        response = staff_client.post(
            _url(shipped, "tracking-events/"),
            {"status": "in_transit", "location": "Madrid hub"},
            format="json",
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "in_transit"
        assert data["source"] == "staff"

    def test_event_leaves_status_alone(self, staff_client, customer_client, shipped):
        staff_client.post(
            _url(shipped, "tracking-events/"), {"status": "delivered"}, format="json"
        )

        response = customer_client.get(f"{BASE_URL}{shipped.id}/")
        assert response.json()["status"] == OrderStatus.SHIPPED


class TestDeliveryAttempts:
    def test_record_attempt(self, staff_client, shipped):
        response = staff_client.post(
            _url(shipped, "delivery-attempts/"),
            {"status": "attempted", "notes": "Nobody home"},
            format="json",
        )

        assert response.status_code == 201
        data = response.json()
        assert data["attempt"]["attempt_number"] == 1
        assert data["escalated"] is False
        assert "order" not in data

    def test_third_failure_escalates(self, staff_client, shipped):
        for _ in range(2):
            staff_client.post(
                _url(shipped, "delivery-attempts/"), {"status": "failed"}, format="json"
            )
        response = staff_client.post(
            _url(shipped, "delivery-attempts/"), {"status": "failed"}, format="json"
        )

        data = response.json()
        assert data["escalated"] is True
        assert data["order"]["status"] == OrderStatus.DELIVERY_FAILED

    def test_rejected_for_pending_order(self, staff_client, make_order, make_product):
        order = make_order((make_product(sku="SHIP-2", stock=1), 1))
        response = staff_client.post(
            _url(order, "delivery-attempts/"), {"status": "failed"}, format="json"
        )

        assert response.status_code == 422
        assert response.json()["errors"][0]["code"] == "guard_failed"


class TestTrackingReads:
    def test_tracking_view(self, customer_client, labelled):
        response = customer_client.get(_url(labelled, "tracking/"))

        assert response.status_code == 200
        data = response.json()
        assert data["tracking_number"] == "1Z999AA1"
        assert [e["status"] for e in data["events"]] == ["label_created"]
        assert data["delivery_attempts"] == []
        assert data["timeline"]["progress"] == 60

    def test_timeline_view(self, customer_client, labelled):
        response = customer_client.get(_url(labelled, "timeline/"))

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == OrderStatus.SHIPPED
        assert [m["key"] for m in data["milestones"]] == [
            "confirmed",
            "processing",
            "shipped",
            "out_for_delivery",
            "delivered",
        ]
        assert data["milestones"][3]["active"] is True
        assert data["branch"] is None
        assert "estimated_delivery" in data["delivery"]

    def test_other_customer_cannot_read_tracking(
        self, api_client, other_customer, labelled
    ):
        api_client.force_authenticate(user=other_customer)
        assert api_client.get(_url(labelled, "tracking/")).status_code == 403
        assert api_client.get(_url(labelled, "timeline/")).status_code == 403


class TestCarrierWebhook:
    def test_valid_token_records_carrier_event(self, api_client, labelled):
        response = api_client.post(
            WEBHOOK_URL,
            {
                "tracking_number": "1Z999AA1",
                "status": "out_for_delivery",
                "location": "Lisbon",
                "timestamp": "2024-03-05T08:30:00Z",
            },
            format="json",
            **CARRIER_TOKEN,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["source"] == "carrier"
        assert data["location"] == "Lisbon"

    def test_missing_token_rejected(self, api_client, labelled):
        response = api_client.post(
            WEBHOOK_URL,
            {"tracking_number": "1Z999AA1", "status": "in_transit"},
            format="json",
        )
        assert response.status_code == 403

    def test_wrong_token_rejected(self, api_client, labelled):
        response = api_client.post(
            WEBHOOK_URL,
            {"tracking_number": "1Z999AA1", "status": "in_transit"},
            format="json",
            HTTP_X_CARRIER_TOKEN="guess",
        )
        assert response.status_code == 403

    def test_unknown_tracking_number_is_404(self, api_client, labelled):
        response = api_client.post(
            WEBHOOK_URL,
            {"tracking_number": "UNKNOWN", "status": "in_transit"},
            format="json",
            **CARRIER_TOKEN,
        )
        assert response.status_code == 404

    def test_webhook_disabled_without_configured_token(
        self, api_client, labelled, settings
    ):
        settings.CARRIER_WEBHOOK_TOKEN = ""
        response = api_client.post(
            WEBHOOK_URL,
            {"tracking_number": "1Z999AA1", "status": "in_transit"},
            format="json",
            HTTP_X_CARRIER_TOKEN="",
        )
        assert response.status_code == 403

    def test_overlong_location_rejected(self, api_client, labelled):
        response = api_client.post(
            WEBHOOK_URL,
            {
                "tracking_number": "1Z999AA1",
                "status": "in_transit",
                "location": "L" * 256,
            },
            format="json",
            **CARRIER_TOKEN,
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "location"
        assert not labelled.tracking_events.filter(status="in_transit").exists()
