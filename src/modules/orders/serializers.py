"""Request parsing and response shapes for the order and tracking API.

Input serializers only check shape; views turn their ``validated_data``
into DTOs and every rule about status, stock or payment is enforced by the
services.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import (
    DeliveryAttemptStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from modules.orders.models import (
    DeliveryAttempt,
    Order,
    OrderItem,
    OrderStatusHistory,
    TrackingEvent,
)

# Requests


class CheckoutItemSerializer(serializers.Serializer):
    """Validates a single item in a checkout request."""

    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class CheckoutSerializer(serializers.Serializer):
    """Validates the checkout request payload."""

    items = CheckoutItemSerializer(many=True, allow_empty=False)
    payment_method = serializers.ChoiceField(
        choices=PaymentMethod.choices, default=PaymentMethod.CARD
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class TransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    notes = serializers.CharField(required=False, default="", allow_blank=True)
    expected_status = serializers.ChoiceField(
        choices=OrderStatus.choices, required=False, allow_null=True, default=None
    )
    authorize_refund = serializers.BooleanField(required=False, default=False)


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, default="", allow_blank=True)
    authorize_refund = serializers.BooleanField(required=False, default=False)


class PaymentStatusSerializer(serializers.Serializer):
    payment_status = serializers.ChoiceField(choices=PaymentStatus.choices)


class BulkTransitionSerializer(serializers.Serializer):
    order_ids = serializers.ListField(
        child=serializers.UUIDField(), allow_empty=False, max_length=100
    )
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class AddTrackingEventSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=50)
    location = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=255
    )
    description = serializers.CharField(required=False, default="", allow_blank=True)
    event_time = serializers.DateTimeField(required=False, allow_null=True, default=None)


class UpdateTrackingInfoSerializer(serializers.Serializer):
    """Partial update: only the keys present in the request are applied."""

    tracking_number = serializers.CharField(
        required=False, allow_blank=True, max_length=100
    )
    carrier = serializers.CharField(required=False, allow_blank=True, max_length=50)
    estimated_delivery = serializers.DateTimeField(required=False, allow_null=True)
    delivery_notes = serializers.CharField(required=False, allow_blank=True)


class RecordDeliveryAttemptSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=DeliveryAttemptStatus.choices)
    notes = serializers.CharField(required=False, default="", allow_blank=True)
    contact = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=255
    )


class CarrierWebhookSerializer(serializers.Serializer):
    tracking_number = serializers.CharField(max_length=100)
    status = serializers.CharField(max_length=50)
    location = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=255
    )
    description = serializers.CharField(required=False, default="", allow_blank=True)
    timestamp = serializers.DateTimeField(required=False, allow_null=True, default=None)


# Responses


class OrderItemSerializer(serializers.ModelSerializer):
    """A purchased line with the price it was sold at."""

    product_name = serializers.CharField(source="product.name", read_only=True)
    product_sku = serializers.CharField(source="product.sku", read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "product_sku",
            "quantity",
            "unit_price",
            "subtotal",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    """One entry of the status audit trail."""

    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "sequence",
            "old_status",
            "new_status",
            "notes",
            "actor",
            "created_at",
        ]
        read_only_fields = fields


class TrackingEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = TrackingEvent
        fields = [
            "id",
            "status",
            "location",
            "description",
            "source",
            "event_time",
            "created_at",
        ]
        read_only_fields = fields


class DeliveryAttemptSerializer(serializers.ModelSerializer):
    class Meta:
        model = DeliveryAttempt
        fields = [
            "id",
            "attempt_number",
            "status",
            "notes",
            "contact",
            "actor",
            "attempted_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Full order: lines, status trail and shipping details."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "status",
            "payment_status",
            "payment_method",
            "total_amount",
            "notes",
            "tracking_number",
            "carrier",
            "tracking_url",
            "estimated_delivery",
            "actual_delivery",
            "delivery_notes",
            "version",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Order row for list pages; no lines or history."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "status",
            "payment_status",
            "total_amount",
            "tracking_number",
            "created_at",
        ]
        read_only_fields = fields
