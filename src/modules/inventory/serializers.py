"""Inventory DRF serializers for API input/output."""

from __future__ import annotations

from rest_framework import serializers

from modules.inventory.constants import MovementType, StockStatus
from modules.inventory.models import InventoryItem, StockMovement

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class InventoryQuerySerializer(serializers.Serializer):
    """Query parameters accepted by the item list endpoint."""

    search = serializers.CharField(required=False, allow_blank=True)
    stock_status = serializers.ChoiceField(choices=StockStatus.choices, required=False)
    low_stock = serializers.BooleanField(required=False, default=False)


class CreateStockMovementSerializer(serializers.Serializer):
    movement_type = serializers.ChoiceField(choices=MovementType.choices)
    quantity_delta = serializers.IntegerField()
    reason = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=255
    )


class InventorySettingsSerializer(serializers.Serializer):
    minimum_stock_level = serializers.IntegerField(min_value=0)
    maximum_stock_level = serializers.IntegerField(
        required=False, allow_null=True, default=None, min_value=0
    )
    reorder_quantity = serializers.IntegerField()
    location = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=100
    )


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class InventoryItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    product_sku = serializers.CharField(source="product.sku", read_only=True)
    computed_status = serializers.CharField(read_only=True)
    stock_needed = serializers.IntegerField(read_only=True)

    class Meta:
        model = InventoryItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "product_sku",
            "current_stock",
            "minimum_stock_level",
            "maximum_stock_level",
            "reorder_quantity",
            "location",
            "computed_status",
            "stock_needed",
            "version",
            "updated_at",
        ]
        read_only_fields = fields


class StockMovementSerializer(serializers.ModelSerializer):
    class Meta:
        model = StockMovement
        fields = [
            "id",
            "inventory_item_id",
            "sequence",
            "movement_type",
            "quantity_delta",
            "previous_stock",
            "resulting_stock",
            "reason",
            "actor",
            "created_at",
        ]
        read_only_fields = fields


class LowStockAlertSerializer(serializers.Serializer):
    inventory_item_id = serializers.UUIDField()
    product_id = serializers.UUIDField()
    product_name = serializers.CharField()
    product_sku = serializers.CharField()
    current_stock = serializers.IntegerField()
    minimum_stock_level = serializers.IntegerField()
    reorder_quantity = serializers.IntegerField()
    stock_needed = serializers.IntegerField()
    stock_status = serializers.CharField()
