"""Inventory API views.

Staff-only endpoints over the ``StockLedgerService``.  Domain errors
propagate to the project exception handler.
"""

from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.inventory.dtos import InventorySettingsDTO, StockMovementDTO
from modules.inventory.models import InventoryItem
from modules.inventory.repositories.django_repository import InventoryDjangoRepository
from modules.inventory.serializers import (
    CreateStockMovementSerializer,
    InventoryItemSerializer,
    InventoryQuerySerializer,
    InventorySettingsSerializer,
    LowStockAlertSerializer,
    StockMovementSerializer,
)
from modules.inventory.services import StockLedgerService


class InventoryViewSet(GenericViewSet):
    """Inventory items, their movement ledger and stock reports."""

    queryset = InventoryItem.objects.all()
    serializer_class = InventoryItemSerializer
    permission_classes = [IsAdminUser]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = StockLedgerService(
            inventory_repository=InventoryDjangoRepository()
        )

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    @extend_schema(parameters=[InventoryQuerySerializer])
    def list(self, request: Request) -> Response:
        """GET /api/v1/inventory/"""
        query = InventoryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        queryset = self._service.list_items(query.validated_data)

        page = self.paginate_queryset(queryset)
        serializer = InventoryItemSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/inventory/{pk}/"""
        item = self._service.get_item(str(pk))
        return Response(InventoryItemSerializer(item).data)

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    @extend_schema(request=CreateStockMovementSerializer)
    @action(detail=True, methods=["get", "post"])
    def movements(self, request: Request, pk: str | None = None) -> Response:
        """GET|POST /api/v1/inventory/{pk}/movements/

        POST supports idempotency via the ``Idempotency-Key`` header:
        201 for a new movement, 200 when the key was already applied.
        """
        if request.method == "GET":
            queryset = self._service.list_movements(str(pk))
            page = self.paginate_queryset(queryset)
            serializer = StockMovementSerializer(page, many=True)
            return self.get_paginated_response(serializer.data)

        serializer = CreateStockMovementSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        applied = self._service.apply_movement(
            StockMovementDTO(
                inventory_item_id=pk,
                quantity_delta=data["quantity_delta"],
                movement_type=data["movement_type"],
                reason=data["reason"],
                actor=request.user.get_username(),
                idempotency_key=request.headers.get("Idempotency-Key"),
            )
        )
        return Response(
            {
                "item": InventoryItemSerializer(applied.item).data,
                "movement": StockMovementSerializer(applied.movement).data,
            },
            status=status.HTTP_200_OK if applied.replayed else status.HTTP_201_CREATED,
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @extend_schema(request=InventorySettingsSerializer)
    @action(detail=True, methods=["put"], url_path="settings")
    def update_settings(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/inventory/{pk}/settings/"""
        serializer = InventorySettingsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        item = self._service.update_settings(
            str(pk), InventorySettingsDTO(**serializer.validated_data)
        )
        return Response(InventoryItemSerializer(item).data)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    @action(detail=False, methods=["get"], url_path="alerts/low-stock")
    def low_stock(self, request: Request) -> Response:
        """GET /api/v1/inventory/alerts/low-stock/"""
        alerts = self._service.low_stock_alerts()
        serializer = LowStockAlertSerializer(
            [alert.model_dump() for alert in alerts], many=True
        )
        return Response({"count": len(alerts), "results": serializer.data})

    @action(detail=False, methods=["get"])
    def stats(self, request: Request) -> Response:
        """GET /api/v1/inventory/stats/"""
        return Response(self._service.stats().model_dump())
