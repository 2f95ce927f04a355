"""Order API views.

Exposes ``OrderService`` and ``TrackingService`` via HTTP using DRF
ViewSets.  Domain errors propagate to the project exception handler,
which maps them onto status codes.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import BasePermission, IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet

from modules.orders.constants import OrderStatus
from modules.orders.dtos import (
    CarrierUpdateDTO,
    CheckoutDTO,
    CheckoutItemDTO,
    UpdateTrackingInfoDTO,
)
from modules.orders.factories import build_services
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.permissions import HasCarrierToken, IsOwnerOrStaff
from modules.orders.serializers import (
    AddTrackingEventSerializer,
    BulkTransitionSerializer,
    CancelSerializer,
    CarrierWebhookSerializer,
    CheckoutSerializer,
    DeliveryAttemptSerializer,
    OrderListSerializer,
    OrderSerializer,
    PaymentStatusSerializer,
    RecordDeliveryAttemptSerializer,
    StatusHistorySerializer,
    TrackingEventSerializer,
    TransitionSerializer,
    UpdateTrackingInfoSerializer,
)

STAFF_ACTIONS = {
    "transition",
    "payment",
    "bulk_transition",
    "tracking_events",
    "tracking_info",
    "delivery_attempts",
}


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Does **not** extend ``ModelViewSet``: every write goes through the
    service layer.  Customers see and cancel their own orders; moving an
    order along the fulfillment path is staff-only.
    """

    queryset = Order.objects.all()
    serializer_class = OrderSerializer
    filterset_class = OrderFilter
    search_fields = ["order_number", "tracking_number"]
    ordering_fields = ["created_at", "total_amount", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        services = build_services()
        self._service = services.orders
        self._tracking = services.tracking

    def get_permissions(self) -> list[BasePermission]:
        if self.action in STAFF_ACTIONS:
            return [IsAdminUser()]
        return [IsAuthenticated(), IsOwnerOrStaff()]

    def get_throttles(self) -> list[BaseThrottle]:
        """Throttle scope per action."""
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "checkout"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    def get_queryset(self):
        queryset = self._service.list_orders()
        user = self.request.user
        if not user.is_staff:
            queryset = queryset.filter(customer_id=user.pk)
        return queryset

    def _get_order(self, pk: str | None) -> Order:
        order = self._service.get_order(str(pk))
        self.check_object_permissions(self.request, order)
        return order

    @staticmethod
    def _actor(request: Request) -> str:
        return request.user.get_username() or "system"

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    @extend_schema(request=CheckoutSerializer, responses=OrderSerializer)
    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Supports idempotency via the ``Idempotency-Key`` header.
        Returns 200 if the key was already used, 201 for new orders.
        """
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = serializer.validated_data
        dto = CheckoutDTO(
            customer_id=request.user.pk,
            payment_method=data["payment_method"],
            items=[
                CheckoutItemDTO(product_id=item["product_id"], quantity=item["quantity"])
                for item in data["items"]
            ],
            notes=data["notes"],
            idempotency_key=request.headers.get("Idempotency-Key"),
            actor=self._actor(request),
        )
        result = self._service.create_order(dto)
        return Response(
            OrderSerializer(result.order).data,
            status=status.HTTP_200_OK if result.replayed else status.HTTP_201_CREATED,
        )

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Filtering (status, payment status, customer, date range, total
        range) is handled by ``OrderFilter``.  Results are paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = OrderListSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        return Response(OrderSerializer(self._get_order(pk)).data)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @extend_schema(request=TransitionSerializer)
    @action(detail=True, methods=["post"])
    def transition(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/transition/

        ``expected_status`` makes the write conditional on the status the
        client last saw.  ``Idempotency-Key`` replays a retried request.
        """
        serializer = TransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = self._service.transition(
            pk,
            data["status"],
            notes=data["notes"],
            actor=self._actor(request),
            expected_status=data["expected_status"],
            idempotency_key=request.headers.get("Idempotency-Key"),
            authorize_refund=data["authorize_refund"],
        )
        return Response(
            {
                "order": OrderSerializer(result.order).data,
                "history_entry": StatusHistorySerializer(result.history_entry).data,
                "replayed": result.replayed,
            }
        )

    @extend_schema(request=CancelSerializer, responses=OrderSerializer)
    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Customers may cancel their own unpaid orders; paid orders need a
        staff member to authorize the refund.
        """
        order = self._get_order(pk)
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = self._service.transition(
            order.id,
            OrderStatus.CANCELLED,
            notes=data["reason"],
            actor=self._actor(request),
            idempotency_key=request.headers.get("Idempotency-Key"),
            authorize_refund=bool(request.user.is_staff and data["authorize_refund"]),
        )
        return Response(OrderSerializer(result.order).data)

    @extend_schema(request=PaymentStatusSerializer, responses=OrderSerializer)
    @action(detail=True, methods=["post"])
    def payment(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/payment/"""
        serializer = PaymentStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self._service.update_payment_status(
            pk, serializer.validated_data["payment_status"], actor=self._actor(request)
        )
        return Response(OrderSerializer(order).data)

    @extend_schema(request=BulkTransitionSerializer)
    @action(detail=False, methods=["post"], url_path="bulk-transition")
    def bulk_transition(self, request: Request) -> Response:
        """POST /api/v1/orders/bulk-transition/

        Each order is transitioned independently; the response lists the
        outcome per order.
        """
        serializer = BulkTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        results = self._service.bulk_transition(
            data["order_ids"], data["status"], notes=data["notes"], actor=self._actor(request)
        )
        return Response(
            {
                "succeeded": sum(1 for r in results if r.ok),
                "failed": sum(1 for r in results if not r.ok),
                "results": [r.model_dump() for r in results],
            }
        )

    @action(detail=True, methods=["get"])
    def history(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/history/"""
        order = self._get_order(pk)
        entries = self._service.history(str(order.id))
        return Response(StatusHistorySerializer(entries, many=True).data)

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    @extend_schema(request=AddTrackingEventSerializer, responses=TrackingEventSerializer)
    @action(detail=True, methods=["post"], url_path="tracking-events")
    def tracking_events(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/tracking-events/"""
        serializer = AddTrackingEventSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        event = self._tracking.add_tracking_event(
            pk, actor=self._actor(request), **serializer.validated_data
        )
        return Response(TrackingEventSerializer(event).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=UpdateTrackingInfoSerializer, responses=OrderSerializer)
    @action(detail=True, methods=["patch"], url_path="tracking-info")
    def tracking_info(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/tracking-info/"""
        serializer = UpdateTrackingInfoSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self._tracking.update_tracking_info(
            pk,
            UpdateTrackingInfoDTO(**serializer.validated_data),
            actor=self._actor(request),
        )
        return Response(OrderSerializer(order).data)

    @extend_schema(request=RecordDeliveryAttemptSerializer)
    @action(detail=True, methods=["post"], url_path="delivery-attempts")
    def delivery_attempts(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/delivery-attempts/

        A failed attempt may escalate the order to ``delivery_failed``.
        """
        serializer = RecordDeliveryAttemptSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self._tracking.record_delivery_attempt(
            pk, actor=self._actor(request), **serializer.validated_data
        )
        body = {
            "attempt": DeliveryAttemptSerializer(result.attempt).data,
            "escalated": result.escalation is not None,
        }
        if result.escalation is not None:
            body["order"] = OrderSerializer(result.escalation.order).data
        return Response(body, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"])
    def tracking(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/tracking/"""
        order = self._get_order(pk)
        detail = self._tracking.get_tracking(order.id)
        return Response(
            {
                "order_id": str(order.id),
                "order_number": order.order_number,
                "status": order.status,
                "tracking_number": order.tracking_number,
                "carrier": order.carrier,
                "tracking_url": order.tracking_url,
                "events": TrackingEventSerializer(detail.events, many=True).data,
                "delivery_attempts": DeliveryAttemptSerializer(
                    detail.attempts, many=True
                ).data,
                "timeline": detail.timeline.model_dump(mode="json"),
            }
        )

    @action(detail=True, methods=["get"])
    def timeline(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/timeline/"""
        order = self._get_order(pk)
        return Response(self._tracking.get_timeline(order.id).model_dump(mode="json"))


class CarrierWebhookView(APIView):
    """POST /api/v1/orders/carrier-webhook/

    Carrier scan notifications, authenticated by the ``X-Carrier-Token``
    shared secret instead of a user session.
    """

    authentication_classes: list = []
    permission_classes = [HasCarrierToken]
    throttle_scope = "carrier_webhook"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._tracking = build_services().tracking

    @extend_schema(request=CarrierWebhookSerializer, responses=TrackingEventSerializer)
    def post(self, request: Request) -> Response:
        serializer = CarrierWebhookSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        event = self._tracking.handle_carrier_update(
            CarrierUpdateDTO(
                tracking_number=data["tracking_number"],
                status=data["status"],
                location=data["location"],
                description=data["description"],
                event_time=data["timestamp"],
            )
        )
        return Response(TrackingEventSerializer(event).data, status=status.HTTP_201_CREATED)
