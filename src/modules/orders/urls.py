"""Order URL configuration."""

from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from modules.orders.views import CarrierWebhookView, OrderViewSet

router = DefaultRouter(trailing_slash=True)
router.register("orders", OrderViewSet, basename="order")

urlpatterns = [
    path(
        "orders/carrier-webhook/",
        CarrierWebhookView.as_view(),
        name="carrier-webhook",
    ),
    *router.urls,
]
