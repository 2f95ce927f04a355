"""API permissions for order endpoints."""

from __future__ import annotations

from django.conf import settings
from django.utils.crypto import constant_time_compare
from rest_framework.permissions import BasePermission


class IsOwnerOrStaff(BasePermission):
    """Staff see every order; customers only their own."""

    def has_object_permission(self, request, view, obj) -> bool:
        user = request.user
        return bool(user.is_staff or (obj.customer_id and obj.customer_id == user.pk))


class HasCarrierToken(BasePermission):
    """Shared-secret check for carrier webhooks (``X-Carrier-Token``).

    Every call is rejected while ``CARRIER_WEBHOOK_TOKEN`` is empty.
    """

    message = "Invalid or missing carrier token."

    def has_permission(self, request, view) -> bool:
        expected = settings.CARRIER_WEBHOOK_TOKEN
        provided = request.headers.get("X-Carrier-Token", "")
        return bool(expected) and constant_time_compare(provided, expected)
