"""Persistence for the order lifecycle.

``Order`` is the only mutable row here.  Its ``status`` and ``version`` move
together through ``OrderDjangoRepository.compare_and_set``; a plain ``save()``
on a stored order leaves both untouched and refuses to write them when they
are named explicitly.

Everything else is appended and never edited: order lines (prices frozen at
checkout), status history (``sequence`` 1, 2, 3... per order), tracking
events and delivery attempts (``attempt_number`` 1, 2, 3... per order).
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import AppendOnlyModel, BaseModel
from modules.orders.constants import (
    ORDER_NUMBER_MAX_RETRIES,
    DeliveryAttemptStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    TrackingSource,
)
from modules.orders.exceptions import StatusWriteViolation
from shared.domain.events import DomainEventMixin


class Order(DomainEventMixin, BaseModel):
    """A customer purchase moving from ``pending`` to ``delivered`` (or out
    through ``cancelled`` / ``refunded``).

    ``order_number`` (``ORD-YYYYMMDD-XXXXXX``) is what customers and carriers
    quote; the API addresses orders by UUID.  ``idempotency_key`` is only set
    when checkout was called with an ``Idempotency-Key`` header.
    """

    STATE_FIELDS = frozenset({"status", "version"})

    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    customer: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    payment_status: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    payment_method: models.CharField = models.CharField(
        max_length=10,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CARD,
    )
    total_amount: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    # Delivery tracking
    tracking_number: models.CharField = models.CharField(
        max_length=100, blank=True, default=""
    )
    carrier: models.CharField = models.CharField(max_length=50, blank=True, default="")
    tracking_url: models.URLField = models.URLField(
        max_length=500, blank=True, default=""
    )
    estimated_delivery: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )
    actual_delivery: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    delivery_notes: models.TextField = models.TextField(blank=True, default="")

    idempotency_key: models.CharField = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )
    version: models.PositiveIntegerField = models.PositiveIntegerField(
        default=0, editable=False
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["payment_status"], name="orders_payment_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["tracking_number"],
                condition=~models.Q(tracking_number=""),
                name="orders_tracking_number_uniq",
            ),
            models.CheckConstraint(
                condition=models.Q(total_amount__gte=0),
                name="orders_total_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_number} [{self.status}]"

    @staticmethod
    def new_order_number() -> str:
        return f"ORD-{timezone.now():%Y%m%d}-{secrets.token_hex(3).upper()}"

    def _assign_order_number(self) -> None:
        for _ in range(ORDER_NUMBER_MAX_RETRIES):
            candidate = self.new_order_number()
            if not Order.objects.filter(order_number=candidate).exists():
                self.order_number = candidate
                return
        raise RuntimeError(
            f"no free order number after {ORDER_NUMBER_MAX_RETRIES} draws"
        )

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            update_fields = kwargs.get("update_fields")
            if update_fields is None:
                kwargs["update_fields"] = [
                    field.name
                    for field in self._meta.concrete_fields
                    if not field.primary_key and field.name not in self.STATE_FIELDS
                ]
            elif self.STATE_FIELDS & set(update_fields):
                raise StatusWriteViolation(
                    "Order status changes must go through OrderService.transition."
                )
        elif not self.order_number:
            self._assign_order_number()
        super().save(*args, **kwargs)


class OrderItem(AppendOnlyModel):
    """One product line of an order, priced when the order was placed.

    ``subtotal`` is fixed on insert; later price changes on the product never
    reach existing orders.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="items",
    )
    product: models.ForeignKey = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    unit_price: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
    )
    subtotal: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        editable=False,
    )

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.quantity is not None and self.quantity < 1:
            raise ValidationError({"quantity": "An order line needs at least one unit."})

    def save(self, *args: Any, **kwargs: Any) -> None:
        if self._state.adding:
            if not self.unit_price:
                unit_price = getattr(self.product, "price", None)
                if unit_price is None:
                    raise ValidationError(
                        {"unit_price": "Cannot price a line without a product price."}
                    )
                self.unit_price = unit_price
            self.subtotal = self.quantity * self.unit_price
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.quantity} x {self.product} = {self.subtotal}"


class OrderStatusHistory(AppendOnlyModel):
    """One recorded status change, numbered per order by ``sequence``.

    ``old_status`` is ``None`` only for the entry written at checkout.
    ``actor`` is a free-form principal ("system", a username, a carrier).
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="status_history",
    )
    sequence: models.PositiveIntegerField = models.PositiveIntegerField()
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    notes: models.TextField = models.TextField(blank=True, default="")
    actor: models.CharField = models.CharField(max_length=150, default="system")
    idempotency_key: models.CharField = models.CharField(  # noqa: DJ01
        max_length=255, null=True, blank=True
    )

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at", "sequence"]
        indexes = [
            models.Index(
                fields=["order", "-created_at"],
                name="osh_order_created_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "sequence"],
                name="osh_order_sequence_uniq",
            ),
            models.UniqueConstraint(
                fields=["order", "idempotency_key"],
                name="osh_order_idempotency_key_uniq",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} #{self.sequence}: {self.old_status} -> {self.new_status}"


class TrackingEvent(AppendOnlyModel):
    """Carrier scan or staff note about the parcel.

    ``status`` is free carrier vocabulary and never drives ``Order.status``.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="tracking_events",
    )
    status: models.CharField = models.CharField(max_length=50)
    location: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )
    description: models.TextField = models.TextField(blank=True, default="")
    source: models.CharField = models.CharField(
        max_length=10,
        choices=TrackingSource.choices,
        default=TrackingSource.STAFF,
    )
    actor: models.CharField = models.CharField(max_length=150, default="system")
    event_time: models.DateTimeField = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "order_tracking_events"
        ordering = ["event_time", "created_at"]
        indexes = [
            models.Index(
                fields=["order", "event_time"],
                name="ote_order_event_time_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} {self.status} @ {self.event_time:%Y-%m-%d %H:%M}"


class DeliveryAttempt(AppendOnlyModel):
    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="delivery_attempts",
    )
    attempt_number: models.PositiveIntegerField = models.PositiveIntegerField()
    status: models.CharField = models.CharField(
        max_length=20, choices=DeliveryAttemptStatus.choices
    )
    notes: models.TextField = models.TextField(blank=True, default="")
    contact: models.CharField = models.CharField(max_length=255, blank=True, default="")
    actor: models.CharField = models.CharField(max_length=150, default="system")
    attempted_at: models.DateTimeField = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "delivery_attempts"
        ordering = ["-attempt_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "attempt_number"],
                name="delivery_attempts_order_number_uniq",
            ),
            models.CheckConstraint(
                condition=models.Q(attempt_number__gte=1),
                name="delivery_attempts_number_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} attempt {self.attempt_number} ({self.status})"
