"""Frozen pydantic models passed between the order views and services.

- ``CheckoutItemDTO`` / ``CheckoutDTO``: input for order creation.
- ``UpdateTrackingInfoDTO``: partial update of shipping details; only the
  fields actually supplied are applied (``model_fields_set``).
- ``CarrierUpdateDTO``: carrier webhook payload.
- ``BulkTransitionResultDTO``: per-order outcome of a bulk transition.
- ``TimelineDTO`` and its parts: projected delivery progress.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from modules.orders.constants import PaymentMethod

# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CheckoutItemDTO(BaseModel):
    """A single order line in a checkout request.

    ``unit_price`` is resolved by the Service Layer from the product catalog.
    """

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Each line needs a quantity of at least one.")
        return v


class CheckoutDTO(BaseModel):
    """Immutable DTO for checkout requests.

    Validates:
    - ``items`` must contain at least one item.
    - Each product appears at most once.
    """

    model_config = ConfigDict(frozen=True)

    customer_id: Optional[int] = None
    payment_method: PaymentMethod = PaymentMethod.CARD
    items: List[CheckoutItemDTO]
    notes: Optional[str] = ""
    idempotency_key: Optional[str] = Field(default=None, max_length=255)
    actor: str = "system"

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(cls, v: List[CheckoutItemDTO]) -> List[CheckoutItemDTO]:
        if not v:
            raise ValueError("A checkout needs at least one line.")
        return v

    @model_validator(mode="after")
    def no_duplicate_products(self):
        product_ids = [item.product_id for item in self.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError("Each product may appear on only one line.")
        return self


class UpdateTrackingInfoDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    tracking_number: Optional[str] = Field(default=None, max_length=100)
    carrier: Optional[str] = Field(default=None, max_length=50)
    estimated_delivery: Optional[datetime] = None
    delivery_notes: Optional[str] = None


class CarrierUpdateDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    tracking_number: str = Field(min_length=1, max_length=100)
    status: str = Field(min_length=1, max_length=50)
    location: str = Field(default="", max_length=255)
    description: str = ""
    event_time: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class BulkTransitionResultDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str
    ok: bool
    status: Optional[str] = None
    code: Optional[str] = None
    detail: Optional[str] = None


class MilestoneDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    title: str
    completed: bool
    active: bool
    date: Optional[datetime] = None


class BranchDTO(BaseModel):
    """Off-path status (cancelled, refunded, delivery failed)."""

    model_config = ConfigDict(frozen=True)

    key: str
    title: str
    date: Optional[datetime] = None


class DeliveryEstimateDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    estimated_delivery: datetime
    window_start: datetime
    window_end: datetime
    is_delayed: bool
    days_remaining: int
    actual_delivery: Optional[datetime] = None


class TimelineDTO(BaseModel):
    """Delivery progress projected from status history and tracking events.

    ``progress`` is ``None`` while the order sits on an off-path branch.
    """

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    status: str
    milestones: List[MilestoneDTO]
    progress: Optional[int]
    branch: Optional[BranchDTO] = None
    delivery: DeliveryEstimateDTO
