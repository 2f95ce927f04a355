"""Order domain constants.

Status, payment and tracking vocabularies plus the transition graph of
the order state machine.  The graph is data: ``state_machine`` is the
only code that interprets it.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    OUT_FOR_DELIVERY = "out_for_delivery", "Out for delivery"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"
    DELIVERY_FAILED = "delivery_failed", "Delivery failed"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


class PaymentMethod(models.TextChoices):
    CARD = "card", "Card"
    CASH_ON_DELIVERY = "cod", "Cash on delivery"


class DeliveryAttemptStatus(models.TextChoices):
    ATTEMPTED = "attempted", "Attempted"
    FAILED = "failed", "Failed"
    SUCCESSFUL = "successful", "Successful"


class TrackingSource(models.TextChoices):
    CARRIER = "carrier", "Carrier"
    STAFF = "staff", "Staff"
    SYSTEM = "system", "System"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERY_FAILED},
    OrderStatus.OUT_FOR_DELIVERY: {
        OrderStatus.DELIVERED,
        OrderStatus.DELIVERY_FAILED,
    },
    OrderStatus.DELIVERY_FAILED: {
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.CANCELLED,
    },
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}

# Statuses whose entry returns previously debited stock.
RESTOCKING_STATES: set[str] = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}

# Delivery attempts are only recorded while the parcel is with the carrier.
DELIVERY_ATTEMPT_STATES: set[str] = {
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERY_FAILED,
}

# Canonical progress milestones, in order.
CANONICAL_MILESTONES: tuple[str, ...] = (
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)

MILESTONE_TITLES: dict[str, str] = {
    OrderStatus.CONFIRMED: "Order confirmed",
    OrderStatus.PROCESSING: "Preparing your order",
    OrderStatus.SHIPPED: "Shipped",
    OrderStatus.OUT_FOR_DELIVERY: "Out for delivery",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Order cancelled",
    OrderStatus.REFUNDED: "Order refunded",
    OrderStatus.DELIVERY_FAILED: "Delivery failed",
}

# Off-path statuses reported as a branch instead of progress.
BRANCH_STATES: tuple[str, ...] = (
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
    OrderStatus.DELIVERY_FAILED,
)

# Carrier vocabulary that can date a milestone missing from the history.
TRACKING_STATUS_MILESTONES: dict[str, str] = {
    "label_created": OrderStatus.PROCESSING,
    "picked_up": OrderStatus.SHIPPED,
    "in_transit": OrderStatus.SHIPPED,
    "arrived_at_facility": OrderStatus.SHIPPED,
    "departed_facility": OrderStatus.SHIPPED,
    "out_for_delivery": OrderStatus.OUT_FOR_DELIVERY,
    "delivered": OrderStatus.DELIVERED,
}

ORDER_NUMBER_MAX_RETRIES = 5
DELIVERY_ATTEMPT_MAX_RETRIES = 3
