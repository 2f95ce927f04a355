"""Fulfillment coordinator: side effects of order status transitions.

Called by ``OrderService.transition`` inside its transaction, so a failed
stock movement rolls back the status change with it.

- entering ``confirmed`` debits one ``sale`` movement per order line;
- entering ``cancelled`` or ``refunded`` credits one ``return`` movement
  per line that was debited and not yet credited;
- entering ``delivered`` stamps ``actual_delivery``.

Every movement carries the key ``order:<order_id>:item:<item_id>:<leg>``
so a repeated hook never moves stock twice.  Lines are processed in
product-id order so concurrent orders lock inventory rows in the same
order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List, Optional

import structlog
from django.conf import settings
from django.utils import timezone

from modules.inventory.constants import MovementType
from modules.inventory.dtos import StockMovementDTO
from modules.inventory.exceptions import InsufficientStock
from modules.orders.constants import (
    RESTOCKING_STATES,
    DeliveryAttemptStatus,
    OrderStatus,
)
from modules.orders.state_machine import can_transition

if TYPE_CHECKING:
    from modules.inventory.services import AppliedMovement, StockLedgerService
    from modules.orders.models import Order, OrderItem
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.services import OrderService, TransitionResult

logger = structlog.get_logger(__name__)

DEBIT = "debit"
CREDIT = "credit"


def movement_key(order_id: object, item_id: object, leg: str) -> str:
    return f"order:{order_id}:item:{item_id}:{leg}"


class FulfillmentCoordinator:
    def __init__(
        self,
        ledger: StockLedgerService,
        order_repository: IOrderRepository,
        failure_threshold: Optional[int] = None,
    ) -> None:
        self._ledger = ledger
        self._order_repo = order_repository
        self._failure_threshold = (
            failure_threshold
            if failure_threshold is not None
            else settings.DELIVERY_FAILURE_THRESHOLD
        )

    # ------------------------------------------------------------------
    # Transition hooks
    # ------------------------------------------------------------------

    def on_transition(
        self, order: Order, old_status: Optional[str], new_status: str, actor: str
    ) -> None:
        if new_status == OrderStatus.CONFIRMED:
            self.debit_order(order, actor)
        elif new_status in RESTOCKING_STATES:
            self.credit_order(order, actor)
        elif new_status == OrderStatus.DELIVERED and order.actual_delivery is None:
            order.actual_delivery = timezone.now()

    def ensure_available(self, product_quantities: Iterable[tuple]) -> None:
        """Reject a checkout up front when a line exceeds current stock.

        The authoritative check is the debit itself; this only spares the
        customer an order that cannot be confirmed.
        """
        for product, quantity in product_quantities:
            item = self._ledger.get_item_for_product(str(product.id))
            if item.current_stock < quantity:
                raise InsufficientStock(
                    f"Product {product.sku}: requested {quantity}, "
                    f"available {item.current_stock}.",
                    available=item.current_stock,
                    requested=quantity,
                )

    def debit_order(self, order: Order, actor: str = "system") -> List[AppliedMovement]:
        applied = []
        for line in self._lines(order):
            item = self._ledger.get_item_for_product(str(line.product_id))
            applied.append(
                self._ledger.apply_movement(
                    StockMovementDTO(
                        inventory_item_id=item.id,
                        quantity_delta=-line.quantity,
                        movement_type=MovementType.SALE,
                        reason=f"Order {order.order_number} confirmed",
                        actor=actor,
                        idempotency_key=movement_key(order.id, line.id, DEBIT),
                    )
                )
            )
        logger.info(
            "fulfillment.order_debited",
            order_id=str(order.id),
            line_count=len(applied),
            replayed=sum(1 for result in applied if result.replayed),
        )
        return applied

    def credit_order(self, order: Order, actor: str = "system") -> List[AppliedMovement]:
        lines = self._lines(order)
        debited = self._ledger.applied_keys(
            [movement_key(order.id, line.id, DEBIT) for line in lines]
        )
        applied = []
        for line in lines:
            if movement_key(order.id, line.id, DEBIT) not in debited:
                continue
            item = self._ledger.get_item_for_product(str(line.product_id))
            applied.append(
                self._ledger.apply_movement(
                    StockMovementDTO(
                        inventory_item_id=item.id,
                        quantity_delta=line.quantity,
                        movement_type=MovementType.RETURN,
                        reason=f"Order {order.order_number} {order.status}",
                        actor=actor,
                        idempotency_key=movement_key(order.id, line.id, CREDIT),
                    )
                )
            )
        logger.info(
            "fulfillment.order_credited",
            order_id=str(order.id),
            line_count=len(applied),
        )
        return applied

    # ------------------------------------------------------------------
    # Delivery escalation
    # ------------------------------------------------------------------

    def consecutive_failures(self, order: Order) -> int:
        """Trailing ``failed`` attempts since the last ``delivery_failed`` entry.

        Moving between ``shipped`` and ``out_for_delivery`` keeps the streak;
        only a non-failed attempt or a completed escalation resets it.
        """
        since = None
        for entry in self._order_repo.list_history(str(order.id)):
            if entry.new_status == OrderStatus.DELIVERY_FAILED:
                since = entry.created_at
        streak = 0
        for attempt in self._order_repo.list_delivery_attempts(str(order.id), since):
            if attempt.status != DeliveryAttemptStatus.FAILED:
                break
            streak += 1
        return streak

    def escalate_failed_deliveries(
        self, order: Order, order_service: OrderService, attempt_number: int
    ) -> Optional[TransitionResult]:
        """Move the order to ``delivery_failed`` once the failure streak is reached."""
        if not can_transition(order.status, OrderStatus.DELIVERY_FAILED):
            return None
        streak = self.consecutive_failures(order)
        if streak < self._failure_threshold:
            return None

        logger.warning(
            "order.delivery_escalated",
            order_id=str(order.id),
            consecutive_failures=streak,
            threshold=self._failure_threshold,
        )
        return order_service.transition(
            order.id,
            OrderStatus.DELIVERY_FAILED,
            notes=f"{streak} consecutive failed delivery attempts.",
            actor="system",
            expected_status=order.status,
            idempotency_key=f"escalation:attempt:{attempt_number}",
        )

    @staticmethod
    def _lines(order: Order) -> List[OrderItem]:
        return sorted(order.items.all(), key=lambda line: str(line.product_id))
