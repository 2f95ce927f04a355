"""Order service layer (Use Cases).

Orchestrates checkout, the order state machine, payment status updates
and bulk transitions.  All write operations are atomic: the service
defines the unit-of-work boundary, and stock side effects run inside it
through the ``FulfillmentCoordinator``.

Business rules enforced:
- Products must exist and be active at checkout; prices are snapshotted.
- Only edges of ``VALID_TRANSITIONS`` are accepted; a paid order is only
  cancelled with refund authorization.
- The status write is a compare-and-set on ``(status, version)``: of two
  concurrent transitions from the same status exactly one wins.
- Every accepted transition appends exactly one history entry; a retried
  transition with the same idempotency key returns the original entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional
from uuid import UUID

import structlog
from django.db import transaction

from modules.core.exceptions import DomainError
from modules.orders import state_machine
from modules.orders.constants import OrderStatus, PaymentMethod, PaymentStatus
from modules.orders.dtos import BulkTransitionResultDTO
from modules.orders.events import (
    OrderCreated,
    OrderPaymentStatusChanged,
    OrderStatusChanged,
)
from modules.orders.exceptions import (
    InactiveProduct,
    OrderNotFound,
    OrderStateConflict,
    ProductNotFound,
    UnknownOrderStatus,
)

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.orders.dtos import CheckoutDTO
    from modules.orders.fulfillment import FulfillmentCoordinator
    from modules.orders.models import Order, OrderStatusHistory
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    order: Order
    history_entry: OrderStatusHistory
    replayed: bool = False


@dataclass(frozen=True)
class CheckoutResult:
    order: Order
    replayed: bool = False


class OrderService:
    """Application service for Order use-cases.

    Receives repositories and the fulfillment coordinator via constructor
    injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
        coordinator: FulfillmentCoordinator,
    ) -> None:
        self._order_repo = order_repository
        self._product_repo = product_repository
        self._coordinator = coordinator

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(self, dto: CheckoutDTO) -> CheckoutResult:
        """Create a ``pending`` order from a checkout request.

        Steps:
        1. Replay: an order with the same idempotency key is returned.
        2. Validate products exist and are active; snapshot prices.
        3. Reject lines that exceed current stock.
        4. Persist order + items and the initial history entry.
        5. Cash-on-delivery orders are confirmed (and debited) right away.

        Raises:
            ProductNotFound: a product does not exist.
            InactiveProduct: a product is not sellable.
            InsufficientStock: a line exceeds available stock; nothing is
                persisted.
        """
        log = logger.bind(
            customer_id=dto.customer_id, payment_method=str(dto.payment_method)
        )
        log.info("order.creation_started")

        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
            if existing:
                log.info(
                    "order.idempotency_hit",
                    order_id=str(existing.id),
                    key=dto.idempotency_key,
                )
                return CheckoutResult(order=existing, replayed=True)

        products = self._product_repo.get_many(item.product_id for item in dto.items)
        lines = []
        for item_dto in sorted(dto.items, key=lambda i: str(i.product_id)):
            product = products.get(item_dto.product_id)
            if product is None:
                raise ProductNotFound(f"Product {item_dto.product_id} not found.")
            if not product.is_sellable:
                raise InactiveProduct(f"Product {product.sku} is not available.")
            lines.append((product, item_dto.quantity))

        self._coordinator.ensure_available(lines)

        order = self._order_repo.create(
            {
                "customer_id": dto.customer_id,
                "payment_method": dto.payment_method,
                "items": [
                    {
                        "product_id": product.id,
                        "quantity": quantity,
                        "unit_price": product.price,
                    }
                    for product, quantity in lines
                ],
                "notes": dto.notes or "",
                "idempotency_key": dto.idempotency_key,
            }
        )
        self._order_repo.add_history(
            order,
            old_status=None,
            new_status=OrderStatus.PENDING,
            notes="Order created",
            actor=dto.actor,
        )
        order.record_event(
            OrderCreated(
                aggregate_id=order.id,
                order_number=order.order_number,
                total_amount=str(order.total_amount),
                payment_method=order.payment_method,
            )
        )
        self._order_repo.flush_events(order)
        log.info("order.created", order_id=str(order.id), total=str(order.total_amount))

        if dto.payment_method == PaymentMethod.CASH_ON_DELIVERY:
            self.transition(
                order.id,
                OrderStatus.CONFIRMED,
                notes="Cash on delivery order confirmed.",
                actor=dto.actor,
                expected_status=OrderStatus.PENDING,
            )

        return CheckoutResult(order=self.get_order(str(order.id)))

    @transaction.atomic
    def transition(
        self,
        order_id: UUID | str,
        target_status: str,
        notes: str = "",
        actor: str = "system",
        expected_status: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        authorize_refund: bool = False,
    ) -> TransitionResult:
        """Move an order along one edge of the state machine.

        Raises:
            UnknownOrderStatus: *target_status* is not an order status.
            OrderNotFound: order does not exist.
            OrderStateConflict: the order is no longer in the status the
                caller saw, already is in *target_status*, or another writer
                won the version check.
            InvalidOrderTransition: the edge is not in the graph.
            CancellationNotAllowed: paid order cancelled without refund
                authorization.
        """
        state_machine.ensure_known_status(target_status)
        log = logger.bind(
            order_id=str(order_id), target_status=target_status, actor=actor
        )

        if idempotency_key:
            replay = self._replay(order_id, idempotency_key, target_status)
            if replay is not None:
                log.info("order.transition_replayed", key=idempotency_key)
                return replay

        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        current = order.status
        log = log.bind(current_status=current)

        if expected_status and expected_status != current:
            log.info("order.transition_conflict", expected_status=expected_status)
            raise OrderStateConflict(
                f"Order {order.order_number} is {current}, not {expected_status}.",
                current_status=current,
            )
        if target_status == current:
            raise OrderStateConflict(
                f"Order {order.order_number} is already {current}.",
                current_status=current,
            )

        state_machine.check_edge(current, target_status)
        state_machine.check_guard(order, target_status, authorize_refund)

        changes: Dict[str, Any] = {"status": target_status}
        payment_status = state_machine.payment_status_after(
            order.payment_status, target_status, authorize_refund
        )
        if payment_status != order.payment_status:
            changes["payment_status"] = payment_status

        if not self._order_repo.compare_and_set(
            str(order.id), order.version, changes, expected_status=current
        ):
            if idempotency_key:
                replay = self._replay(order_id, idempotency_key, target_status)
                if replay is not None:
                    return replay
            log.warning("order.transition_lost_race")
            raise OrderStateConflict(
                f"Order {order.order_number} changed concurrently; re-read and retry."
            )

        order.status = target_status
        order.payment_status = payment_status
        order.version += 1
        delivered_at = order.actual_delivery
        entry = self._order_repo.add_history(
            order,
            old_status=current,
            new_status=target_status,
            notes=notes,
            actor=actor,
            idempotency_key=idempotency_key,
        )

        self._coordinator.on_transition(order, current, target_status, actor)
        if order.actual_delivery != delivered_at:
            self._order_repo.update_fields(order, ["actual_delivery"])

        order.record_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                old_status=current,
                new_status=target_status,
                actor=actor,
            )
        )
        self._order_repo.flush_events(order)

        log.info("order.transitioned", history_sequence=entry.sequence)
        return TransitionResult(order=self.get_order(str(order.id)), history_entry=entry)

    @transaction.atomic
    def update_payment_status(
        self, order_id: UUID | str, payment_status: str, actor: str = "system"
    ) -> Order:
        """Set the flat payment status; ``paid`` confirms a pending order.

        Raises:
            UnknownOrderStatus: *payment_status* is not a payment status.
            OrderNotFound: order does not exist.
            OrderStateConflict: the order changed concurrently.
        """
        if payment_status not in PaymentStatus.values:
            raise UnknownOrderStatus(
                f"Unknown payment status {payment_status!r}.", field="payment_status"
            )
        order = self.get_order(str(order_id))
        old_payment_status = order.payment_status
        log = logger.bind(
            order_id=str(order.id),
            old_payment_status=old_payment_status,
            new_payment_status=payment_status,
        )

        if old_payment_status != payment_status:
            if not self._order_repo.compare_and_set(
                str(order.id), order.version, {"payment_status": payment_status}
            ):
                raise OrderStateConflict(
                    f"Order {order.order_number} changed concurrently; re-read and retry."
                )
            order.payment_status = payment_status
            order.version += 1
            order.record_event(
                OrderPaymentStatusChanged(
                    aggregate_id=order.id,
                    old_payment_status=old_payment_status,
                    new_payment_status=payment_status,
                )
            )
            self._order_repo.flush_events(order)
            log.info("order.payment_status_updated", actor=actor)

        if payment_status == PaymentStatus.PAID and order.status == OrderStatus.PENDING:
            self.transition(
                order.id,
                OrderStatus.CONFIRMED,
                notes="Payment received.",
                actor=actor,
                expected_status=OrderStatus.PENDING,
                idempotency_key=f"payment:{order.id}:confirm",
            )

        return self.get_order(str(order.id))

    def bulk_transition(
        self,
        order_ids: Iterable[UUID | str],
        target_status: str,
        notes: str = "",
        actor: str = "system",
    ) -> List[BulkTransitionResultDTO]:
        """Transition each order independently; failures do not roll back others."""
        results = []
        for order_id in order_ids:
            try:
                result = self.transition(order_id, target_status, notes, actor)
            except DomainError as exc:
                results.append(
                    BulkTransitionResultDTO(
                        order_id=str(order_id),
                        ok=False,
                        code=exc.code,
                        detail=exc.message,
                    )
                )
            else:
                results.append(
                    BulkTransitionResultDTO(
                        order_id=str(order_id), ok=True, status=result.order.status
                    )
                )

        logger.info(
            "order.bulk_transition_completed",
            target_status=target_status,
            total=len(results),
            succeeded=sum(1 for r in results if r.ok),
        )
        return results

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """Return orders, optionally filtered by ORM look-ups."""
        return self._order_repo.list(filters)

    def history(self, order_id: str) -> List[OrderStatusHistory]:
        order = self.get_order(order_id)
        return self._order_repo.list_history(str(order.id))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _replay(
        self, order_id: UUID | str, idempotency_key: str, target_status: str
    ) -> Optional[TransitionResult]:
        entry = self._order_repo.get_history_by_key(str(order_id), idempotency_key)
        if entry is None:
            return None
        if entry.new_status != target_status:
            raise OrderStateConflict(
                f"Idempotency key {idempotency_key!r} was already used to move "
                f"this order to {entry.new_status}.",
            )
        return TransitionResult(
            order=self.get_order(str(order_id)), history_entry=entry, replayed=True
        )
