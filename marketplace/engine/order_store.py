"""
Order persistence and buyer-driven order transitions.

Owns order creation and reorder, lookup, listings and the buyer's cancel
action.
Cancelling rejects every pending quotation of the order in the same
commit, so the order and its quotations close together.
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from marketplace.engine.locks import OrderLocks
from marketplace.engine.repository import Repository
from marketplace.engine.validation import as_decimal, optional_text, required_text
from marketplace.events.errors import Forbidden, InvalidTransition, NotFound, ValidationError
from marketplace.events.models import Order, OrderItem, OrderStatus, QuotationStatus

logger = logging.getLogger(__name__)


class OrderStore:
    """Creates, reads and cancels orders."""

    def __init__(
        self,
        repository: Repository,
        locks: OrderLocks,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the store.

        Args:
            repository: Shared storage
            locks: Shared per-order lock registry
            clock: Source of timestamps
        """
        self.repository = repository
        self.locks = locks
        self.clock = clock

    def create(
        self,
        buyer_id: str,
        items: Iterable[OrderItem],
        order_name: Optional[str] = None,
        delivery_address: Optional[str] = None,
    ) -> Order:
        """
        Create a pending order.

        Args:
            buyer_id: Buyer placing the order
            items: Requested lines (at least one)
            order_name: Optional display name
            delivery_address: Optional opaque address

        Returns:
            The stored order

        Raises:
            ValidationError: If there are no items or a quantity is not positive
        """
        lines = tuple(self._clean_item(item, position) for position, item in enumerate(items, 1))
        if not lines:
            raise ValidationError("An order needs at least one item")

        now = self.clock()
        order = Order(
            order_id=self.repository.next_id("O"),
            buyer_id=required_text(buyer_id, "buyer id"),
            items=lines,
            created_at=now,
            order_name=optional_text(order_name),
            delivery_address=optional_text(delivery_address),
            updated_at=now,
        )
        self.repository.commit(orders=[order])
        logger.info("Order %s created by buyer %s with %d items", order.order_id, buyer_id, len(lines))
        return order

    def reorder(self, order_id: str, buyer_id: str) -> Order:
        """
        Start a new pending order from a previous one.

        The new order copies the lines and delivery address and is named
        "Reorder: <previous name>". The previous order may be in any status.

        Raises:
            NotFound: If the order does not exist
            Forbidden: If the caller is not the previous order's buyer
        """
        previous = self.get(order_id)
        if previous.buyer_id != buyer_id:
            raise Forbidden(f"Order {order_id} belongs to another buyer")

        order = self.create(
            buyer_id,
            previous.items,
            order_name=f"Reorder: {previous.order_name or previous.order_id}",
            delivery_address=previous.delivery_address,
        )
        logger.info("Order %s reordered as %s", order_id, order.order_id)
        return order

    @staticmethod
    def _clean_item(item: OrderItem, position: int) -> OrderItem:
        quantity = as_decimal(item.requested_quantity, f"quantity of item {position}")
        if quantity <= 0:
            raise ValidationError(f"Quantity of item {position} must be positive")
        return OrderItem(
            product_name=required_text(item.product_name, f"product name of item {position}"),
            requested_quantity=quantity,
            unit=required_text(item.unit, f"unit of item {position}"),
            category=(item.category or "").strip(),
            note=optional_text(item.note),
        )

    def get(self, order_id: str) -> Order:
        """
        Get order by ID.

        Raises:
            NotFound: If the order does not exist
        """
        order = self.repository.get_order(order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    def cancel(self, order_id: str, actor_id: str) -> Order:
        """
        Cancel an open order on behalf of its buyer.

        All pending quotations of the order are rejected in the same commit.

        Raises:
            NotFound: If the order does not exist
            InvalidTransition: If the actor is not the order's buyer or the
                order is no longer open
        """
        with self.locks.hold(order_id):
            order, quotations = self.repository.snapshot(order_id)
            if order is None:
                raise NotFound(f"Order {order_id} not found")
            if actor_id != order.buyer_id:
                logger.warning("Refused cancel of order %s by %s: not its buyer", order_id, actor_id)
                raise InvalidTransition(f"Only the buyer of order {order_id} can cancel it")
            if not order.status.can_become(OrderStatus.CANCELLED):
                logger.warning("Refused to cancel order %s in status %s", order_id, order.status.value)
                raise InvalidTransition(f"Order {order_id} is {order.status.value} and cannot be cancelled")

            now = self.clock()
            cancelled = order.with_status(OrderStatus.CANCELLED, now)
            rejected = [
                q.with_status(QuotationStatus.REJECTED, now)
                for q in quotations if q.is_pending()
            ]
            self.repository.commit(orders=[cancelled], quotations=rejected)

        logger.info("Order %s cancelled, %d quotations rejected", order_id, len(rejected))
        return cancelled

    def mark_in_progress(self, order_id: str) -> Order:
        """
        Flag a pending order as having received at least one offer.

        Already in-progress orders are returned unchanged.

        Raises:
            NotFound: If the order does not exist
            InvalidTransition: If the order is closed
        """
        with self.locks.hold(order_id):
            order = self.get(order_id)
            if order.status == OrderStatus.IN_PROGRESS:
                return order
            if not order.status.can_become(OrderStatus.IN_PROGRESS):
                raise InvalidTransition(f"Order {order_id} is {order.status.value}")
            updated = order.with_status(OrderStatus.IN_PROGRESS, self.clock())
            self.repository.commit(orders=[updated])
            return updated

    def list_by_buyer(self, buyer_id: str, status: Optional[OrderStatus] = None) -> List[Order]:
        """
        Get a buyer's orders, newest first.

        Args:
            buyer_id: Buyer whose orders to list
            status: Optional status filter
        """
        orders = [
            order for order in self.repository.list_orders()
            if order.buyer_id == buyer_id and (status is None or order.status == status)
        ]
        return sorted(orders, key=lambda order: order.created_at, reverse=True)

    def list_open(self) -> List[Order]:
        """Get orders still accepting quotations, oldest first."""
        orders = [order for order in self.repository.list_orders() if order.is_open()]
        return sorted(orders, key=lambda order: order.created_at)

    def list_by_seller(self, seller_id: str, status: Optional[OrderStatus] = None) -> List[Order]:
        """
        Get the orders a seller won, most recently changed first.

        Only accepted and completed orders carry an accepted seller.

        Args:
            seller_id: Seller whose quotation was accepted
            status: Optional status filter
        """
        orders = [
            order for order in self.repository.list_orders()
            if order.accepted_seller_id == seller_id and (status is None or order.status == status)
        ]
        return sorted(orders, key=lambda order: order.updated_at or order.created_at, reverse=True)


def status_counts(orders: Iterable[Order]) -> Dict[str, int]:
    """Count orders per status value; statuses with no orders are left out."""
    counts = Counter(order.status.value for order in orders)
    return dict(counts)
