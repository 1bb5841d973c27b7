"""
Seller quotations against open orders.

Every write re-reads the order under the order's lock, so a quotation
can never land on (or change under) an order that has just been
accepted or cancelled.

Rules:
- A quotation must answer every order line, available or not
- Unavailable lines are stored with a zero price
- One pending quotation per seller per order
- Only the owning seller may edit or withdraw, and only while pending
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Tuple

from marketplace.engine.evaluator import pair_items
from marketplace.engine.locks import OrderLocks
from marketplace.engine.repository import Repository
from marketplace.engine.validation import as_decimal, optional_text, required_text
from marketplace.events.errors import Forbidden, InvalidTransition, NotFound, ValidationError
from marketplace.events.models import (
    Order,
    OrderStatus,
    Quotation,
    QuotationItem,
    QuotationStatus,
)

logger = logging.getLogger(__name__)


def validate_quotation(
    order: Order,
    items: Iterable[QuotationItem],
    discount,
) -> Tuple[Tuple[QuotationItem, ...], Decimal]:
    """
    Check a quotation's lines and discount against its order.

    Args:
        order: Order being quoted
        items: Seller's lines
        discount: Flat discount

    Returns:
        (normalized items, discount as Decimal)

    Raises:
        ValidationError: On negative prices or discount, bad quantities,
            lines matching nothing, or order lines left undeclared
    """
    discount = as_decimal(discount if discount is not None else 0, "discount")
    if discount < 0:
        raise ValidationError("Discount cannot be negative")

    cleaned = []
    for position, item in enumerate(items, 1):
        price = as_decimal(item.price_per_unit, f"price of item {position}")
        if price < 0:
            raise ValidationError(f"Price of item {position} cannot be negative")
        quantity = as_decimal(item.quantity, f"quantity of item {position}")
        if quantity < 0:
            raise ValidationError(f"Quantity of item {position} cannot be negative")
        available = bool(item.available)
        if available and quantity == 0:
            raise ValidationError(f"Available item {position} needs a positive quantity")

        cleaned.append(QuotationItem(
            product_name=required_text(item.product_name, f"product name of item {position}"),
            quantity=quantity,
            price_per_unit=price if available else Decimal("0"),
            available=available,
            unit=optional_text(item.unit),
        ))

    pairs, uncovered = pair_items(order.items, cleaned)

    unmatched = [quote_item.product_name for quote_item, order_item in pairs if order_item is None]
    if unmatched:
        raise ValidationError(
            f"Items not requested by order {order.order_id}: {', '.join(unmatched)}"
        )
    if uncovered:
        missing = ", ".join(f"{item.product_name} ({item.unit})" for item in uncovered)
        raise ValidationError(f"Quotation must declare every requested item; missing: {missing}")

    for quote_item, order_item in pairs:
        if quote_item.quantity > order_item.requested_quantity:
            raise ValidationError(
                f"{quote_item.product_name}: offered {quote_item.quantity} "
                f"but only {order_item.requested_quantity} requested"
            )

    # Store units explicitly so later lookups are exact
    normalized = tuple(
        QuotationItem(
            product_name=quote_item.product_name,
            quantity=quote_item.quantity,
            price_per_unit=quote_item.price_per_unit,
            available=quote_item.available,
            unit=order_item.unit,
        )
        for quote_item, order_item in pairs
    )
    return normalized, discount


class QuotationStore:
    """Stores seller quotations and keeps the order's in-progress flag current."""

    def __init__(
        self,
        repository: Repository,
        locks: OrderLocks,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.locks = locks
        self.clock = clock

    def submit(
        self,
        order_id: str,
        seller_id: str,
        items: Iterable[QuotationItem],
        discount=0,
        notes: Optional[str] = None,
    ) -> Quotation:
        """
        Submit a new quotation.

        A pending order moves to in-progress in the same commit.

        Args:
            order_id: Order being quoted
            seller_id: Submitting seller
            items: One line per order line
            discount: Flat discount (>= 0)
            notes: Optional free text

        Returns:
            The stored quotation

        Raises:
            NotFound: If the order does not exist
            InvalidTransition: If the order is closed or the seller already
                has a pending quotation on it
            ValidationError: If the lines or discount are invalid
        """
        items = list(items)
        seller_id = required_text(seller_id, "seller id")

        with self.locks.hold(order_id):
            order, existing = self.repository.snapshot(order_id)
            if order is None:
                raise NotFound(f"Order {order_id} not found")
            self._require_open(order)

            if any(q.seller_id == seller_id and q.is_pending() for q in existing):
                raise InvalidTransition(
                    f"Seller {seller_id} already has a pending quotation for order {order_id}"
                )

            lines, discount = validate_quotation(order, items, discount)
            now = self.clock()
            quotation = Quotation(
                quotation_id=self.repository.next_id("Q"),
                order_id=order_id,
                seller_id=seller_id,
                items=lines,
                discount=discount,
                sent_date=now,
                notes=optional_text(notes),
                updated_at=now,
            )

            changed_orders = []
            if order.status == OrderStatus.PENDING:
                changed_orders.append(order.with_status(OrderStatus.IN_PROGRESS, now))
            self.repository.commit(orders=changed_orders, quotations=[quotation])

        logger.info(
            "Quotation %s submitted by seller %s for order %s (total %s)",
            quotation.quotation_id, seller_id, order_id, quotation.total_amount(),
        )
        return quotation

    def update(
        self,
        quotation_id: str,
        seller_id: str,
        items: Iterable[QuotationItem],
        discount=0,
        notes: Optional[str] = None,
    ) -> Quotation:
        """
        Replace the lines and discount of a pending quotation.

        The original sent date is kept for ranking ties.

        Raises:
            NotFound: If the quotation does not exist
            Forbidden: If the caller is not the owning seller
            InvalidTransition: If the quotation or its order is no longer open
            ValidationError: If the lines or discount are invalid
        """
        items = list(items)
        current = self.get(quotation_id)

        with self.locks.hold(current.order_id):
            order, quotation = self._locked_pair(quotation_id)
            self._require_owner(quotation, seller_id)
            self._require_pending(quotation)
            self._require_open(order)

            lines, discount = validate_quotation(order, items, discount)
            updated = Quotation(
                quotation_id=quotation.quotation_id,
                order_id=quotation.order_id,
                seller_id=quotation.seller_id,
                items=lines,
                discount=discount,
                sent_date=quotation.sent_date,
                status=quotation.status,
                notes=optional_text(notes),
                updated_at=self.clock(),
            )
            self.repository.commit(quotations=[updated])

        logger.info("Quotation %s updated by seller %s", quotation_id, seller_id)
        return updated

    def withdraw(self, quotation_id: str, seller_id: str) -> Quotation:
        """
        Remove a pending quotation.

        When the last pending quotation of an in-progress order is withdrawn
        the order reverts to pending.

        Returns:
            The removed quotation

        Raises:
            NotFound: If the quotation does not exist
            Forbidden: If the caller is not the owning seller
            InvalidTransition: If the quotation is no longer pending
        """
        current = self.get(quotation_id)

        with self.locks.hold(current.order_id):
            order, quotation = self._locked_pair(quotation_id)
            self._require_owner(quotation, seller_id)
            self._require_pending(quotation)

            remaining = [
                q for q in self.repository.quotations_for_order(order.order_id)
                if q.quotation_id != quotation_id and q.is_pending()
            ]
            changed_orders = []
            if order.status == OrderStatus.IN_PROGRESS and not remaining:
                changed_orders.append(order.with_status(OrderStatus.PENDING, self.clock()))

            self.repository.commit(orders=changed_orders, removed_quotations=[quotation_id])

        logger.info("Quotation %s withdrawn by seller %s", quotation_id, seller_id)
        return quotation

    def get(self, quotation_id: str) -> Quotation:
        """
        Get quotation by ID.

        Raises:
            NotFound: If the quotation does not exist
        """
        quotation = self.repository.get_quotation(quotation_id)
        if quotation is None:
            raise NotFound(f"Quotation {quotation_id} not found")
        return quotation

    def list_by_order(self, order_id: str) -> List[Quotation]:
        """
        Get every quotation of an order (any status, unsorted).

        Raises:
            NotFound: If the order does not exist
        """
        order, quotations = self.repository.snapshot(order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return quotations

    def list_by_seller(
        self,
        seller_id: str,
        status: Optional[QuotationStatus] = None,
    ) -> List[Quotation]:
        """Get a seller's quotations, newest first, optionally by status."""
        quotations = [
            q for q in self.repository.quotations_for_seller(seller_id)
            if status is None or q.status == status
        ]
        return sorted(quotations, key=lambda q: q.sent_date, reverse=True)

    def _locked_pair(self, quotation_id: str) -> Tuple[Order, Quotation]:
        # Re-read inside the lock: the quotation may have changed since entry
        quotation = self.get(quotation_id)
        order = self.repository.get_order(quotation.order_id)
        if order is None:
            raise NotFound(f"Order {quotation.order_id} not found")
        return order, quotation

    @staticmethod
    def _require_open(order: Order) -> None:
        if not order.is_open():
            logger.warning("Refused quotation write on order %s (%s)", order.order_id, order.status.value)
            raise InvalidTransition(
                f"Order {order.order_id} is {order.status.value} and no longer takes quotations"
            )

    @staticmethod
    def _require_owner(quotation: Quotation, seller_id: str) -> None:
        if quotation.seller_id != seller_id:
            raise Forbidden(f"Quotation {quotation.quotation_id} belongs to another seller")

    @staticmethod
    def _require_pending(quotation: Quotation) -> None:
        if not quotation.is_pending():
            raise InvalidTransition(
                f"Quotation {quotation.quotation_id} is {quotation.status.value} and can no longer change"
            )
