"""
Exclusive acceptance of one quotation per order.

Order state machine:
- pending -> in_progress       (first quotation submitted)
- in_progress -> pending       (last pending quotation withdrawn)
- pending/in_progress -> accepted   (accept)
- pending/in_progress -> cancelled  (buyer cancel)
- accepted -> completed        (fulfilment pass-through)

``accept`` is the only write that touches an order and several
quotations at once. It runs under the order's lock and lands as one
repository commit: the target quotation accepted, every other pending
quotation rejected and the order accepted, all visible together. A
second accept on the same order then finds the order closed and fails
with InvalidTransition.
"""

import logging
from datetime import datetime
from typing import Callable

from marketplace.engine.locks import OrderLocks
from marketplace.engine.repository import Repository
from marketplace.events.errors import Forbidden, InvalidTransition, NotFound
from marketplace.events.models import Order, OrderStatus, QuotationStatus

logger = logging.getLogger(__name__)


class AcceptanceCoordinator:
    """Sole writer of the accepted and completed order transitions."""

    def __init__(
        self,
        repository: Repository,
        locks: OrderLocks,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.locks = locks
        self.clock = clock

    def accept(self, order_id: str, quotation_id: str, actor_id: str) -> Order:
        """
        Accept one quotation and reject its pending siblings.

        Args:
            order_id: Order being decided
            quotation_id: Quotation the buyer accepts
            actor_id: Caller, must be the order's buyer

        Returns:
            The accepted order, carrying the seller and final amount

        Raises:
            NotFound: If the order is unknown, or the quotation does not
                belong to it or is not pending
            Forbidden: If the actor is not the order's buyer
            InvalidTransition: If the order is no longer open
        """
        with self.locks.hold(order_id):
            order, quotations = self.repository.snapshot(order_id)
            if order is None:
                raise NotFound(f"Order {order_id} not found")
            if actor_id != order.buyer_id:
                raise Forbidden(f"Only the buyer of order {order_id} can accept quotations")
            if not order.status.can_become(OrderStatus.ACCEPTED):
                logger.warning(
                    "Refused accept of quotation %s: order %s is %s",
                    quotation_id, order_id, order.status.value,
                )
                raise InvalidTransition(
                    f"Order {order_id} is {order.status.value}; a decision was already made"
                )

            target = next((q for q in quotations if q.quotation_id == quotation_id), None)
            if target is None or not target.is_pending():
                raise NotFound(f"Quotation {quotation_id} not found or already processed")

            now = self.clock()
            accepted = target.with_status(QuotationStatus.ACCEPTED, now)
            rejected = [
                q.with_status(QuotationStatus.REJECTED, now)
                for q in quotations
                if q.quotation_id != quotation_id and q.is_pending()
            ]
            decided = order.with_status(
                OrderStatus.ACCEPTED,
                now,
                accepted_seller_id=target.seller_id,
                total_amount=target.total_amount(),
            )

            self.repository.commit(orders=[decided], quotations=[accepted, *rejected])

        logger.info(
            "Order %s accepted quotation %s from seller %s for %s; %d rejected",
            order_id, quotation_id, target.seller_id, decided.total_amount, len(rejected),
        )
        return decided

    def complete(self, order_id: str, seller_id: str) -> Order:
        """
        Record fulfilment of an accepted order.

        Raises:
            NotFound: If the order does not exist
            Forbidden: If the caller is not the accepted seller
            InvalidTransition: If the order is not accepted
        """
        with self.locks.hold(order_id):
            order = self.repository.get_order(order_id)
            if order is None:
                raise NotFound(f"Order {order_id} not found")
            if not order.status.can_become(OrderStatus.COMPLETED):
                raise InvalidTransition(f"Order {order_id} is {order.status.value} and cannot be completed")
            if seller_id != order.accepted_seller_id:
                raise Forbidden(f"Only the accepted seller can complete order {order_id}")

            completed = order.with_status(OrderStatus.COMPLETED, self.clock())
            self.repository.commit(orders=[completed])

        logger.info("Order %s completed by seller %s", order_id, seller_id)
        return completed
