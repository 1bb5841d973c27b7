"""
High-level marketplace interface.

Wires the stores, evaluator, ranker, acceptance coordinator and chat
gate over one repository and one lock registry, checks the caller's
role, and publishes an outcome event for every operation.

This is the main entry point for the quotation system.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from marketplace.config import get_settings
from marketplace.engine.chat_gate import ChatGate
from marketplace.engine.coordinator import AcceptanceCoordinator
from marketplace.engine.evaluator import MatchEvaluator
from marketplace.engine.locks import OrderLocks
from marketplace.engine.order_store import OrderStore, status_counts
from marketplace.engine.quotation_store import QuotationStore
from marketplace.engine.ranker import (
    QuotationRanker,
    RankedQuotation,
    filter_by_coverage,
    sort_by_price,
)
from marketplace.engine.repository import InMemoryRepository, Repository
from marketplace.events.errors import Forbidden, MarketplaceError, NotFound
from marketplace.events.models import (
    Message,
    Order,
    OrderItem,
    OrderStatus,
    Quotation,
    QuotationItem,
    QuotationStatus,
    Role,
    Session,
)
from marketplace.events.outcomes import LoggingNotifier, Notifier, OutcomeEvent

logger = logging.getLogger(__name__)


class Marketplace:
    """High-level marketplace interface."""

    def __init__(
        self,
        repository: Optional[Repository] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = datetime.now,
        lock_timeout: Optional[float] = None,
        max_message_length: Optional[int] = None,
    ):
        """
        Initialize the marketplace.

        Args:
            repository: Storage port (in-memory by default)
            notifier: Outcome event sink (logging by default)
            clock: Source of timestamps
            lock_timeout: Seconds to wait for an order's lock
            max_message_length: Longest accepted chat message
        """
        settings = get_settings()
        self.repository = repository or InMemoryRepository()
        self.notifier = notifier or LoggingNotifier()
        self.locks = OrderLocks(lock_timeout if lock_timeout is not None else settings.LOCK_TIMEOUT)

        self.orders = OrderStore(self.repository, self.locks, clock)
        self.quotations = QuotationStore(self.repository, self.locks, clock)
        self.evaluator = MatchEvaluator()
        self.ranker = QuotationRanker(self.evaluator)
        self.coordinator = AcceptanceCoordinator(self.repository, self.locks, clock)
        self.chat = ChatGate(
            self.repository,
            self.locks,
            clock,
            max_message_length if max_message_length is not None else settings.MAX_MESSAGE_LENGTH,
        )

    def _run(self, name: str, session: Session, action, order_id=None, quotation_id=None):
        """Run ``action`` and publish its outcome; failures are re-raised."""
        try:
            result = action()
        except MarketplaceError as exc:
            self.notifier.publish(OutcomeEvent(
                name, False, exc.kind, order_id, quotation_id, session.actor_id,
            ))
            raise
        self.notifier.publish(OutcomeEvent(
            name, True, "ok", order_id, quotation_id, session.actor_id,
        ))
        return result

    @staticmethod
    def _require_role(session: Session, *roles: Role) -> None:
        if session.role not in roles:
            allowed = " or ".join(role.value for role in roles)
            raise Forbidden(f"This action requires the {allowed} role")

    # Orders

    def create_order(
        self,
        session: Session,
        items: Iterable[OrderItem],
        order_name: Optional[str] = None,
        delivery_address: Optional[str] = None,
    ) -> Order:
        def action():
            self._require_role(session, Role.BUYER)
            return self.orders.create(session.actor_id, items, order_name, delivery_address)
        return self._run("order.create", session, action)

    def get_order(self, session: Session, order_id: str) -> Order:
        """
        Get an order. Buyers only see their own orders.

        Raises:
            NotFound: If the order does not exist
            Forbidden: If a buyer asks for another buyer's order
        """
        order = self.orders.get(order_id)
        if session.role == Role.BUYER and order.buyer_id != session.actor_id:
            raise Forbidden(f"Order {order_id} belongs to another buyer")
        return order

    def my_orders(self, session: Session, status: Optional[OrderStatus] = None) -> List[Order]:
        self._require_role(session, Role.BUYER)
        return self.orders.list_by_buyer(session.actor_id, status)

    def open_orders(self, session: Session) -> List[Order]:
        self._require_role(session, Role.SELLER, Role.ADMIN)
        return self.orders.list_open()

    def accepted_orders(self, session: Session, status: Optional[OrderStatus] = None) -> List[Order]:
        """Orders won by the calling seller, waiting for or past completion."""
        self._require_role(session, Role.SELLER)
        return self.orders.list_by_seller(session.actor_id, status)

    def order_status_counts(self, session: Session) -> Dict[str, int]:
        """
        Count the caller's orders by status.

        Buyers count the orders they placed, sellers the orders they won.

        Raises:
            Forbidden: For any other role
        """
        self._require_role(session, Role.BUYER, Role.SELLER)
        if session.role == Role.BUYER:
            return status_counts(self.orders.list_by_buyer(session.actor_id))
        return status_counts(self.orders.list_by_seller(session.actor_id))

    def reorder(self, session: Session, order_id: str) -> Order:
        def action():
            self._require_role(session, Role.BUYER)
            return self.orders.reorder(order_id, session.actor_id)
        return self._run("order.reorder", session, action, order_id=order_id)

    def cancel_order(self, session: Session, order_id: str) -> Order:
        def action():
            self._require_role(session, Role.BUYER)
            return self.orders.cancel(order_id, session.actor_id)
        return self._run("order.cancel", session, action, order_id=order_id)

    def complete_order(self, session: Session, order_id: str) -> Order:
        def action():
            self._require_role(session, Role.SELLER)
            return self.coordinator.complete(order_id, session.actor_id)
        return self._run("order.complete", session, action, order_id=order_id)

    # Quotations

    def submit_quotation(
        self,
        session: Session,
        order_id: str,
        items: Iterable[QuotationItem],
        discount=0,
        notes: Optional[str] = None,
    ) -> Quotation:
        def action():
            self._require_role(session, Role.SELLER)
            return self.quotations.submit(order_id, session.actor_id, items, discount, notes)
        return self._run("quotation.submit", session, action, order_id=order_id)

    def update_quotation(
        self,
        session: Session,
        quotation_id: str,
        items: Iterable[QuotationItem],
        discount=0,
        notes: Optional[str] = None,
    ) -> Quotation:
        def action():
            self._require_role(session, Role.SELLER)
            return self.quotations.update(quotation_id, session.actor_id, items, discount, notes)
        return self._run("quotation.update", session, action, quotation_id=quotation_id)

    def withdraw_quotation(self, session: Session, quotation_id: str) -> Quotation:
        def action():
            self._require_role(session, Role.SELLER)
            return self.quotations.withdraw(quotation_id, session.actor_id)
        return self._run("quotation.withdraw", session, action, quotation_id=quotation_id)

    def my_quotations(self, session: Session, status: Optional[QuotationStatus] = None) -> List[Quotation]:
        self._require_role(session, Role.SELLER)
        return self.quotations.list_by_seller(session.actor_id, status)

    def compare_quotations(
        self,
        session: Session,
        order_id: str,
        coverage="all",
        descending: Optional[bool] = None,
    ) -> List[RankedQuotation]:
        """
        Ranked quotations of an order for its buyer (or an admin).

        Args:
            session: Caller
            order_id: Order whose quotations to compare
            coverage: 'all', 'full', 'partial' or 'missing'
            descending: None keeps the ranking order; True/False re-sorts
                by price

        Raises:
            NotFound: If the order does not exist
            Forbidden: If the caller is not the order's buyer or an admin
        """
        order, quotations = self.repository.snapshot(order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        if session.role != Role.ADMIN and session.actor_id != order.buyer_id:
            raise Forbidden(f"Only the buyer of order {order_id} can compare its quotations")

        ranked = filter_by_coverage(self.ranker.rank(order, quotations), coverage)
        if descending is not None:
            ranked = sort_by_price(ranked, descending)
        return ranked

    def accept_quotation(self, session: Session, order_id: str, quotation_id: str) -> Order:
        def action():
            self._require_role(session, Role.BUYER)
            return self.coordinator.accept(order_id, quotation_id, session.actor_id)
        return self._run("quotation.accept", session, action, order_id=order_id, quotation_id=quotation_id)

    # Chat

    def is_chat_open(self, quotation_id: str) -> bool:
        return self.chat.is_open(quotation_id)

    def send_message(self, session: Session, quotation_id: str, body: str) -> Message:
        def action():
            self._require_role(session, Role.BUYER, Role.SELLER)
            return self.chat.send_message(quotation_id, session.actor_id, session.role, body)
        return self._run("message.send", session, action, quotation_id=quotation_id)

    def messages(self, session: Session, quotation_id: str) -> List[Message]:
        return self.chat.messages(quotation_id, session.actor_id)

    def mark_read(self, session: Session, quotation_id: str) -> int:
        return self.chat.mark_read(quotation_id, session.actor_id)
