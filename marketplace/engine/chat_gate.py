"""
Per-quotation chat between the order's buyer and the quotation's seller.

A channel is open while the order is in progress or accepted and the
quotation is pending or accepted. Closing a channel only blocks new
messages; the history stays readable.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Tuple

from marketplace.engine.locks import OrderLocks
from marketplace.engine.repository import Repository
from marketplace.events.errors import ChannelClosed, Forbidden, NotFound, ValidationError
from marketplace.events.models import (
    Message,
    Order,
    OrderStatus,
    Quotation,
    QuotationStatus,
    Role,
)

logger = logging.getLogger(__name__)

CHAT_ORDER_STATUSES = frozenset({OrderStatus.IN_PROGRESS, OrderStatus.ACCEPTED})
CHAT_QUOTATION_STATUSES = frozenset({QuotationStatus.PENDING, QuotationStatus.ACCEPTED})


def channel_open(order: Order, quotation: Quotation) -> bool:
    """Gate rule on already-loaded records."""
    return order.status in CHAT_ORDER_STATUSES and quotation.status in CHAT_QUOTATION_STATUSES


class ChatGate:
    """Decides channel availability and keeps the message log."""

    def __init__(
        self,
        repository: Repository,
        locks: OrderLocks,
        clock: Callable[[], datetime] = datetime.now,
        max_message_length: int = 1000,
    ):
        self.repository = repository
        self.locks = locks
        self.clock = clock
        self.max_message_length = max_message_length

    def _load(self, quotation_id: str) -> Tuple[Order, Quotation]:
        quotation = self.repository.get_quotation(quotation_id)
        if quotation is None:
            raise NotFound(f"Quotation {quotation_id} not found")
        order = self.repository.get_order(quotation.order_id)
        if order is None:
            raise NotFound(f"Order {quotation.order_id} not found")
        return order, quotation

    def is_open(self, quotation_id: str) -> bool:
        """
        Check whether new messages are accepted on a quotation's channel.

        Raises:
            NotFound: If the quotation does not exist
        """
        quotation = self.repository.get_quotation(quotation_id)
        if quotation is None:
            raise NotFound(f"Quotation {quotation_id} not found")
        # Read both records in one snapshot so an accept is seen whole
        order, quotations = self.repository.snapshot(quotation.order_id)
        current = next((q for q in quotations if q.quotation_id == quotation_id), None)
        if order is None or current is None:
            raise NotFound(f"Quotation {quotation_id} not found")
        return channel_open(order, current)

    def send_message(self, quotation_id: str, sender_id: str, sender_role: Role, body: str) -> Message:
        """
        Append a message to a quotation's channel.

        Args:
            quotation_id: Channel to write to
            sender_id: Author
            sender_role: BUYER (the order's buyer) or SELLER (the quotation's seller)
            body: Message text

        Returns:
            The stored message

        Raises:
            NotFound: If the quotation does not exist
            Forbidden: If the sender is not a participant of the channel
            ChannelClosed: If the channel no longer accepts messages
            ValidationError: If the body is empty or too long
        """
        quotation = self.repository.get_quotation(quotation_id)
        if quotation is None:
            raise NotFound(f"Quotation {quotation_id} not found")

        # The gate is evaluated and the message appended under the order's
        # lock, so a concurrent accept cannot slip in between.
        with self.locks.hold(quotation.order_id):
            order, quotation = self._load(quotation_id)
            self._require_participant(order, quotation, sender_id, sender_role)

            if not channel_open(order, quotation):
                logger.warning("Message refused on closed channel of quotation %s", quotation_id)
                raise ChannelClosed(f"Chat for quotation {quotation_id} is closed")

            text = (body or "").strip()
            if not text:
                raise ValidationError("Message body is required")
            if len(text) > self.max_message_length:
                raise ValidationError(f"Message must be at most {self.max_message_length} characters")

            message = Message(
                message_id=self.repository.next_id("M"),
                quotation_id=quotation_id,
                sender_id=sender_id,
                sender_role=sender_role,
                body=text,
                sent_at=self.clock(),
            )
            self.repository.append_message(message)

        logger.debug("Message %s appended to quotation %s", message.message_id, quotation_id)
        return message

    def messages(self, quotation_id: str, reader_id: str) -> List[Message]:
        """
        Read a channel's full history, oldest first, open or closed.

        Raises:
            NotFound: If the quotation does not exist
            Forbidden: If the reader is neither the buyer nor the seller
        """
        order, quotation = self._load(quotation_id)
        self._require_reader(order, quotation, reader_id)
        return self.repository.messages_for(quotation_id)

    def mark_read(self, quotation_id: str, reader_id: str) -> int:
        """
        Mark every message addressed to the reader as read.

        Returns:
            Number of messages that changed
        """
        order, quotation = self._load(quotation_id)
        self._require_reader(order, quotation, reader_id)

        with self.locks.hold(quotation.order_id):
            unread = [
                replace(message, is_read=True)
                for message in self.repository.messages_for(quotation_id)
                if message.sender_id != reader_id and not message.is_read
            ]
            self.repository.replace_messages(unread)
        return len(unread)

    def unread_count(self, quotation_id: str, reader_id: str) -> int:
        return sum(
            1 for message in self.messages(quotation_id, reader_id)
            if message.sender_id != reader_id and not message.is_read
        )

    @staticmethod
    def _require_participant(order: Order, quotation: Quotation, sender_id: str, sender_role: Role) -> None:
        if sender_role == Role.BUYER and sender_id == order.buyer_id:
            return
        if sender_role == Role.SELLER and sender_id == quotation.seller_id:
            return
        raise Forbidden(f"{sender_id} cannot write to the chat of quotation {quotation.quotation_id}")

    @staticmethod
    def _require_reader(order: Order, quotation: Quotation, reader_id: str) -> None:
        if reader_id not in (order.buyer_id, quotation.seller_id):
            raise Forbidden(f"{reader_id} cannot read the chat of quotation {quotation.quotation_id}")
