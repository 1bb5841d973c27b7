"""
Persistence port and its in-memory implementation.

The engine only talks to ``Repository``. Multi-record writes go through
``commit`` so that an order and its quotations change together: a reader
either sees the state before a commit or the state after it, never a mix.

Key features:
- Atomic multi-record commit
- Consistent per-order snapshots
- Append-only message log
"""

import itertools
import threading
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from marketplace.events.models import Message, Order, Quotation


class Repository:
    """Storage port used by every store in the engine."""

    def next_id(self, prefix: str) -> str:
        raise NotImplementedError

    def get_order(self, order_id: str) -> Optional[Order]:
        raise NotImplementedError

    def list_orders(self) -> List[Order]:
        raise NotImplementedError

    def get_quotation(self, quotation_id: str) -> Optional[Quotation]:
        raise NotImplementedError

    def quotations_for_order(self, order_id: str) -> List[Quotation]:
        raise NotImplementedError

    def quotations_for_seller(self, seller_id: str) -> List[Quotation]:
        raise NotImplementedError

    def snapshot(self, order_id: str) -> Tuple[Optional[Order], List[Quotation]]:
        raise NotImplementedError

    def commit(
        self,
        orders: Iterable[Order] = (),
        quotations: Iterable[Quotation] = (),
        removed_quotations: Iterable[str] = (),
    ) -> None:
        raise NotImplementedError

    def append_message(self, message: Message) -> None:
        raise NotImplementedError

    def messages_for(self, quotation_id: str) -> List[Message]:
        raise NotImplementedError

    def replace_messages(self, messages: Iterable[Message]) -> None:
        raise NotImplementedError


class InMemoryRepository(Repository):
    """Thread-safe dictionary-backed repository."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, itertools.count] = defaultdict(lambda: itertools.count(1))
        self._orders: Dict[str, Order] = {}
        self._quotations: Dict[str, Quotation] = {}
        # order_id -> quotation ids in submission order
        self._by_order: Dict[str, List[str]] = defaultdict(list)
        self._messages: Dict[str, List[Message]] = defaultdict(list)

    def next_id(self, prefix: str) -> str:
        with self._lock:
            return f"{prefix}{next(self._counters[prefix])}"

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            return self._orders.get(order_id)

    def list_orders(self) -> List[Order]:
        with self._lock:
            return list(self._orders.values())

    def get_quotation(self, quotation_id: str) -> Optional[Quotation]:
        with self._lock:
            return self._quotations.get(quotation_id)

    def quotations_for_order(self, order_id: str) -> List[Quotation]:
        with self._lock:
            return self._quotations_for_order(order_id)

    def _quotations_for_order(self, order_id: str) -> List[Quotation]:
        return [self._quotations[qid] for qid in self._by_order.get(order_id, ())]

    def quotations_for_seller(self, seller_id: str) -> List[Quotation]:
        with self._lock:
            return [q for q in self._quotations.values() if q.seller_id == seller_id]

    def snapshot(self, order_id: str) -> Tuple[Optional[Order], List[Quotation]]:
        """Read an order and all of its quotations as of one instant."""
        with self._lock:
            return self._orders.get(order_id), self._quotations_for_order(order_id)

    def commit(
        self,
        orders: Iterable[Order] = (),
        quotations: Iterable[Quotation] = (),
        removed_quotations: Iterable[str] = (),
    ) -> None:
        """Apply every write in one step."""
        orders = list(orders)
        quotations = list(quotations)
        removed_quotations = list(removed_quotations)

        with self._lock:
            for order in orders:
                self._orders[order.order_id] = order

            for quotation in quotations:
                if quotation.quotation_id not in self._quotations:
                    self._by_order[quotation.order_id].append(quotation.quotation_id)
                self._quotations[quotation.quotation_id] = quotation

            for quotation_id in removed_quotations:
                removed = self._quotations.pop(quotation_id, None)
                if removed is not None:
                    self._by_order[removed.order_id].remove(quotation_id)

    def append_message(self, message: Message) -> None:
        with self._lock:
            self._messages[message.quotation_id].append(message)

    def messages_for(self, quotation_id: str) -> List[Message]:
        with self._lock:
            return list(self._messages.get(quotation_id, ()))

    def replace_messages(self, messages: Iterable[Message]) -> None:
        """Swap in updated copies of existing messages (read receipts)."""
        with self._lock:
            for message in messages:
                log = self._messages[message.quotation_id]
                for index, existing in enumerate(log):
                    if existing.message_id == message.message_id:
                        log[index] = message
                        break
