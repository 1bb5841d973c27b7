"""
Per-order critical sections.

Every write that reads and then changes an order's status (submit,
update, withdraw, accept, cancel, complete, send message) runs while
holding that order's lock. Different orders never contend.

A lock lives only while some thread holds or waits for it, so the
registry stays as small as the number of orders being written to.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List

from marketplace.events.errors import StorageUnavailable


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class OrderLocks:
    """Registry of one re-entrant lock per order id."""

    def __init__(self, timeout: float = 5.0):
        """
        Initialize the registry.

        Args:
            timeout: Seconds to wait for a lock before giving up
        """
        self.timeout = timeout
        self._guard = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def active(self) -> List[str]:
        """Order ids whose lock is currently held or awaited."""
        with self._guard:
            return sorted(self._entries)

    def _checkout(self, order_id: str) -> _Entry:
        with self._guard:
            entry = self._entries.get(order_id)
            if entry is None:
                entry = _Entry()
                self._entries[order_id] = entry
            entry.users += 1
            return entry

    def _checkin(self, order_id: str, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[order_id]

    @contextmanager
    def hold(self, order_id: str) -> Iterator[None]:
        """
        Serialize the enclosed block with every other block for this order.

        Raises:
            StorageUnavailable: If the lock is not free within the timeout
        """
        entry = self._checkout(order_id)
        try:
            if not entry.lock.acquire(timeout=self.timeout):
                raise StorageUnavailable(f"Timed out waiting for order {order_id}")
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(order_id, entry)
