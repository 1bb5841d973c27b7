"""
Concurrency tests.

Races accept against accept, submit and chat on one order using real
threads, and checks that storage failures surface as retryable errors
without partial writes.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from marketplace.engine.locks import OrderLocks
from marketplace.engine.marketplace import Marketplace
from marketplace.engine.repository import InMemoryRepository
from marketplace.events.errors import (
    ChannelClosed,
    Forbidden,
    InvalidTransition,
    StorageUnavailable,
)
from marketplace.events.models import OrderStatus, QuotationStatus, Role, Session
from marketplace.events.outcomes import RecordingNotifier
from conftest import BUYER, SELLER_A, SELLER_B, SELLER_C, grocery_items, quote_lines


def _race(workers):
    """Start every callable at the same moment; return (results, errors)."""
    barrier = threading.Barrier(len(workers))

    def run(work):
        barrier.wait()
        try:
            return work(), None
        except Exception as exc:  # collected for assertions
            return None, exc

    with ThreadPoolExecutor(max_workers=len(workers)) as pool:
        outcomes = list(pool.map(run, workers))
    return [r for r, _ in outcomes if r is not None], [e for _, e in outcomes if e is not None]


def test_concurrent_accepts_have_one_winner(market, order):
    """Test racing accepts: exactly one succeeds, the rest see InvalidTransition."""
    quotations = [
        market.submit_quotation(seller, order.order_id, quote_lines("1", "2", "3"))
        for seller in (SELLER_A, SELLER_B, SELLER_C)
    ]

    results, errors = _race([
        (lambda qid=q.quotation_id: market.accept_quotation(BUYER, order.order_id, qid))
        for q in quotations
    ])

    assert len(results) == 1
    assert len(errors) == 2
    assert all(isinstance(e, InvalidTransition) for e in errors)

    stored = market.quotations.list_by_order(order.order_id)
    accepted = [q for q in stored if q.status == QuotationStatus.ACCEPTED]
    assert len(accepted) == 1
    assert all(q.status == QuotationStatus.REJECTED for q in stored if q not in accepted)
    assert market.orders.get(order.order_id).accepted_seller_id == accepted[0].seller_id


def test_repeated_accepts_of_same_quotation(market, order):
    """Test double-clicked accepts on one quotation succeed once."""
    quotation = market.submit_quotation(SELLER_A, order.order_id, quote_lines("1", "2", "3"))

    results, errors = _race([
        lambda: market.accept_quotation(BUYER, order.order_id, quotation.quotation_id)
        for _ in range(5)
    ])

    assert len(results) == 1
    assert len(errors) == 4
    assert all(isinstance(e, InvalidTransition) for e in errors)


def test_late_submit_races_accept(market, order):
    """Test a submit racing an accept is never left pending on an accepted order."""
    quotation = market.submit_quotation(SELLER_A, order.order_id, quote_lines("1", "2", "3"))

    results, errors = _race([
        lambda: market.accept_quotation(BUYER, order.order_id, quotation.quotation_id),
        lambda: market.submit_quotation(SELLER_B, order.order_id, quote_lines("1", "1", "1")),
    ])

    assert market.orders.get(order.order_id).status == OrderStatus.ACCEPTED
    assert all(isinstance(e, InvalidTransition) for e in errors)
    pending = [q for q in market.quotations.list_by_order(order.order_id) if q.is_pending()]
    # The late quotation either lost the race or was rejected by the accept
    assert pending == []


def test_messages_racing_accept(market, order):
    """Test a message on a losing channel either lands before accept or is refused."""
    winner = market.submit_quotation(SELLER_A, order.order_id, quote_lines("1", "2", "3"))
    loser = market.submit_quotation(SELLER_B, order.order_id, quote_lines("2", "2", "3"))

    results, errors = _race([
        lambda: market.accept_quotation(BUYER, order.order_id, winner.quotation_id),
        lambda: market.send_message(SELLER_B, loser.quotation_id, "Last offer"),
    ])

    assert all(isinstance(e, ChannelClosed) for e in errors)
    delivered = market.messages(SELLER_B, loser.quotation_id)
    assert len(delivered) == len(results) - 1


def test_orders_do_not_contend(market):
    """Test accepts on different orders all succeed in parallel."""
    orders = [market.create_order(BUYER, grocery_items()) for _ in range(4)]
    quotations = [
        market.submit_quotation(SELLER_A, o.order_id, quote_lines("1", "2", "3")) for o in orders
    ]

    results, errors = _race([
        (lambda oid=o.order_id, qid=q.quotation_id: market.accept_quotation(BUYER, oid, qid))
        for o, q in zip(orders, quotations)
    ])

    assert errors == []
    assert len(results) == 4


def test_lock_timeout_is_retryable():
    """Test a held order lock times out as StorageUnavailable."""
    locks = OrderLocks(timeout=0.05)
    held = threading.Event()
    release = threading.Event()

    def holder():
        with locks.hold("O1"):
            held.set()
            release.wait(5)

    thread = threading.Thread(target=holder)
    thread.start()
    held.wait(5)
    try:
        with pytest.raises(StorageUnavailable) as caught:
            with locks.hold("O1"):
                pass
        assert caught.value.retryable
        with locks.hold("O2"):
            pass
    finally:
        release.set()
        thread.join()


def test_lock_registry_drops_idle_locks(market):
    """Test locks are released from the registry once no one holds them."""
    for _ in range(50):
        order = market.create_order(BUYER, grocery_items())
        quotation = market.submit_quotation(SELLER_A, order.order_id, quote_lines("1", "2", "3"))
        market.accept_quotation(BUYER, order.order_id, quotation.quotation_id)
    for _ in range(50):
        order = market.create_order(BUYER, grocery_items())
        market.cancel_order(BUYER, order.order_id)

    assert len(market.locks) == 0


def test_nested_and_waiting_holds_share_one_lock():
    """Test a re-entrant hold and a waiter keep the entry until the last one leaves."""
    locks = OrderLocks(timeout=2.0)
    held = threading.Event()
    release = threading.Event()
    order_of_entry = []

    def holder():
        with locks.hold("O1"):
            with locks.hold("O1"):
                held.set()
                release.wait(5)
                order_of_entry.append("holder")

    def waiter():
        held.wait(5)
        with locks.hold("O1"):
            order_of_entry.append("waiter")

    threads = [threading.Thread(target=holder), threading.Thread(target=waiter)]
    for thread in threads:
        thread.start()
    held.wait(5)
    assert locks.active() == ["O1"]
    release.set()
    for thread in threads:
        thread.join()

    assert order_of_entry == ["holder", "waiter"]
    assert len(locks) == 0


class FlakyRepository(InMemoryRepository):
    """In-memory repository whose commits can be made to fail."""

    def __init__(self):
        super().__init__()
        self.failing = False

    def commit(self, orders=(), quotations=(), removed_quotations=()):
        if self.failing:
            raise StorageUnavailable("Storage is offline")
        super().commit(orders, quotations, removed_quotations)


def test_storage_failure_leaves_no_partial_accept():
    """Test a failed accept commit changes nothing and is reported retryable."""
    repository = FlakyRepository()
    notifier = RecordingNotifier()
    market = Marketplace(repository=repository, notifier=notifier, lock_timeout=1.0)
    order = market.create_order(BUYER, grocery_items())
    first = market.submit_quotation(SELLER_A, order.order_id, quote_lines("1", "2", "3"))
    market.submit_quotation(SELLER_B, order.order_id, quote_lines("1", "2", "3"))

    repository.failing = True
    with pytest.raises(StorageUnavailable):
        market.accept_quotation(BUYER, order.order_id, first.quotation_id)

    assert market.orders.get(order.order_id).status == OrderStatus.IN_PROGRESS
    assert all(q.is_pending() for q in market.quotations.list_by_order(order.order_id))
    assert notifier.events[-1].reason == "storage_unavailable"

    repository.failing = False
    accepted = market.accept_quotation(BUYER, order.order_id, first.quotation_id)
    assert accepted.status == OrderStatus.ACCEPTED


def test_non_owner_never_wins_accept_race():
    """Test a buyer who does not own the order never wins a race."""
    market = Marketplace(lock_timeout=1.0)
    order = market.create_order(BUYER, grocery_items())
    quotation = market.submit_quotation(SELLER_A, order.order_id, quote_lines("1", "2", "3"))
    intruder = Session("buyer-9", Role.BUYER)

    results, errors = _race([
        lambda: market.accept_quotation(intruder, order.order_id, quotation.quotation_id),
        lambda: market.accept_quotation(BUYER, order.order_id, quotation.quotation_id),
    ])

    assert len(results) == 1
    assert results[0].accepted_seller_id == "seller-a"
    assert len(errors) == 1
    assert isinstance(errors[0], Forbidden)
