"""
Tests for the AcceptanceCoordinator.

Tests accept preconditions, the atomic accept/reject unit of work and
the completion pass-through.
"""

from decimal import Decimal
import pytest
from marketplace.events.errors import Forbidden, InvalidTransition, NotFound
from marketplace.events.models import OrderStatus, QuotationStatus
from conftest import BUYER, OTHER_BUYER, SELLER_A, SELLER_B, SELLER_C, grocery_items, quote_lines


def _three_quotes(market, order):
    return (
        market.submit_quotation(SELLER_A, order.order_id, quote_lines("120", "450", "160"), discount="50"),
        market.submit_quotation(SELLER_B, order.order_id, quote_lines("150", "475", None), discount="5"),
        market.submit_quotation(SELLER_C, order.order_id, quote_lines("125", "425", "150"), discount="100"),
    )


def test_accept_quotation(market, order):
    """Test accepting one quotation rejects the rest and closes the order."""
    a, b, c = _three_quotes(market, order)

    accepted = market.accept_quotation(BUYER, order.order_id, c.quotation_id)

    assert accepted.status == OrderStatus.ACCEPTED
    assert accepted.accepted_seller_id == "seller-c"
    assert accepted.total_amount == Decimal("600")
    assert market.orders.get(order.order_id) == accepted

    statuses = {q.quotation_id: q.status for q in market.quotations.list_by_order(order.order_id)}
    assert statuses == {
        a.quotation_id: QuotationStatus.REJECTED,
        b.quotation_id: QuotationStatus.REJECTED,
        c.quotation_id: QuotationStatus.ACCEPTED,
    }


def test_accept_by_non_buyer(market, order):
    """Test only the order's buyer may accept."""
    a, _, _ = _three_quotes(market, order)

    with pytest.raises(Forbidden):
        market.accept_quotation(OTHER_BUYER, order.order_id, a.quotation_id)
    with pytest.raises(Forbidden):
        market.coordinator.accept(order.order_id, a.quotation_id, "seller-a")

    assert market.orders.get(order.order_id).status == OrderStatus.IN_PROGRESS


def test_accept_twice(market, order):
    """Test re-submitting an accept observes InvalidTransition."""
    a, b, _ = _three_quotes(market, order)
    market.accept_quotation(BUYER, order.order_id, a.quotation_id)

    with pytest.raises(InvalidTransition):
        market.accept_quotation(BUYER, order.order_id, a.quotation_id)
    with pytest.raises(InvalidTransition):
        market.accept_quotation(BUYER, order.order_id, b.quotation_id)


def test_accept_on_cancelled_order(market, order):
    """Test a cancelled order cannot accept anything."""
    a, _, _ = _three_quotes(market, order)
    market.cancel_order(BUYER, order.order_id)

    with pytest.raises(InvalidTransition):
        market.accept_quotation(BUYER, order.order_id, a.quotation_id)


def test_accept_quotation_of_other_order(market, order):
    """Test a quotation from a different order is NotFound."""
    other = market.create_order(BUYER, grocery_items())
    foreign = market.submit_quotation(SELLER_A, other.order_id, quote_lines("1", "1", "1"))
    market.submit_quotation(SELLER_B, order.order_id, quote_lines("1", "1", "1"))

    with pytest.raises(NotFound):
        market.accept_quotation(BUYER, order.order_id, foreign.quotation_id)
    assert market.orders.get(order.order_id).status == OrderStatus.IN_PROGRESS


def test_accept_unknown_ids(market, order):
    """Test unknown order or quotation ids are NotFound."""
    with pytest.raises(NotFound):
        market.accept_quotation(BUYER, "O404", "Q1")
    with pytest.raises(NotFound):
        market.accept_quotation(BUYER, order.order_id, "Q404")


def test_accept_withdrawn_quotation(market, order):
    """Test a withdrawn quotation can no longer be accepted."""
    a, _, _ = _three_quotes(market, order)
    market.withdraw_quotation(SELLER_A, a.quotation_id)

    with pytest.raises(NotFound):
        market.accept_quotation(BUYER, order.order_id, a.quotation_id)


def test_accepted_total_uses_floored_amount(market, order):
    """Test an over-discounted quotation settles at zero."""
    quotation = market.submit_quotation(SELLER_A, order.order_id, quote_lines("1", "1", "1"), discount="10")

    accepted = market.accept_quotation(BUYER, order.order_id, quotation.quotation_id)

    assert accepted.total_amount == Decimal("0")


def test_complete_by_accepted_seller(market, order):
    """Test the accepted seller can mark the order completed."""
    a, _, _ = _three_quotes(market, order)
    market.accept_quotation(BUYER, order.order_id, a.quotation_id)

    completed = market.complete_order(SELLER_A, order.order_id)

    assert completed.status == OrderStatus.COMPLETED
    assert completed.accepted_seller_id == "seller-a"


def test_complete_by_other_seller(market, order):
    """Test a rejected seller cannot complete the order."""
    a, _, _ = _three_quotes(market, order)
    market.accept_quotation(BUYER, order.order_id, a.quotation_id)

    with pytest.raises(Forbidden):
        market.complete_order(SELLER_B, order.order_id)


def test_complete_before_accept(market, order):
    """Test an undecided order cannot be completed."""
    _three_quotes(market, order)

    with pytest.raises(InvalidTransition):
        market.complete_order(SELLER_A, order.order_id)


def test_complete_twice(market, order):
    """Test completion happens once."""
    a, _, _ = _three_quotes(market, order)
    market.accept_quotation(BUYER, order.order_id, a.quotation_id)
    market.complete_order(SELLER_A, order.order_id)

    with pytest.raises(InvalidTransition):
        market.complete_order(SELLER_A, order.order_id)


def test_late_submit_after_complete(market, order):
    """Test a completed order takes no more quotations."""
    a, _, _ = _three_quotes(market, order)
    market.accept_quotation(BUYER, order.order_id, a.quotation_id)
    market.complete_order(SELLER_A, order.order_id)

    with pytest.raises(InvalidTransition):
        market.submit_quotation(SELLER_B, order.order_id, quote_lines("1", "1", "1"))
