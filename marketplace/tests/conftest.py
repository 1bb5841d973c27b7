"""
Shared fixtures for the marketplace test suite.

Provides:
- A deterministic clock (one second per reading)
- Marketplace wired with a recording notifier
- Builders for the grocery order used throughout the tests
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from marketplace.engine.marketplace import Marketplace
from marketplace.events.models import OrderItem, QuotationItem, Role, Session
from marketplace.events.outcomes import RecordingNotifier


class TickingClock:
    """Returns a strictly increasing timestamp on every call."""

    def __init__(self, start: datetime = datetime(2026, 3, 1, 9, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


BUYER = Session("buyer-1", Role.BUYER)
OTHER_BUYER = Session("buyer-2", Role.BUYER)
SELLER_A = Session("seller-a", Role.SELLER)
SELLER_B = Session("seller-b", Role.SELLER)
SELLER_C = Session("seller-c", Role.SELLER)
SELLER_D = Session("seller-d", Role.SELLER)
ADMIN = Session("admin-1", Role.ADMIN)


def grocery_items():
    """Turmeric 500g, Basmati 5kg, Red Lentils 2kg - one pack each."""
    return [
        OrderItem("Turmeric Powder", Decimal("1"), "500g", category="Spices"),
        OrderItem("Basmati Rice", Decimal("1"), "5kg", category="Grains"),
        OrderItem("Red Lentils", Decimal("1"), "2kg", category="Pulses"),
    ]


def quote_lines(*prices):
    """
    One line per grocery item; a price of None marks the line unavailable.

    Example: quote_lines("150", "475", None)
    """
    lines = []
    for item, price in zip(grocery_items(), prices):
        lines.append(QuotationItem(
            product_name=item.product_name,
            quantity=Decimal("1"),
            price_per_unit=Decimal(price) if price is not None else Decimal("0"),
            available=price is not None,
            unit=item.unit,
        ))
    return lines


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def market(clock, notifier):
    return Marketplace(notifier=notifier, clock=clock, lock_timeout=2.0)


@pytest.fixture
def order(market):
    """A fresh grocery order owned by BUYER."""
    return market.create_order(BUYER, grocery_items(), order_name="Weekly pantry")
