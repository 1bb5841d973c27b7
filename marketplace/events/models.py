"""
Core domain models for the quotation marketplace.

This module defines the records exchanged between buyers and sellers:
orders (wanted-items lists), quotations (priced answers to an order),
chat messages and the derived match results.
All models use immutable-style dataclasses; a status change produces a
new record which the repository swaps in as one unit of work.
"""

from enum import Enum
from dataclasses import dataclass, replace
from decimal import Decimal
from datetime import datetime
from typing import Optional, Tuple


class OrderStatus(Enum):
    """Lifecycle of a buyer's order."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def can_become(self, target: "OrderStatus") -> bool:
        """Check the order state machine for an allowed transition."""
        return target in ORDER_TRANSITIONS[self]


ORDER_TRANSITIONS = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.IN_PROGRESS,
        OrderStatus.ACCEPTED,
        OrderStatus.CANCELLED,
    }),
    # Reverting to pending happens when the last offer is withdrawn
    OrderStatus.IN_PROGRESS: frozenset({
        OrderStatus.PENDING,
        OrderStatus.ACCEPTED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

OPEN_ORDER_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.IN_PROGRESS})


class QuotationStatus(Enum):
    """Lifecycle of a seller's quotation."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Coverage(Enum):
    """How much of an order a quotation can fulfil."""
    FULL = "full"
    PARTIAL = "partial"
    MISSING = "missing"


class Role(Enum):
    """Role supplied by the identity collaborator."""
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


@dataclass(frozen=True)
class Session:
    """Already-authenticated caller passed explicitly into every operation."""
    actor_id: str
    role: Role


@dataclass(frozen=True)
class OrderItem:
    """
    One requested line of an order.

    Attributes:
        product_name: Catalog product name (e.g., 'Basmati Rice')
        requested_quantity: Positive decimal quantity
        unit: Unit string from the catalog vocabulary (e.g., '5kg')
        category: Catalog category name
        note: Optional free text from the buyer
    """
    product_name: str
    requested_quantity: Decimal
    unit: str
    category: str = ""
    note: Optional[str] = None

    def key(self) -> Tuple[str, str]:
        """Lookup key used to pair quotation lines with this line."""
        return (self.product_name, self.unit)


@dataclass(frozen=True)
class Order:
    """
    Represents a buyer's wanted-items list.

    Attributes:
        order_id: Unique identifier for the order
        buyer_id: Buyer who created (and owns) the order
        items: Requested lines, in the buyer's order
        created_at: When the order was created
        status: Current order status
        order_name: Optional display name chosen by the buyer
        delivery_address: Optional opaque delivery address
        accepted_seller_id: Seller of the accepted quotation, once accepted
        total_amount: Final price taken from the accepted quotation
        updated_at: Last status change
    """
    order_id: str
    buyer_id: str
    items: Tuple[OrderItem, ...]
    created_at: datetime
    status: OrderStatus = OrderStatus.PENDING
    order_name: Optional[str] = None
    delivery_address: Optional[str] = None
    accepted_seller_id: Optional[str] = None
    total_amount: Optional[Decimal] = None
    updated_at: Optional[datetime] = None

    def is_open(self) -> bool:
        """Check if the order still accepts quotations."""
        return self.status in OPEN_ORDER_STATUSES

    def with_status(self, status: OrderStatus, when: datetime, **changes) -> "Order":
        """Return a copy moved to ``status``; the caller checks the transition."""
        return replace(self, status=status, updated_at=when, **changes)


@dataclass(frozen=True)
class QuotationItem:
    """
    A seller's answer to one order line.

    Unavailable lines carry a zero price and never count towards totals.
    ``unit`` may be omitted when the product name alone identifies the line.
    """
    product_name: str
    quantity: Decimal
    price_per_unit: Decimal
    available: bool
    unit: Optional[str] = None

    def line_total(self) -> Decimal:
        """Price contribution of this line."""
        if not self.available:
            return Decimal("0")
        return self.price_per_unit * self.quantity


@dataclass(frozen=True)
class Quotation:
    """
    Represents a seller's priced offer against an order.

    Attributes:
        quotation_id: Unique identifier for the quotation
        order_id: Order this quotation answers
        seller_id: Seller who submitted it
        items: One line per order line, in submission order
        discount: Flat discount subtracted from the subtotal
        sent_date: When the quotation was first submitted (tie breaker)
        status: Current quotation status
        notes: Optional free text from the seller
        updated_at: Last edit or status change
    """
    quotation_id: str
    order_id: str
    seller_id: str
    items: Tuple[QuotationItem, ...]
    discount: Decimal
    sent_date: datetime
    status: QuotationStatus = QuotationStatus.PENDING
    notes: Optional[str] = None
    updated_at: Optional[datetime] = None

    def subtotal(self) -> Decimal:
        """Sum of price times quantity over available lines."""
        return sum((item.line_total() for item in self.items), Decimal("0"))

    def total_amount(self) -> Decimal:
        """Subtotal minus discount, never negative."""
        return max(Decimal("0"), self.subtotal() - self.discount)

    def is_pending(self) -> bool:
        return self.status == QuotationStatus.PENDING

    def with_status(self, status: QuotationStatus, when: datetime) -> "Quotation":
        return replace(self, status=status, updated_at=when)


@dataclass(frozen=True)
class Message:
    """
    One entry in a quotation's append-only chat log.

    Only ``is_read`` ever changes after creation.
    """
    message_id: str
    quotation_id: str
    sender_id: str
    sender_role: Role
    body: str
    sent_at: datetime
    is_read: bool = False


@dataclass(frozen=True)
class MatchResult:
    """
    Derived comparison data for one quotation (never persisted).

    Attributes:
        quotation_id: Quotation that was evaluated
        coverage: FULL, PARTIAL or MISSING
        subtotal: Price of available lines before discount
        total_price: Subtotal minus discount, floored at zero
        available_count: Order lines the seller can supply
        missing_count: Order lines the seller cannot supply
        is_best_price: Set by the ranker on the cheapest active quotation
    """
    quotation_id: str
    coverage: Coverage
    subtotal: Decimal
    total_price: Decimal
    available_count: int
    missing_count: int
    is_best_price: bool = False
