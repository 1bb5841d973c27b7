"""
Pydantic request/response models for the API.

Field names are camelCase on the wire and snake_case in Python.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from marketplace.events.models import (
    MatchResult,
    Message,
    Order,
    OrderItem,
    Quotation,
    QuotationItem,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============== Orders ==============

class OrderItemIn(CamelModel):
    product_name: str
    quantity: Decimal
    unit: str
    category: str = ""
    note: Optional[str] = None

    def to_domain(self) -> OrderItem:
        return OrderItem(
            product_name=self.product_name,
            requested_quantity=self.quantity,
            unit=self.unit,
            category=self.category,
            note=self.note,
        )


class OrderCreate(CamelModel):
    items: List[OrderItemIn]
    order_name: Optional[str] = None
    delivery_address: Optional[str] = None


class OrderItemOut(CamelModel):
    product_name: str
    quantity: Decimal
    unit: str
    category: str
    note: Optional[str] = None


class OrderOut(CamelModel):
    id: str
    buyer_id: str
    status: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    items: List[OrderItemOut]
    order_name: Optional[str] = None
    delivery_address: Optional[str] = None
    accepted_seller_id: Optional[str] = None
    total_amount: Optional[Decimal] = None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderOut":
        return cls(
            id=order.order_id,
            buyer_id=order.buyer_id,
            status=order.status.value,
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=[
                OrderItemOut(
                    product_name=item.product_name,
                    quantity=item.requested_quantity,
                    unit=item.unit,
                    category=item.category,
                    note=item.note,
                )
                for item in order.items
            ],
            order_name=order.order_name,
            delivery_address=order.delivery_address,
            accepted_seller_id=order.accepted_seller_id,
            total_amount=order.total_amount,
        )


class AcceptQuotationRequest(CamelModel):
    quotation_id: str


# ============== Quotations ==============

class QuotationItemIn(CamelModel):
    product_name: str
    quantity: Decimal
    price_per_unit: Decimal = Decimal("0")
    available: bool
    unit: Optional[str] = None

    def to_domain(self) -> QuotationItem:
        return QuotationItem(
            product_name=self.product_name,
            quantity=self.quantity,
            price_per_unit=self.price_per_unit,
            available=self.available,
            unit=self.unit,
        )


class QuotationSubmit(CamelModel):
    items: List[QuotationItemIn]
    discount: Decimal = Decimal("0")
    notes: Optional[str] = None


class QuotationItemOut(CamelModel):
    product_name: str
    unit: Optional[str] = None
    quantity: Decimal
    price_per_unit: Decimal
    available: bool


class QuotationOut(CamelModel):
    id: str
    order_id: str
    seller_id: str
    status: str
    discount: Decimal
    subtotal: Decimal
    total_amount: Decimal
    sent_date: datetime
    updated_at: Optional[datetime] = None
    notes: Optional[str] = None
    items: List[QuotationItemOut]

    @classmethod
    def from_domain(cls, quotation: Quotation) -> "QuotationOut":
        return cls(
            id=quotation.quotation_id,
            order_id=quotation.order_id,
            seller_id=quotation.seller_id,
            status=quotation.status.value,
            discount=quotation.discount,
            subtotal=quotation.subtotal(),
            total_amount=quotation.total_amount(),
            sent_date=quotation.sent_date,
            updated_at=quotation.updated_at,
            notes=quotation.notes,
            items=[
                QuotationItemOut(
                    product_name=item.product_name,
                    unit=item.unit,
                    quantity=item.quantity,
                    price_per_unit=item.price_per_unit,
                    available=item.available,
                )
                for item in quotation.items
            ],
        )


class QuotationSummary(CamelModel):
    quotation_id: str
    coverage: str
    available_count: int
    missing_count: int
    total_price: Decimal
    is_best_price: bool

    @classmethod
    def from_result(cls, result: MatchResult) -> "QuotationSummary":
        return cls(
            quotation_id=result.quotation_id,
            coverage=result.coverage.value,
            available_count=result.available_count,
            missing_count=result.missing_count,
            total_price=result.total_price,
            is_best_price=result.is_best_price,
        )


class QuotationComparison(CamelModel):
    quotations: List[QuotationOut]
    summary: List[QuotationSummary]


# ============== Messages ==============

class MessageSend(CamelModel):
    quotation_id: str
    message: str = Field(default="")


class MessageOut(CamelModel):
    id: str
    quotation_id: str
    sender_id: str
    sender_role: str
    body: str
    sent_at: datetime
    is_read: bool

    @classmethod
    def from_domain(cls, message: Message) -> "MessageOut":
        return cls(
            id=message.message_id,
            quotation_id=message.quotation_id,
            sender_id=message.sender_id,
            sender_role=message.sender_role.value,
            body=message.body,
            sent_at=message.sent_at,
            is_read=message.is_read,
        )


class MessageHistory(CamelModel):
    quotation_id: str
    is_open: bool
    messages: List[MessageOut]
