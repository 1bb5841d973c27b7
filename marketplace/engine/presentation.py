"""
Single status-to-label table consumed by every surface.

Buyer, seller and admin views all read labels and colours from here
instead of keeping their own mapping.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List

from marketplace.events.models import Coverage, OrderStatus, QuotationStatus


@dataclass(frozen=True)
class StatusLabel:
    label: str
    color: str


STATUS_LABELS: Dict[Enum, StatusLabel] = {
    OrderStatus.PENDING: StatusLabel("Waiting for quotes", "yellow"),
    OrderStatus.IN_PROGRESS: StatusLabel("Quotes received", "blue"),
    OrderStatus.ACCEPTED: StatusLabel("Accepted", "green"),
    OrderStatus.COMPLETED: StatusLabel("Completed", "gray"),
    OrderStatus.CANCELLED: StatusLabel("Cancelled", "red"),
    QuotationStatus.PENDING: StatusLabel("Awaiting buyer", "yellow"),
    QuotationStatus.ACCEPTED: StatusLabel("Accepted", "green"),
    QuotationStatus.REJECTED: StatusLabel("Rejected", "red"),
    Coverage.FULL: StatusLabel("Full match", "green"),
    Coverage.PARTIAL: StatusLabel("Partial match", "yellow"),
    Coverage.MISSING: StatusLabel("Missing items", "red"),
}


def describe(status: Enum) -> StatusLabel:
    """Get the label for an order status, quotation status or coverage."""
    return STATUS_LABELS[status]


def presentation_table() -> Dict[str, List[dict]]:
    """All labels grouped by kind, in enum order."""
    groups = {"order": OrderStatus, "quotation": QuotationStatus, "coverage": Coverage}
    return {
        name: [
            {"value": member.value, "label": describe(member).label, "color": describe(member).color}
            for member in enum
        ]
        for name, enum in groups.items()
    }
