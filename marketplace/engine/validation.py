"""
Structural checks shared by the order and quotation stores.

Only the shape of input is checked here; nothing is validated against a
live catalog.
"""

from decimal import Decimal, InvalidOperation
from typing import Optional

from marketplace.events.errors import ValidationError


def as_decimal(value, field_name: str) -> Decimal:
    """Convert ``value`` to a finite Decimal or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    try:
        # str() avoids binary float artefacts (0.1 -> 0.1000000000000000055...)
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    if not number.is_finite():
        raise ValidationError(f"{field_name} must be finite")
    return number


def required_text(value: Optional[str], field_name: str) -> str:
    """Strip ``value`` and reject it when empty."""
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field_name} is required")
    return text


def optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = value.strip()
    return text or None
