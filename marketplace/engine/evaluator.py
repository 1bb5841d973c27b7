"""
Quotation evaluation against its order.

Classifies how much of an order a quotation covers and computes its
price. Evaluation is a pure function of (order, quotation): both are
frozen and hashable, so results are memoised per evaluator.

Coverage:
- FULL: every order line has an available quotation line
- PARTIAL: at least one, but not every, order line is available
- MISSING: no order line is available
"""

import logging
from collections import defaultdict, deque
from decimal import Decimal
from functools import lru_cache
from typing import Deque, Dict, List, Optional, Sequence, Set, Tuple

from marketplace.events.models import (
    Coverage,
    MatchResult,
    Order,
    OrderItem,
    Quotation,
    QuotationItem,
)

logger = logging.getLogger(__name__)


def pair_items(
    order_items: Sequence[OrderItem],
    quotation_items: Sequence[QuotationItem],
) -> Tuple[List[Tuple[QuotationItem, Optional[OrderItem]]], List[OrderItem]]:
    """
    Pair each quotation line with the order line it answers.

    Order lines are looked up by (product_name, unit); a quotation line
    without a unit matches by product name alone. Repeated order lines are
    consumed first come, first served, so two quotation lines for the same
    product answer two separate order lines.

    Args:
        order_items: Lines requested by the buyer
        quotation_items: Lines declared by the seller

    Returns:
        (pairs, uncovered): every quotation line with its order line (None
        when nothing matches), and the order lines left unanswered
    """
    by_key: Dict[Tuple[str, str], Deque[int]] = defaultdict(deque)
    by_name: Dict[str, Deque[int]] = defaultdict(deque)
    for index, item in enumerate(order_items):
        by_key[item.key()].append(index)
        by_name[item.product_name].append(index)

    taken: Set[int] = set()
    pairs: List[Tuple[QuotationItem, Optional[OrderItem]]] = []

    for quote_item in quotation_items:
        if quote_item.unit is None:
            candidates = by_name.get(quote_item.product_name, deque())
        else:
            candidates = by_key.get((quote_item.product_name, quote_item.unit), deque())

        # Drop lines already claimed through the other index
        while candidates and candidates[0] in taken:
            candidates.popleft()

        if candidates:
            index = candidates.popleft()
            taken.add(index)
            pairs.append((quote_item, order_items[index]))
        else:
            pairs.append((quote_item, None))

    uncovered = [item for index, item in enumerate(order_items) if index not in taken]
    return pairs, uncovered


def evaluate(order: Order, quotation: Quotation) -> MatchResult:
    """
    Evaluate one quotation against its order.

    Unmatched quotation lines are ignored for coverage; the quotation
    store never lets one in.

    Args:
        order: The order the quotation answers
        quotation: The quotation to classify

    Returns:
        MatchResult with coverage, prices and line counts
    """
    pairs, _ = pair_items(order.items, quotation.items)

    available_count = sum(
        1 for quote_item, order_item in pairs
        if order_item is not None and quote_item.available
    )
    line_count = len(order.items)

    if available_count == line_count:
        coverage = Coverage.FULL
    elif available_count == 0:
        coverage = Coverage.MISSING
    else:
        coverage = Coverage.PARTIAL

    subtotal = sum(
        (quote_item.line_total() for quote_item, order_item in pairs if order_item is not None),
        Decimal("0"),
    )
    total_price = max(Decimal("0"), subtotal - quotation.discount)

    return MatchResult(
        quotation_id=quotation.quotation_id,
        coverage=coverage,
        subtotal=subtotal,
        total_price=total_price,
        available_count=available_count,
        missing_count=line_count - available_count,
    )


class MatchEvaluator:
    """Memoising wrapper around ``evaluate``."""

    def __init__(self, cache_size: int = 1024):
        self._evaluate = lru_cache(maxsize=cache_size)(evaluate)

    def evaluate(self, order: Order, quotation: Quotation) -> MatchResult:
        result = self._evaluate(order, quotation)
        logger.debug(
            "Quotation %s covers %s of order %s at %s",
            quotation.quotation_id, result.coverage.value, order.order_id, result.total_price,
        )
        return result

    def cache_info(self):
        return self._evaluate.cache_info()
