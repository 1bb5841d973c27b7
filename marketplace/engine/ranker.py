"""
Buyer-side comparison of the quotations of one order.

Active (non-rejected) quotations are ordered by total price, earliest
sent date first on ties, and the first one is flagged best price.
Rejected quotations follow for history views and are never best price.
Filtering and re-sorting are separate steps applied to a ranking.
"""

import logging
from dataclasses import replace
from typing import Iterable, List, Optional, Tuple, Union

from marketplace.engine.evaluator import MatchEvaluator
from marketplace.events.errors import ValidationError
from marketplace.events.models import (
    Coverage,
    MatchResult,
    Order,
    Quotation,
    QuotationStatus,
)

logger = logging.getLogger(__name__)

RankedQuotation = Tuple[Quotation, MatchResult]


class QuotationRanker:
    """Ranks quotations using a shared evaluator."""

    def __init__(self, evaluator: Optional[MatchEvaluator] = None):
        self.evaluator = evaluator or MatchEvaluator()

    def rank(self, order: Order, quotations: Iterable[Quotation]) -> List[RankedQuotation]:
        """
        Evaluate and order quotations for buyer display.

        Args:
            order: Order the quotations answer
            quotations: Quotations of that order, any status

        Returns:
            Active quotations cheapest first, then rejected ones by sent
            date. Empty when there are no quotations.
        """
        evaluated = [(q, self.evaluator.evaluate(order, q)) for q in quotations]

        active = [pair for pair in evaluated if pair[0].status != QuotationStatus.REJECTED]
        rejected = [pair for pair in evaluated if pair[0].status == QuotationStatus.REJECTED]

        active.sort(key=lambda pair: (pair[1].total_price, pair[0].sent_date))
        rejected.sort(key=lambda pair: pair[0].sent_date)

        ranked = [
            (quotation, replace(result, is_best_price=(position == 0)))
            for position, (quotation, result) in enumerate(active)
        ]
        ranked.extend((quotation, replace(result, is_best_price=False)) for quotation, result in rejected)

        logger.debug("Ranked %d quotations for order %s", len(ranked), order.order_id)
        return ranked


def filter_by_coverage(
    ranked: Iterable[RankedQuotation],
    coverage: Union[Coverage, str, None] = "all",
) -> List[RankedQuotation]:
    """
    Keep quotations with the given coverage.

    Args:
        ranked: Output of ``QuotationRanker.rank``
        coverage: A Coverage, its value ('full', 'partial', 'missing'),
            or 'all' / None to keep everything
    """
    wanted = parse_coverage(coverage)
    if wanted is None:
        return list(ranked)
    return [pair for pair in ranked if pair[1].coverage == wanted]


def sort_by_price(ranked: Iterable[RankedQuotation], descending: bool = False) -> List[RankedQuotation]:
    """
    Re-sort by total price; equal prices keep earliest sent date first.

    The best-price flag is left as computed by the ranker.
    """
    by_date = sorted(ranked, key=lambda pair: pair[0].sent_date)
    # sorted() is stable in both directions, so ties stay in date order
    return sorted(by_date, key=lambda pair: pair[1].total_price, reverse=descending)


def active_only(ranked: Iterable[RankedQuotation]) -> List[RankedQuotation]:
    return [pair for pair in ranked if pair[0].status != QuotationStatus.REJECTED]


def parse_coverage(coverage: Union[Coverage, str, None]) -> Optional[Coverage]:
    """Turn a coverage filter into a Coverage, or None for 'all'."""
    if coverage is None or isinstance(coverage, Coverage):
        return coverage
    if coverage == "all":
        return None
    try:
        return Coverage(coverage)
    except ValueError:
        raise ValidationError(f"Unknown coverage filter: {coverage}")
