"""
Quotation API router: seller submissions and the buyer's comparison view.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends

from marketplace.api.dependencies import get_marketplace, get_session
from marketplace.api.schemas import (
    QuotationComparison,
    QuotationOut,
    QuotationSubmit,
    QuotationSummary,
)
from marketplace.engine.marketplace import Marketplace
from marketplace.events.errors import ValidationError
from marketplace.events.models import QuotationStatus, Session

router = APIRouter(tags=["Quotations"])

SORT_DIRECTIONS = {None: None, "asc": False, "desc": True}


@router.post("/orders/{order_id}/quotations", response_model=QuotationOut)
def submit_quotation(
    order_id: str,
    request: QuotationSubmit,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """Submit a priced answer to every line of an order."""
    quotation = market.submit_quotation(
        session,
        order_id,
        [item.to_domain() for item in request.items],
        discount=request.discount,
        notes=request.notes,
    )
    return QuotationOut.from_domain(quotation)


@router.get("/orders/{order_id}/quotations", response_model=QuotationComparison)
def compare_quotations(
    order_id: str,
    coverage: str = "all",
    sort: Optional[str] = None,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """
    Ranked quotations with a match summary per quotation.

    ``coverage`` filters (all/full/partial/missing); ``sort`` re-sorts by
    price (asc/desc). An order without quotations yields empty lists.
    """
    if sort not in SORT_DIRECTIONS:
        raise ValidationError(f"Unknown sort direction: {sort}")
    ranked = market.compare_quotations(session, order_id, coverage, SORT_DIRECTIONS[sort])
    return QuotationComparison(
        quotations=[QuotationOut.from_domain(quotation) for quotation, _ in ranked],
        summary=[QuotationSummary.from_result(result) for _, result in ranked],
    )


@router.get("/quotations/mine", response_model=List[QuotationOut])
def my_quotations(
    status: Optional[str] = None,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """The calling seller's quotations, newest first."""
    wanted = None
    if status:
        try:
            wanted = QuotationStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown quotation status: {status}")
    return [QuotationOut.from_domain(q) for q in market.my_quotations(session, wanted)]


@router.put("/quotations/{quotation_id}", response_model=QuotationOut)
def update_quotation(
    quotation_id: str,
    request: QuotationSubmit,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """Edit a pending quotation."""
    quotation = market.update_quotation(
        session,
        quotation_id,
        [item.to_domain() for item in request.items],
        discount=request.discount,
        notes=request.notes,
    )
    return QuotationOut.from_domain(quotation)


@router.delete("/quotations/{quotation_id}")
def withdraw_quotation(
    quotation_id: str,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """Withdraw a pending quotation."""
    market.withdraw_quotation(session, quotation_id)
    return {"success": True, "message": f"Quotation {quotation_id} withdrawn"}
