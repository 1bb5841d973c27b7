"""
Order API router: creation, reorder, listings, counts, cancel, accept and
complete.
"""
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends

from marketplace.api.dependencies import get_marketplace, get_session
from marketplace.api.schemas import AcceptQuotationRequest, OrderCreate, OrderOut
from marketplace.engine.marketplace import Marketplace
from marketplace.events.errors import ValidationError
from marketplace.events.models import OrderStatus, Session

router = APIRouter(prefix="/orders", tags=["Orders"])


def _parse_status(status: Optional[str]) -> Optional[OrderStatus]:
    if not status:
        return None
    try:
        return OrderStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown order status: {status}")


@router.post("", response_model=OrderOut)
def create_order(
    request: OrderCreate,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """Create a wanted-items list."""
    order = market.create_order(
        session,
        [item.to_domain() for item in request.items],
        order_name=request.order_name,
        delivery_address=request.delivery_address,
    )
    return OrderOut.from_domain(order)


@router.get("", response_model=List[OrderOut])
def list_my_orders(
    status: Optional[str] = None,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """List the calling buyer's orders, newest first."""
    return [OrderOut.from_domain(order) for order in market.my_orders(session, _parse_status(status))]


@router.get("/open", response_model=List[OrderOut])
def list_open_orders(
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """Orders sellers can still quote."""
    return [OrderOut.from_domain(order) for order in market.open_orders(session)]


@router.get("/accepted", response_model=List[OrderOut])
def list_accepted_orders(
    status: Optional[str] = None,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """Orders the calling seller won, most recently changed first."""
    return [
        OrderOut.from_domain(order)
        for order in market.accepted_orders(session, _parse_status(status))
    ]


@router.get("/status-counts", response_model=Dict[str, int])
def order_status_counts(
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """Number of the caller's orders per status."""
    return market.order_status_counts(session)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: str,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    return OrderOut.from_domain(market.get_order(session, order_id))


@router.put("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: str,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """Cancel an open order; its pending quotations are rejected."""
    return OrderOut.from_domain(market.cancel_order(session, order_id))


@router.post("/{order_id}/reorder", response_model=OrderOut)
def reorder(
    order_id: str,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """Start a new pending order from one of the buyer's previous orders."""
    return OrderOut.from_domain(market.reorder(session, order_id))


@router.post("/{order_id}/accept-quotation", response_model=OrderOut)
def accept_quotation(
    order_id: str,
    request: AcceptQuotationRequest,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """Accept one quotation; every other pending quotation is rejected."""
    return OrderOut.from_domain(market.accept_quotation(session, order_id, request.quotation_id))


@router.put("/{order_id}/complete", response_model=OrderOut)
def complete_order(
    order_id: str,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """Mark an accepted order as fulfilled (accepted seller only)."""
    return OrderOut.from_domain(market.complete_order(session, order_id))
