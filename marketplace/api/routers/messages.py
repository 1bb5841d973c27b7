"""
Quotation chat API router.
"""
from fastapi import APIRouter, Depends

from marketplace.api.dependencies import get_marketplace, get_session
from marketplace.api.schemas import MessageHistory, MessageOut, MessageSend
from marketplace.engine.marketplace import Marketplace
from marketplace.events.models import Session

router = APIRouter(prefix="/messages", tags=["Messages"])


@router.get("/quotation/{quotation_id}", response_model=MessageHistory)
def get_messages(
    quotation_id: str,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """Full history of a quotation's chat, oldest first."""
    messages = market.messages(session, quotation_id)
    return MessageHistory(
        quotation_id=quotation_id,
        is_open=market.is_chat_open(quotation_id),
        messages=[MessageOut.from_domain(message) for message in messages],
    )


@router.post("/send", response_model=MessageOut)
def send_message(
    request: MessageSend,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    message = market.send_message(session, request.quotation_id, request.message)
    return MessageOut.from_domain(message)


@router.put("/quotation/{quotation_id}/read")
def mark_read(
    quotation_id: str,
    session: Session = Depends(get_session),
    market: Marketplace = Depends(get_marketplace),
):
    """Mark messages from the other participant as read."""
    return {"marked": market.mark_read(session, quotation_id)}
