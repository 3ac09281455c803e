"""
Direct messages to creators. Paid DMs spend one credit per message.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from creatorpay.deps import get_current_user_id, get_db
from creatorpay.models import CreatorProfile
from creatorpay.schemas_pkg import MessageOut, PaymentRequiredOut, SendMessageRequest
from creatorpay.services import dm_ledger

router = APIRouter(tags=["Messages"])


@router.post(
    "/{creator_id}",
    response_model=MessageOut,
    status_code=status.HTTP_201_CREATED,
    responses={402: {"model": PaymentRequiredOut, "description": "Message credit required"}},
)
def send_message(
    creator_id: str,
    body: SendMessageRequest,
    sender_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    creator = db.get(CreatorProfile, creator_id)
    if creator is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Creator not found")

    outcome = dm_ledger.send_message(db, sender_id, creator, body.content)
    if isinstance(outcome, dm_ledger.PaymentRequired):
        return JSONResponse(status_code=status.HTTP_402_PAYMENT_REQUIRED, content=outcome.to_dict())
    return outcome


@router.get("/{creator_id}/credits")
def message_credits(
    creator_id: str,
    sender_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return {"creator_id": creator_id, "remaining": dm_ledger.remaining_messages(db, sender_id, creator_id)}
