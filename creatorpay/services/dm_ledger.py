"""
Paid direct-message credit ledger.

A DMPayment row is a bundle of message credits bought from one creator.
Credits are spent oldest bundle first, one per message, through a single
conditional UPDATE so concurrent senders can never push messages_used past
messages_allowed.
"""
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from creatorpay.config import settings
from creatorpay.logging_config import get_logger
from creatorpay.models import CreatorProfile, DMPayment, Message, utcnow

logger = get_logger(__name__)

DM_PAYMENT_PATH = "/v1/payments/dm"


@dataclass(frozen=True)
class MessageAuthorization:
    """The sender may post. dm_payment_id is the bundle that paid for it."""
    is_paid: bool
    price: int
    dm_payment_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentRequired:
    """No usable credit; the sender has to buy a bundle first."""
    creator_id: str
    price: int
    currency: str
    payment_url: str

    def to_dict(self) -> dict:
        return {"payment_required": True, **asdict(self)}


def _usable(query, user_id: str, creator_id: str, now: datetime):
    return query.filter(
        DMPayment.user_id == user_id,
        DMPayment.creator_id == creator_id,
        DMPayment.status == "COMPLETED",
        DMPayment.messages_used < DMPayment.messages_allowed,
        or_(DMPayment.expires_at.is_(None), DMPayment.expires_at > now),
    )


def find_usable_credit(db: Session, user_id: str, creator_id: str, now: Optional[datetime] = None) -> Optional[DMPayment]:
    """Oldest bundle that still has messages left."""
    now = now or utcnow()
    return (
        _usable(db.query(DMPayment), user_id, creator_id, now)
        .order_by(DMPayment.created_at.asc(), DMPayment.id.asc())
        .first()
    )


def remaining_messages(db: Session, user_id: str, creator_id: str, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    total = _usable(
        db.query(func.coalesce(func.sum(DMPayment.messages_allowed - DMPayment.messages_used), 0)),
        user_id,
        creator_id,
        now,
    ).scalar()
    return int(total or 0)


def consume_credit(db: Session, user_id: str, creator_id: str, now: Optional[datetime] = None) -> Optional[str]:
    """
    Spend one message credit. Returns the id of the bundle charged, or None
    when the sender has nothing left.

    Does not commit: the caller commits together with whatever the credit
    was spent on.
    """
    now = now or utcnow()
    attempted = []
    while True:
        query = _usable(db.query(DMPayment.id), user_id, creator_id, now)
        if attempted:
            query = query.filter(DMPayment.id.notin_(attempted))
        row = query.order_by(DMPayment.created_at.asc(), DMPayment.id.asc()).first()
        if row is None:
            return None

        credit_id = row.id
        updated = (
            db.query(DMPayment)
            .filter(
                DMPayment.id == credit_id,
                DMPayment.messages_used < DMPayment.messages_allowed,
                DMPayment.status == "COMPLETED",
            )
            .update(
                {DMPayment.messages_used: DMPayment.messages_used + 1},
                synchronize_session=False,
            )
        )
        if updated == 1:
            return credit_id

        # Another request took the last message in this bundle
        logger.info("dm_credit_race_lost", dm_payment_id=credit_id, sender_id=user_id)
        attempted.append(credit_id)


def open_credit(
    db: Session,
    user_id: str,
    creator: CreatorProfile,
    messages_count: int = 1,
    provider: Optional[str] = None,
) -> DMPayment:
    """Create a PENDING bundle priced at the creator's current DM price."""
    if messages_count < 1:
        raise ValueError("messages_count must be at least 1")
    if creator.dm_price <= 0:
        raise ValueError("This creator does not charge for messages")

    credit = DMPayment(
        user_id=user_id,
        creator_id=creator.id,
        amount=creator.dm_price * messages_count,
        currency=creator.dm_currency,
        status="PENDING",
        messages_allowed=messages_count,
        messages_used=0,
        provider=provider,
    )
    db.add(credit)
    db.flush()
    return credit


def activate_credit(db: Session, dm_payment_id: str, now: Optional[datetime] = None) -> bool:
    """PENDING -> COMPLETED and start the expiry clock. Does not commit."""
    now = now or utcnow()
    updated = (
        db.query(DMPayment)
        .filter(DMPayment.id == dm_payment_id, DMPayment.status == "PENDING")
        .update(
            {
                DMPayment.status: "COMPLETED",
                DMPayment.expires_at: now + timedelta(hours=settings.DM_CREDIT_TTL_HOURS),
            },
            synchronize_session=False,
        )
    )
    return updated == 1


def fail_credit(db: Session, dm_payment_id: str) -> bool:
    updated = (
        db.query(DMPayment)
        .filter(DMPayment.id == dm_payment_id, DMPayment.status == "PENDING")
        .update({DMPayment.status: "FAILED"}, synchronize_session=False)
    )
    return updated == 1


def authorize_message(
    db: Session,
    sender_id: str,
    creator: CreatorProfile,
    now: Optional[datetime] = None,
) -> Union[MessageAuthorization, PaymentRequired]:
    """
    Decide whether sender_id may message the creator, spending a credit if
    the creator charges for DMs.
    """
    if creator.dm_price <= 0:
        return MessageAuthorization(is_paid=False, price=0)
    if sender_id == creator.user_id:
        return MessageAuthorization(is_paid=False, price=0)

    credit_id = consume_credit(db, sender_id, creator.id, now)
    if credit_id is not None:
        return MessageAuthorization(is_paid=True, price=creator.dm_price, dm_payment_id=credit_id)

    return PaymentRequired(
        creator_id=creator.id,
        price=creator.dm_price,
        currency=creator.dm_currency,
        payment_url=f"{DM_PAYMENT_PATH}?creator_id={creator.id}",
    )


def send_message(
    db: Session,
    sender_id: str,
    creator: CreatorProfile,
    content: str,
    now: Optional[datetime] = None,
) -> Union[Message, PaymentRequired]:
    """
    Authorize and store one message in a single transaction; if the insert
    fails the credit is not spent.
    """
    try:
        decision = authorize_message(db, sender_id, creator, now)
        if isinstance(decision, PaymentRequired):
            db.rollback()
            return decision

        message = Message(
            sender_id=sender_id,
            creator_id=creator.id,
            content=content,
            is_paid=decision.is_paid,
            price=decision.price,
            dm_payment_id=decision.dm_payment_id,
        )
        db.add(message)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "dm_message_sent",
        creator_id=creator.id,
        sender_id=sender_id,
        is_paid=decision.is_paid,
        dm_payment_id=decision.dm_payment_id,
    )
    return message
