from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from creatorpay.models import CreatorProfile, DMPayment, Message, utcnow
from creatorpay.services import dm_ledger


def _credit(db, creator, created_offset_minutes=0, allowed=1, used=0, status="COMPLETED", expires_in_hours=24):
    now = utcnow()
    credit = DMPayment(
        user_id="fan-1",
        creator_id=creator.id,
        amount=creator.dm_price * allowed,
        currency=creator.dm_currency,
        status=status,
        messages_allowed=allowed,
        messages_used=used,
        expires_at=now + timedelta(hours=expires_in_hours) if expires_in_hours is not None else None,
        created_at=now + timedelta(minutes=created_offset_minutes),
    )
    db.add(credit)
    db.commit()
    return credit


def test_free_creator_needs_no_credit(db, creator):
    creator.dm_price = 0
    db.commit()

    message = dm_ledger.send_message(db, "fan-1", creator, "hello")
    assert isinstance(message, Message)
    assert not message.is_paid
    assert message.price == 0


def test_creator_messaging_self_is_free(db, creator):
    decision = dm_ledger.authorize_message(db, creator.user_id, creator)
    assert decision == dm_ledger.MessageAuthorization(is_paid=False, price=0)


def test_payment_required_without_credit(db, creator):
    outcome = dm_ledger.send_message(db, "fan-1", creator, "hello")

    assert isinstance(outcome, dm_ledger.PaymentRequired)
    assert outcome.to_dict() == {
        "payment_required": True,
        "creator_id": creator.id,
        "price": 5000,
        "currency": "INR",
        "payment_url": f"/v1/payments/dm?creator_id={creator.id}",
    }
    assert db.query(Message).count() == 0


def test_oldest_credit_is_spent_first(db, creator):
    newer = _credit(db, creator, created_offset_minutes=-1, allowed=3)
    older = _credit(db, creator, created_offset_minutes=-10, allowed=1)

    first = dm_ledger.send_message(db, "fan-1", creator, "one")
    second = dm_ledger.send_message(db, "fan-1", creator, "two")

    assert first.dm_payment_id == older.id
    assert second.dm_payment_id == newer.id
    assert first.is_paid and first.price == 5000
    assert dm_ledger.remaining_messages(db, "fan-1", creator.id) == 2


def test_expired_and_pending_credits_are_skipped(db, creator):
    _credit(db, creator, created_offset_minutes=-30, expires_in_hours=-1)
    _credit(db, creator, created_offset_minutes=-20, status="PENDING")
    _credit(db, creator, created_offset_minutes=-10, allowed=2, used=2)

    assert dm_ledger.find_usable_credit(db, "fan-1", creator.id) is None
    assert dm_ledger.consume_credit(db, "fan-1", creator.id) is None
    assert dm_ledger.remaining_messages(db, "fan-1", creator.id) == 0


def test_credit_without_expiry_is_usable(db, creator):
    credit = _credit(db, creator, expires_in_hours=None)
    assert dm_ledger.consume_credit(db, "fan-1", creator.id) == credit.id


def test_other_senders_credit_is_not_used(db, creator):
    _credit(db, creator)
    assert dm_ledger.consume_credit(db, "fan-2", creator.id) is None


def test_open_credit_prices_bundle(db, creator):
    credit = dm_ledger.open_credit(db, "fan-1", creator, messages_count=3, provider="razorpay")
    assert credit.amount == 15000
    assert credit.status == "PENDING"
    assert credit.messages_allowed == 3

    with pytest.raises(ValueError):
        dm_ledger.open_credit(db, "fan-1", creator, messages_count=0)


def test_open_credit_for_free_creator(db):
    free = CreatorProfile(user_id="free-creator", display_name="Free", dm_price=0)
    db.add(free)
    db.commit()
    with pytest.raises(ValueError):
        dm_ledger.open_credit(db, "fan-1", free)


def test_activate_starts_expiry(db, creator):
    credit = _credit(db, creator, status="PENDING", expires_in_hours=None)
    assert dm_ledger.activate_credit(db, credit.id)
    assert not dm_ledger.activate_credit(db, credit.id)
    db.commit()
    db.refresh(credit)
    assert credit.status == "COMPLETED"
    assert credit.expires_at is not None


def _consume_concurrently(session_factory, creator_id, attempts):
    def attempt(_):
        while True:
            session = session_factory()
            try:
                credit_id = dm_ledger.consume_credit(session, "fan-1", creator_id)
                session.commit()
                return credit_id
            except OperationalError:
                # database is locked; try again with a fresh transaction
                session.rollback()
            finally:
                session.close()

    with ThreadPoolExecutor(max_workers=attempts) as pool:
        return list(pool.map(attempt, range(attempts)))


def test_concurrent_senders_never_overspend(db, session_factory, creator):
    for minutes in range(5):
        _credit(db, creator, created_offset_minutes=-minutes)

    results = _consume_concurrently(session_factory, creator.id, 6)

    spent = [r for r in results if r is not None]
    assert len(spent) == 5
    assert len(set(spent)) == 5

    db.expire_all()
    used = [c.messages_used for c in db.query(DMPayment).all()]
    assert used == [1, 1, 1, 1, 1]


def test_concurrent_senders_share_one_bundle(db, session_factory, creator):
    credit = _credit(db, creator, allowed=4)

    results = _consume_concurrently(session_factory, creator.id, 5)

    assert results.count(credit.id) == 4
    assert results.count(None) == 1
    db.expire_all()
    assert db.get(DMPayment, credit.id).messages_used == 4
