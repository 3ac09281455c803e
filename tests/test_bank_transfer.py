from creatorpay.models import Subscription
from creatorpay.psp.types import PaymentProvider

from .conftest import ADMIN_TOKEN

FAN = {"X-User-Id": "fan-1"}
ADMIN = {"X-Admin-Token": ADMIN_TOKEN, "X-User-Id": "ops-1"}


def _open_transfer(client, subscription):
    r = client.post(
        "/v1/payments/bank_transfer/orders",
        json={"purpose": "subscription", "reference_id": subscription.id},
        headers=FAN,
    )
    assert r.status_code == 201
    return r.json()


def test_order_shows_bank_details(client, subscription):
    order = _open_transfer(client, subscription)

    assert order["order_id"].startswith("bt_")
    assert order["amount"] == 19900
    assert order["redirect_url"] is None
    assert order["bank_details"]["account_number"] == "000111222333"
    assert order["bank_details"]["ifsc_code"] == "TEST0000001"
    assert "reference" in order["instructions"]


def test_verify_requires_admin(client, subscription):
    order = _open_transfer(client, subscription)
    r = client.post(
        f"/v1/admin/bank-transfers/{order['order_id']}/verify",
        json={"transaction_id": "UTR123"},
        headers={**FAN, "X-Admin-Token": "wrong"},
    )
    assert r.status_code == 403


def test_admin_verification_activates(client, fulfillment, session_factory, subscription):
    order = _open_transfer(client, subscription)

    r = client.post(
        f"/v1/admin/bank-transfers/{order['order_id']}/verify",
        json={"transaction_id": "UTR123", "note": "matched statement"},
        headers=ADMIN,
    )
    assert r.status_code == 200
    assert r.json() == {"order_id": order["order_id"], "status": "COMPLETED", "changed": True}

    payment = fulfillment.get_payment(PaymentProvider.BANK_TRANSFER, order["order_id"])
    assert payment.provider_payment_id == "UTR123"
    assert payment.meta["admin_note"] == "matched statement"
    assert payment.meta["bank_details"]["bank_name"] == "Test Bank"
    with session_factory() as db:
        assert db.get(Subscription, subscription.id).status == "ACTIVE"

    # Verifying again is harmless, rejecting is a conflict
    again = client.post(
        f"/v1/admin/bank-transfers/{order['order_id']}/verify",
        json={"transaction_id": "UTR123"},
        headers=ADMIN,
    )
    assert again.status_code == 200
    assert again.json()["changed"] is False

    reject = client.post(f"/v1/admin/bank-transfers/{order['order_id']}/reject", json={}, headers=ADMIN)
    assert reject.status_code == 409


def test_rejection(client, fulfillment, subscription):
    order = _open_transfer(client, subscription)

    r = client.post(
        f"/v1/admin/bank-transfers/{order['order_id']}/reject",
        json={"reason": "no matching deposit"},
        headers=ADMIN,
    )
    assert r.status_code == 200
    payment = fulfillment.get_payment(PaymentProvider.BANK_TRANSFER, order["order_id"])
    assert payment.status == "FAILED"
    assert payment.failure_reason == "no matching deposit"


def test_unknown_reference(client):
    r = client.post("/v1/admin/bank-transfers/bt_missing/verify", json={"transaction_id": "UTR1"}, headers=ADMIN)
    assert r.status_code == 404


def test_user_sees_pending_until_verified(client, subscription):
    order = _open_transfer(client, subscription)
    r = client.post("/v1/payments/bank_transfer/verify", json={"order_id": order["order_id"]}, headers=FAN)
    assert r.status_code == 200
    assert r.json()["status"] == "pending"
    assert r.json()["payment_status"] == "PENDING"
