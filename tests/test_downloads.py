from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from creatorpay.models import Purchase
from creatorpay.services.downloads import DownloadTokenError, generate_download_token, verify_download_token

SECRET = "download-secret"


def test_token_round_trip():
    now = datetime.now(timezone.utc).replace(microsecond=0)
    token = generate_download_token("pur_1", "prod_1", "fan-1", expiry_hours=24, secret=SECRET, now=now)
    grant = verify_download_token(token, secret=SECRET)
    assert grant.purchase_id == "pur_1"
    assert grant.product_id == "prod_1"
    assert grant.user_id == "fan-1"
    assert grant.expires_at == now + timedelta(hours=24)


def test_expired_token():
    issued = datetime.now(timezone.utc) - timedelta(hours=2)
    token = generate_download_token("pur_1", "prod_1", "fan-1", expiry_hours=1, secret=SECRET, now=issued)
    with pytest.raises(DownloadTokenError, match="expired"):
        verify_download_token(token, secret=SECRET)


def test_wrong_secret():
    token = generate_download_token("pur_1", "prod_1", "fan-1", secret=SECRET)
    with pytest.raises(DownloadTokenError):
        verify_download_token(token, secret="other")


def test_tampered_user():
    token = generate_download_token("pur_1", "prod_1", "fan-1", secret=SECRET)
    claims = jwt.get_unverified_claims(token)
    claims["sub"] = "fan-2"
    header, _, signature = token.split(".")
    _, forged_payload, _ = jwt.encode(claims, "attacker", algorithm="HS256").split(".")
    with pytest.raises(DownloadTokenError):
        verify_download_token(f"{header}.{forged_payload}.{signature}", secret=SECRET)


def test_other_token_types_are_rejected():
    token = jwt.encode(
        {"sub": "fan-1", "purchase_id": "pur_1", "product_id": "prod_1", "type": "access",
         "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(DownloadTokenError):
        verify_download_token(token, secret=SECRET)


def test_garbage():
    with pytest.raises(DownloadTokenError, match="Invalid"):
        verify_download_token("@@@", secret=SECRET)


def _purchase(db, product, status="COMPLETED", user_id="fan-1"):
    purchase = Purchase(user_id=user_id, product_id=product.id, amount=product.price,
                        currency=product.currency, status=status)
    db.add(purchase)
    db.commit()
    return purchase


def test_redeem_completed_purchase(client, db, product):
    purchase = _purchase(db, product)
    token = generate_download_token(purchase.id, product.id, "fan-1")

    r = client.get(f"/v1/downloads/{token}", follow_redirects=False)

    assert r.status_code == 307
    assert r.headers["location"] == "https://files.example.com/brush-pack.zip"
    assert r.headers["cache-control"] == "no-store, must-revalidate"


def test_redeem_internal_file(client, db, product):
    product.file_url = "products/brush-pack.zip"
    db.commit()
    purchase = _purchase(db, product)
    token = generate_download_token(purchase.id, product.id, "fan-1")

    r = client.get(f"/v1/downloads/{token}")

    assert r.status_code == 200
    assert r.json()["file_url"] == "products/brush-pack.zip"
    assert r.json()["product"]["title"] == "Brush Pack"


def test_redeem_expired_token(client, db, product):
    purchase = _purchase(db, product)
    issued = datetime.now(timezone.utc) - timedelta(hours=48)
    token = generate_download_token(purchase.id, product.id, "fan-1", expiry_hours=24, now=issued)

    r = client.get(f"/v1/downloads/{token}")

    assert r.status_code == 401
    assert "expired" in r.json()["detail"]


def test_redeem_pending_purchase(client, db, product):
    purchase = _purchase(db, product, status="PENDING")
    token = generate_download_token(purchase.id, product.id, "fan-1")

    r = client.get(f"/v1/downloads/{token}")

    assert r.status_code == 404


def test_redeem_for_another_buyer(client, db, product):
    purchase = _purchase(db, product)
    token = generate_download_token(purchase.id, product.id, "fan-2")

    assert client.get(f"/v1/downloads/{token}").status_code == 404


def test_redeem_forged_token(client):
    assert client.get("/v1/downloads/not-a-token").status_code == 401
