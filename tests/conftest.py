import itertools
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from creatorpay.config.settings import Settings
from creatorpay.db import Base, get_db, make_engine, make_session_factory
from creatorpay.main import create_app
from creatorpay.models import CreatorProfile, Product, Subscription
from creatorpay.psp.dispatcher import PSPDispatcher
from creatorpay.services.fulfillment import PaymentFulfillment

RAZORPAY_KEY_SECRET = "rzp_secret"
RAZORPAY_WEBHOOK_SECRET = "rzp_whsec"
STRIPE_WEBHOOK_SECRET = "whsec_test"
ESEWA_SECRET_KEY = "8gBm/:&EnhH.1/q"
ADMIN_TOKEN = "admin-token"


class FakeProviders:
    """
    In-memory stand-in for the Razorpay, Khalti and eSewa HTTP APIs.
    Tests register payments/lookups in the dicts below.
    """

    def __init__(self):
        self.counter = itertools.count(1)
        self.razorpay_payments = {}
        self.khalti_lookups = {}
        self.esewa_statuses = {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path

        if host == "api.razorpay.com":
            if request.method == "POST" and path == "/v1/orders":
                body = json.loads(request.content)
                return httpx.Response(200, json={
                    "id": f"order_{next(self.counter)}",
                    "amount": body["amount"],
                    "currency": body["currency"],
                    "status": "created",
                })
            if request.method == "GET" and path.startswith("/v1/payments/"):
                payment = self.razorpay_payments.get(path.rsplit("/", 1)[-1])
                if payment is None:
                    return httpx.Response(404, json={"error": {"description": "The id provided does not exist"}})
                return httpx.Response(200, json=payment)

        if host == "a.khalti.com":
            body = json.loads(request.content)
            if path == "/api/v2/epayment/initiate/":
                pidx = f"pidx_{next(self.counter)}"
                return httpx.Response(200, json={
                    "pidx": pidx,
                    "payment_url": f"https://test-pay.khalti.com/?pidx={pidx}",
                })
            if path == "/api/v2/epayment/lookup/":
                lookup = self.khalti_lookups.get(body.get("pidx"))
                if lookup is None:
                    return httpx.Response(404, json={"detail": "Not found."})
                return httpx.Response(200, json=lookup)

        if host == "rc.esewa.com.np":
            status = self.esewa_statuses.get(request.url.params.get("transaction_uuid"))
            if status is None:
                return httpx.Response(200, json={"status": "NOT_FOUND"})
            return httpx.Response(200, json=status)

        return httpx.Response(500, json={"error": "unexpected request"})


@pytest.fixture
def test_settings():
    return Settings(
        ENVIRONMENT="test",
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_WEBHOOK_SECRET=STRIPE_WEBHOOK_SECRET,
        RAZORPAY_KEY_ID="rzp_test_key",
        RAZORPAY_KEY_SECRET=RAZORPAY_KEY_SECRET,
        RAZORPAY_WEBHOOK_SECRET=RAZORPAY_WEBHOOK_SECRET,
        ESEWA_SECRET_KEY=ESEWA_SECRET_KEY,
        KHALTI_SECRET_KEY="khalti_test_key",
        BANK_NAME="Test Bank",
        BANK_ACCOUNT_NAME="CreatorPay Test",
        BANK_ACCOUNT_NUMBER="000111222333",
        BANK_IFSC_CODE="TEST0000001",
    )


@pytest.fixture
def engine(tmp_path):
    # File database so that threads get their own connections
    engine = make_engine(f"sqlite:///{tmp_path / 'creatorpay_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fulfillment(session_factory):
    return PaymentFulfillment(session_factory)


@pytest.fixture
def fake_providers():
    return FakeProviders()


@pytest.fixture
def http_client(fake_providers):
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_providers))


@pytest.fixture
def dispatcher(test_settings, fulfillment, http_client):
    return PSPDispatcher(test_settings, fulfillment, http_client=http_client)


@pytest.fixture
def client(dispatcher, session_factory, monkeypatch):
    from creatorpay.config import settings

    monkeypatch.setattr(settings, "ADMIN_API_TOKEN", ADMIN_TOKEN)

    app = create_app(dispatcher)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def creator(db):
    profile = CreatorProfile(
        user_id="creator-user",
        display_name="Asha Creates",
        dm_price=5000,
        dm_currency="INR",
        commission_tier="STANDARD",
        country="IN",
    )
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture
def npr_creator(db):
    profile = CreatorProfile(
        user_id="creator-np",
        display_name="Kathmandu Sketches",
        dm_price=10000,
        dm_currency="NPR",
        commission_tier="PROMOTIONAL",
        country="NP",
    )
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture
def subscription(db, creator):
    sub = Subscription(
        user_id="fan-1",
        creator_id=creator.id,
        amount=19900,
        currency="INR",
        status="PENDING",
    )
    db.add(sub)
    db.commit()
    return sub


@pytest.fixture
def product(db, creator):
    item = Product(
        creator_id=creator.id,
        title="Brush Pack",
        price=49900,
        currency="INR",
        file_url="https://files.example.com/brush-pack.zip",
    )
    db.add(item)
    db.commit()
    return item
