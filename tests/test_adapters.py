import base64
import hashlib
import hmac
import json
import time
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import pytest
import stripe

from creatorpay.psp.errors import WebhookVerificationError
from creatorpay.psp.esewa_adapter import EsewaAdapter, format_rupees, parse_rupees
from creatorpay.psp.khalti_adapter import KhaltiAdapter
from creatorpay.psp.razorpay_adapter import RazorpayAdapter
from creatorpay.psp.signatures import esewa_signature, razorpay_payment_signature
from creatorpay.psp.stripe_adapter import StripeAdapter
from creatorpay.psp.types import PaymentConfig, PaymentProvider, PaymentStatus

ESEWA_SECRET = "8gBm/:&EnhH.1/q"


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _config(provider, amount=19900, currency="INR", purpose="subscription"):
    return PaymentConfig(
        provider=provider,
        amount=amount,
        currency=currency,
        reference_id="sub_123",
        user_id="fan-1",
        metadata={"type": purpose},
    )


# ---------------------------------------------------------
# Razorpay
# ---------------------------------------------------------

def _razorpay(handler):
    return RazorpayAdapter("rzp_key", "rzp_secret", webhook_secret="rzp_whsec", http_client=_client(handler))


async def test_razorpay_create_order():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "order_abc", "amount": 19900, "currency": "INR"})

    result = await _razorpay(handler).create_order(_config(PaymentProvider.RAZORPAY))

    assert result.success
    assert result.order_id == "order_abc"
    assert seen["body"]["amount"] == 19900
    assert seen["body"]["payment_capture"] == 1
    assert seen["body"]["notes"]["reference_id"] == "sub_123"
    assert seen["auth"] == "Basic " + base64.b64encode(b"rzp_key:rzp_secret").decode()


async def test_razorpay_create_order_rejected():
    def handler(request):
        return httpx.Response(400, json={"error": {"description": "Amount exceeds maximum"}})

    result = await _razorpay(handler).create_order(_config(PaymentProvider.RAZORPAY))
    assert not result.success
    assert result.error == "Amount exceeds maximum"


async def test_razorpay_create_order_unreachable():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    result = await _razorpay(handler).create_order(_config(PaymentProvider.RAZORPAY))
    assert not result.success
    assert result.error == "Razorpay is unreachable"


async def test_razorpay_verify_captured():
    def handler(request):
        assert request.url.path == "/v1/payments/pay_1"
        return httpx.Response(200, json={"id": "pay_1", "order_id": "order_1", "status": "captured", "amount": 19900})

    signature = razorpay_payment_signature("rzp_secret", "order_1", "pay_1")
    verification = await _razorpay(handler).verify_payment("order_1", "pay_1", signature)

    assert verification.success
    assert verification.status == PaymentStatus.COMPLETED
    assert verification.amount == 19900


async def test_razorpay_verify_bad_signature_never_calls_api():
    handler = MagicMock()
    verification = await _razorpay(handler).verify_payment("order_1", "pay_1", "deadbeef")

    assert not verification.success
    assert verification.status == PaymentStatus.FAILED
    assert verification.error == "Invalid payment signature"
    handler.assert_not_called()


async def test_razorpay_verify_payment_for_another_order():
    def handler(request):
        return httpx.Response(200, json={"id": "pay_1", "order_id": "order_other", "status": "captured", "amount": 19900})

    signature = razorpay_payment_signature("rzp_secret", "order_1", "pay_1")
    verification = await _razorpay(handler).verify_payment("order_1", "pay_1", signature)
    assert verification.status == PaymentStatus.FAILED
    assert verification.error


async def test_razorpay_verify_server_error_stays_pending():
    def handler(request):
        return httpx.Response(503, json={})

    signature = razorpay_payment_signature("rzp_secret", "order_1", "pay_1")
    verification = await _razorpay(handler).verify_payment("order_1", "pay_1", signature)
    assert verification.status == PaymentStatus.PENDING
    assert not verification.success


def test_razorpay_webhook_event_id_fallback():
    adapter = _razorpay(MagicMock())
    body = json.dumps({
        "event": "payment.captured",
        "payload": {"payment": {"entity": {"id": "pay_9", "order_id": "order_9", "amount": 100}}},
    }).encode()
    signature = hmac.new(b"rzp_whsec", body, hashlib.sha256).hexdigest()

    payload = adapter.verify_webhook(body, {"x-razorpay-signature": signature})
    assert payload.event == "payment.captured"
    assert payload.event_id == "razorpay:payment.captured:pay_9"

    payload = adapter.verify_webhook(body, {"x-razorpay-signature": signature, "x-razorpay-event-id": "evt_1"})
    assert payload.event_id == "evt_1"


def test_razorpay_webhook_bad_signature():
    with pytest.raises(WebhookVerificationError):
        _razorpay(MagicMock()).verify_webhook(b"{}", {"x-razorpay-signature": "nope"})


# ---------------------------------------------------------
# Khalti
# ---------------------------------------------------------

def _khalti(handler):
    return KhaltiAdapter("khalti_key", http_client=_client(handler))


async def test_khalti_initiate():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"pidx": "pidx_1", "payment_url": "https://pay.khalti.com/?pidx=pidx_1"})

    result = await _khalti(handler).create_order(_config(PaymentProvider.KHALTI, 100000, "NPR", "product"))

    assert result.success
    assert result.order_id == "pidx_1"
    assert result.redirect_url.endswith("pidx_1")
    assert seen["auth"] == "Key khalti_key"
    assert seen["body"]["amount"] == 100000
    assert seen["body"]["purchase_order_name"] == "Digital Product"


@pytest.mark.parametrize(
    "khalti_status, expected",
    [
        ("Completed", PaymentStatus.COMPLETED),
        ("Pending", PaymentStatus.PENDING),
        ("Initiated", PaymentStatus.PENDING),
        ("Expired", PaymentStatus.FAILED),
        ("User canceled", PaymentStatus.FAILED),
    ],
)
async def test_khalti_lookup_status(khalti_status, expected):
    def handler(request):
        return httpx.Response(200, json={"pidx": "pidx_1", "status": khalti_status, "total_amount": 100000, "transaction_id": "tx_1"})

    verification = await _khalti(handler).verify_payment("pidx_1")
    assert verification.status == expected
    assert verification.amount == 100000


async def test_khalti_lookup_unreachable():
    def handler(request):
        return httpx.Response(502)

    verification = await _khalti(handler).verify_payment("pidx_1")
    assert verification.status == PaymentStatus.PENDING
    assert verification.error


def test_khalti_webhook_requires_pidx():
    adapter = _khalti(MagicMock())
    with pytest.raises(WebhookVerificationError):
        adapter.verify_webhook(b'{"status": "Completed"}', {})
    payload = adapter.verify_webhook(b'{"pidx": "pidx_1", "status": "Completed"}', {})
    assert payload.data == {"pidx": "pidx_1"}
    assert payload.event_id is None


# ---------------------------------------------------------
# eSewa
# ---------------------------------------------------------

def _esewa(handler=None):
    return EsewaAdapter(
        "EPAYTEST",
        ESEWA_SECRET,
        public_base_url="https://creatorpay.example.com",
        http_client=_client(handler or MagicMock()),
    )


def _esewa_callback(transaction_uuid, **overrides):
    data = {
        "transaction_code": "000AWEO",
        "status": "COMPLETE",
        "total_amount": "199.0",
        "transaction_uuid": transaction_uuid,
        "product_code": "EPAYTEST",
        "signed_field_names": "transaction_code,status,total_amount,transaction_uuid,product_code,signed_field_names",
    }
    data.update(overrides)
    data["signature"] = esewa_signature(ESEWA_SECRET, data, data["signed_field_names"].split(","))
    return base64.b64encode(json.dumps(data).encode()).decode()


def test_rupee_formatting():
    assert format_rupees(19900) == "199"
    assert format_rupees(19950) == "199.50"
    assert parse_rupees("1,000.0") == 100000
    assert parse_rupees("garbage") == 0


async def test_esewa_form():
    result = await _esewa().create_order(_config(PaymentProvider.ESEWA, 19900, "NPR"))

    assert result.success
    form = result.form_data
    assert form["total_amount"] == "199"
    assert form["transaction_uuid"] == result.order_id
    assert form["success_url"] == "https://creatorpay.example.com/payment/esewa/success"
    assert form["signature"] == esewa_signature(ESEWA_SECRET, form)


async def test_esewa_verify_callback():
    verification = await _esewa().verify_payment("uuid-1", signature=_esewa_callback("uuid-1"))
    assert verification.success
    assert verification.amount == 19900
    assert verification.payment_id == "000AWEO"


async def test_esewa_verify_callback_for_other_transaction():
    verification = await _esewa().verify_payment("uuid-1", signature=_esewa_callback("uuid-2"))
    assert verification.status == PaymentStatus.FAILED
    assert verification.error


async def test_esewa_verify_forged_callback():
    encoded = _esewa_callback("uuid-1")
    data = json.loads(base64.b64decode(encoded))
    data["total_amount"] = "1.0"
    forged = base64.b64encode(json.dumps(data).encode()).decode()

    verification = await _esewa().verify_payment("uuid-1", signature=forged)
    assert verification.status == PaymentStatus.FAILED
    assert verification.error == "Invalid callback signature"


async def test_esewa_status_check():
    def handler(request):
        assert request.url.params["transaction_uuid"] == "uuid-1"
        assert request.url.params["total_amount"] == "199"
        return httpx.Response(200, json={"status": "COMPLETE", "ref_id": "REF1", "total_amount": 199.0})

    verification = await _esewa(handler).check_status("uuid-1", 19900)
    assert verification.status == PaymentStatus.COMPLETED
    assert verification.amount == 19900


# ---------------------------------------------------------
# Stripe
# ---------------------------------------------------------

def _stripe():
    return StripeAdapter("sk_test_123", "whsec_test", success_url="https://x/ok", cancel_url="https://x/cancel")


async def test_stripe_checkout_session_for_subscription():
    session = SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.com/c/pay/cs_test_1")
    with patch.object(stripe.checkout.Session, "create", return_value=session) as create:
        result = await _stripe().create_order(_config(PaymentProvider.STRIPE, 999, "USD"))

    assert result.success
    assert result.order_id == "cs_test_1"
    kwargs = create.call_args.kwargs
    assert kwargs["api_key"] == "sk_test_123"
    assert kwargs["mode"] == "subscription"
    assert kwargs["line_items"][0]["price_data"]["recurring"] == {"interval": "month"}
    assert kwargs["subscription_data"]["metadata"]["reference_id"] == "sub_123"


async def test_stripe_checkout_error():
    with patch.object(stripe.checkout.Session, "create", side_effect=stripe.APIConnectionError("down")):
        result = await _stripe().create_order(_config(PaymentProvider.STRIPE, 999, "USD", "product"))
    assert not result.success


async def test_stripe_verify_paid_session():
    session = SimpleNamespace(
        id="cs_test_1", status="complete", payment_status="paid",
        payment_intent="pi_1", subscription=None, amount_total=999,
    )
    with patch.object(stripe.checkout.Session, "retrieve", return_value=session):
        verification = await _stripe().verify_payment("cs_test_1")
    assert verification.success
    assert verification.payment_id == "pi_1"
    assert verification.amount == 999


async def test_stripe_verify_unreachable():
    with patch.object(stripe.checkout.Session, "retrieve", side_effect=stripe.APIConnectionError("down")):
        verification = await _stripe().verify_payment("cs_test_1")
    assert verification.status == PaymentStatus.PENDING


def _stripe_signature(body: bytes, secret: str = "whsec_test") -> str:
    timestamp = int(time.time())
    signed = hmac.new(secret.encode(), f"{timestamp}.".encode() + body, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signed}"


def test_stripe_webhook_signature():
    body = json.dumps({
        "id": "evt_1",
        "object": "event",
        "type": "checkout.session.completed",
        "data": {"object": {"id": "cs_test_1", "object": "checkout.session", "payment_status": "paid"}},
    }).encode()

    payload = _stripe().verify_webhook(body, {"stripe-signature": _stripe_signature(body)})
    assert payload.event_id == "evt_1"
    assert payload.data["id"] == "cs_test_1"

    with pytest.raises(WebhookVerificationError):
        _stripe().verify_webhook(body, {"stripe-signature": _stripe_signature(body, "whsec_other")})
