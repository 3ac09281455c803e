"""Razorpay PSP Adapter Implementation (orders API + checkout signature)."""
from __future__ import annotations

import base64
import json
from typing import Any, Dict, Mapping, Optional

import httpx

from creatorpay.logging_config import get_logger
from .adapter import PSPAdapter, metadata_str
from .errors import WebhookVerificationError
from .signatures import verify_razorpay_payment, verify_razorpay_webhook
from .types import (
    PaymentConfig,
    PaymentProvider,
    PaymentResult,
    PaymentStatus,
    PaymentVerification,
    WebhookPayload,
)

logger = get_logger(__name__)


class RazorpayAdapter(PSPAdapter):
    """Razorpay payment gateway adapter."""

    provider = PaymentProvider.RAZORPAY

    def __init__(self, api_key: str, api_secret: Optional[str] = None, **kwargs):
        """
        Initialize Razorpay adapter.

        api_key/api_secret are the key id and key secret; the webhook secret
        is a separate dashboard setting passed as webhook_secret.
        """
        super().__init__(api_key, api_secret, **kwargs)
        token = base64.b64encode(f"{api_key}:{api_secret}".encode()).decode()
        self._auth_header = {"Authorization": f"Basic {token}"}
        self._base = kwargs.get("api_base") or "https://api.razorpay.com"
        self.webhook_secret = kwargs.get("webhook_secret")

    async def _post(self, path: str, json: Dict[str, Any]) -> Dict[str, Any]:
        r = await self._request("POST", f"{self._base}{path}", json=json, headers=self._auth_header)
        r.raise_for_status()
        return r.json()

    async def _get(self, path: str) -> Dict[str, Any]:
        r = await self._request("GET", f"{self._base}{path}", headers=self._auth_header)
        r.raise_for_status()
        return r.json()

    async def create_order(self, config: PaymentConfig) -> PaymentResult:
        payload = {
            "amount": int(config.amount),
            "currency": config.currency.upper(),
            "receipt": config.reference_id[:40],
            "payment_capture": 1,
            "notes": {
                **config.metadata,
                "reference_id": config.reference_id,
                "user_id": config.user_id,
            },
        }
        try:
            data = await self._post("/v1/orders", payload)
        except httpx.HTTPStatusError as e:
            error = _error_description(e.response) or "Razorpay order creation failed"
            logger.error(
                "razorpay_order_failed",
                status_code=e.response.status_code,
                error=error,
                reference_id=config.reference_id,
            )
            return PaymentResult.failure(error)
        except httpx.HTTPError as e:
            logger.error("razorpay_order_unreachable", error=str(e), reference_id=config.reference_id)
            return PaymentResult.failure("Razorpay is unreachable")

        logger.info(
            "razorpay_order_created",
            order_id=data.get("id"),
            reference_id=config.reference_id,
            amount=data.get("amount"),
            currency=data.get("currency"),
        )
        return PaymentResult(success=True, order_id=data.get("id"))

    async def verify_payment(
        self,
        order_id: str,
        payment_id: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> PaymentVerification:
        """Check the checkout signature, then confirm the payment with Razorpay."""
        if not payment_id or not verify_razorpay_payment(self.api_secret or "", order_id, payment_id, signature):
            logger.error(
                "razorpay_signature_mismatch",
                order_id=order_id,
                payment_id=payment_id,
                integrity_failure=True,
            )
            return PaymentVerification.failed(order_id, payment_id, error="Invalid payment signature")

        try:
            data = await self._get(f"/v1/payments/{payment_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (400, 404):
                return PaymentVerification.failed(order_id, payment_id, error="Unknown payment")
            logger.error("razorpay_payment_fetch_failed", status_code=e.response.status_code, payment_id=payment_id)
            return PaymentVerification.unreachable(order_id, payment_id, error=_error_description(e.response))
        except httpx.HTTPError as e:
            logger.error("razorpay_payment_unreachable", error=str(e), payment_id=payment_id)
            return PaymentVerification.unreachable(order_id, payment_id, error=str(e))

        if data.get("order_id") != order_id:
            logger.error(
                "razorpay_order_mismatch",
                order_id=order_id,
                payment_order_id=data.get("order_id"),
                payment_id=payment_id,
                integrity_failure=True,
            )
            return PaymentVerification.failed(order_id, payment_id, error="Payment does not belong to this order")

        status = self.normalize_status(data.get("status"))
        return PaymentVerification(
            success=status == PaymentStatus.COMPLETED,
            order_id=order_id,
            payment_id=payment_id,
            amount=int(data.get("amount") or 0),
            status=status,
        )

    def normalize_status(self, provider_status: Optional[str]) -> PaymentStatus:
        # created / authorized / refunded stay pending from our side
        if provider_status == "captured":
            return PaymentStatus.COMPLETED
        if provider_status == "failed":
            return PaymentStatus.FAILED
        return PaymentStatus.PENDING

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookPayload:
        if not self.webhook_secret:
            raise WebhookVerificationError("Razorpay webhook secret not configured")
        signature = headers.get("x-razorpay-signature") or headers.get("X-Razorpay-Signature")
        if not verify_razorpay_webhook(body, signature, self.webhook_secret):
            logger.error("razorpay_webhook_signature_failed", integrity_failure=True)
            raise WebhookVerificationError("Invalid signature")
        try:
            event = json.loads(body.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise WebhookVerificationError(f"Invalid webhook payload: {e}") from e

        etype = event.get("event", "")
        data = event.get("payload") or {}
        event_id = headers.get("x-razorpay-event-id") or headers.get("X-Razorpay-Event-Id")
        if not event_id:
            entity_id = (
                _entity(data, "payment").get("id")
                or _entity(data, "order").get("id")
                or _entity(data, "subscription").get("id")
            )
            event_id = f"razorpay:{etype}:{entity_id}" if entity_id else None

        return WebhookPayload(provider=self.provider, event=etype, data=data, event_id=event_id)

    async def process_webhook(self, payload: WebhookPayload) -> None:
        fulfillment = self._require_fulfillment()
        payment = _entity(payload.data, "payment")
        order = _entity(payload.data, "order")
        subscription = _entity(payload.data, "subscription")

        if payload.event == "payment.captured":
            fulfillment.complete_payment(
                self.provider,
                payment.get("order_id"),
                payment_id=payment.get("id"),
                amount=payment.get("amount"),
            )

        elif payload.event == "order.paid":
            fulfillment.complete_payment(
                self.provider,
                order.get("id") or payment.get("order_id"),
                payment_id=payment.get("id"),
                amount=order.get("amount_paid") or payment.get("amount"),
            )

        elif payload.event == "payment.failed":
            fulfillment.fail_payment(
                self.provider,
                payment.get("order_id"),
                payment_id=payment.get("id"),
                reason=payment.get("error_description") or "payment failed",
            )

        elif payload.event == "subscription.charged":
            fulfillment.renew_subscription(
                provider_subscription_id=subscription.get("id"),
                subscription_id=metadata_str(subscription.get("notes"), "reference_id"),
            )

        elif payload.event == "subscription.cancelled":
            fulfillment.cancel_subscription(
                provider_subscription_id=subscription.get("id"),
                subscription_id=metadata_str(subscription.get("notes"), "reference_id"),
            )

        elif payload.event == "payment.authorized":
            # Auto-capture is on; payment.captured follows
            logger.info("razorpay_payment_authorized", payment_id=payment.get("id"), order_id=payment.get("order_id"))

        else:
            self.ignore_event(payload)


def _entity(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Razorpay nests entities as payload.<name>.entity."""
    wrapper = data.get(name) or {}
    return wrapper.get("entity") or {}


def _error_description(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    error = body.get("error") if isinstance(body, dict) else None
    return error.get("description") if isinstance(error, dict) else None
