"""Stripe PSP Adapter Implementation (hosted checkout)."""
import json
from typing import Any, Dict, Mapping, Optional

import anyio
import stripe

from creatorpay.logging_config import get_logger
from .adapter import PSPAdapter, metadata_str
from .errors import WebhookVerificationError
from .types import (
    PaymentConfig,
    PaymentProvider,
    PaymentResult,
    PaymentStatus,
    PaymentVerification,
    WebhookPayload,
)

logger = get_logger(__name__)


class StripeAdapter(PSPAdapter):
    """Stripe payment gateway adapter."""

    provider = PaymentProvider.STRIPE

    def __init__(self, api_key: str, api_secret: Optional[str] = None, **kwargs):
        """Initialize Stripe adapter. api_secret is the webhook signing secret."""
        super().__init__(api_key, api_secret, **kwargs)
        self.webhook_secret = api_secret
        self.success_url = kwargs.get("success_url", "http://localhost:3000/payment/success?session_id={CHECKOUT_SESSION_ID}")
        self.cancel_url = kwargs.get("cancel_url", "http://localhost:3000/payment/cancel")

    async def _call(self, fn, **params):
        # The SDK is synchronous; keep it off the event loop
        return await anyio.to_thread.run_sync(lambda: fn(api_key=self.api_key, **params))

    async def create_order(self, config: PaymentConfig) -> PaymentResult:
        """Create Stripe checkout session."""
        recurring = config.purpose == "subscription"
        price_data: Dict[str, Any] = {
            "currency": config.currency.lower(),
            "unit_amount": config.amount,
            "product_data": {
                "name": config.metadata.get("product_name", "Creator Subscription" if recurring else "Creator Purchase"),
            },
        }
        if recurring:
            price_data["recurring"] = {"interval": "month"}

        metadata = {
            **config.metadata,
            "reference_id": config.reference_id,
            "user_id": config.user_id,
        }
        params: Dict[str, Any] = {
            "payment_method_types": ["card"],
            "line_items": [{"price_data": price_data, "quantity": 1}],
            "mode": "subscription" if recurring else "payment",
            "success_url": self.success_url,
            "cancel_url": self.cancel_url,
            "metadata": metadata,
        }
        if recurring:
            params["subscription_data"] = {"metadata": metadata}

        try:
            session = await self._call(stripe.checkout.Session.create, **params)
        except stripe.StripeError as e:
            logger.error(
                "stripe_checkout_session_failed",
                error=str(e),
                reference_id=config.reference_id,
                error_type=type(e).__name__,
            )
            return PaymentResult.failure(getattr(e, "user_message", None) or str(e) or "Stripe payment failed")

        logger.info(
            "stripe_checkout_session_created",
            session_id=session.id,
            reference_id=config.reference_id,
            amount=config.amount,
            currency=config.currency,
        )
        return PaymentResult(success=True, order_id=session.id, redirect_url=session.url)

    async def verify_payment(
        self,
        order_id: str,
        payment_id: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> PaymentVerification:
        """Re-fetch the checkout session and read its payment status."""
        try:
            session = await self._call(stripe.checkout.Session.retrieve, id=order_id)
        except stripe.InvalidRequestError as e:
            logger.warning("stripe_session_not_found", session_id=order_id, error=str(e))
            return PaymentVerification.failed(order_id, payment_id, error="Unknown checkout session")
        except stripe.StripeError as e:
            logger.error("stripe_session_retrieve_failed", session_id=order_id, error=str(e), error_type=type(e).__name__)
            return PaymentVerification.unreachable(order_id, payment_id, error=str(e))

        status = self.normalize_session(
            getattr(session, "status", None),
            getattr(session, "payment_status", None),
        )
        intent = getattr(session, "payment_intent", None) or getattr(session, "subscription", None) or ""
        if not isinstance(intent, str):
            intent = intent.id
        return PaymentVerification(
            success=status == PaymentStatus.COMPLETED,
            order_id=session.id,
            payment_id=intent,
            amount=getattr(session, "amount_total", None) or 0,
            status=status,
        )

    def normalize_session(self, session_status: Optional[str], payment_status: Optional[str]) -> PaymentStatus:
        # payment_status can be 'paid', 'unpaid', 'no_payment_required'
        if payment_status == "paid":
            return PaymentStatus.COMPLETED
        if session_status == "expired":
            return PaymentStatus.FAILED
        return PaymentStatus.PENDING

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookPayload:
        """Verify Stripe webhook signature."""
        if not self.webhook_secret:
            raise WebhookVerificationError("Stripe webhook secret not configured")
        signature = headers.get("stripe-signature") or headers.get("Stripe-Signature")
        if not signature:
            raise WebhookVerificationError("Missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(body, signature, self.webhook_secret)
        except ValueError as e:
            raise WebhookVerificationError(f"Invalid webhook payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            logger.error("stripe_webhook_signature_failed", error=str(e), integrity_failure=True)
            raise WebhookVerificationError(f"Invalid webhook signature: {e}") from e

        # Signature covers the raw body; work from plain JSON rather than StripeObjects
        event = json.loads(body)
        return WebhookPayload(
            provider=self.provider,
            event=event["type"],
            data=event["data"]["object"],
            event_id=event["id"],
        )

    async def process_webhook(self, payload: WebhookPayload) -> None:
        fulfillment = self._require_fulfillment()
        obj = payload.data
        metadata = obj.get("metadata") or {}

        if payload.event == "checkout.session.completed":
            if obj.get("payment_status") != "paid":
                # Async payment methods settle later via another event
                logger.info("stripe_checkout_awaiting_payment", session_id=obj.get("id"))
                return
            fulfillment.complete_payment(
                self.provider,
                obj.get("id"),
                payment_id=obj.get("payment_intent") or obj.get("subscription"),
                amount=obj.get("amount_total"),
                provider_subscription_id=obj.get("subscription"),
            )

        elif payload.event == "invoice.payment_succeeded":
            if obj.get("billing_reason") == "subscription_create":
                # First invoice is covered by checkout.session.completed
                return
            fulfillment.renew_subscription(
                provider_subscription_id=obj.get("subscription"),
                subscription_id=metadata_str(self._subscription_metadata(obj), "reference_id"),
            )

        elif payload.event == "invoice.payment_failed":
            fulfillment.mark_subscription_past_due(
                provider_subscription_id=obj.get("subscription"),
                subscription_id=metadata_str(self._subscription_metadata(obj), "reference_id"),
            )

        elif payload.event == "customer.subscription.deleted":
            fulfillment.cancel_subscription(
                provider_subscription_id=obj.get("id"),
                subscription_id=metadata_str(metadata, "reference_id"),
            )

        else:
            self.ignore_event(payload)

    @staticmethod
    def _subscription_metadata(invoice: Dict[str, Any]) -> Dict[str, Any]:
        details = invoice.get("subscription_details") or {}
        return details.get("metadata") or {}
