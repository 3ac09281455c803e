"""Khalti PSP Adapter Implementation (ePayment initiate/lookup)."""
from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

import httpx

from creatorpay.logging_config import get_logger
from .adapter import PSPAdapter
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

PURCHASE_NAMES = {
    "subscription": "Creator Subscription",
    "product": "Digital Product",
    "dm": "Message Credits",
}


class KhaltiAdapter(PSPAdapter):
    """Khalti payment gateway adapter. api_key is the live/test secret key."""

    provider = PaymentProvider.KHALTI

    def __init__(self, api_key: str, api_secret: Optional[str] = None, **kwargs):
        super().__init__(api_key, api_secret, **kwargs)
        self._auth_header = {"Authorization": f"Key {api_key}"}
        self._base = (kwargs.get("api_base") or "https://a.khalti.com/api/v2").rstrip("/")
        base_url = (kwargs.get("public_base_url") or "http://localhost:3000").rstrip("/")
        self.website_url = base_url
        self.return_url = kwargs.get("return_url") or f"{base_url}/payment/khalti/callback"

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        r = await self._request("POST", f"{self._base}{path}", json=body, headers=self._auth_header)
        r.raise_for_status()
        return r.json()

    async def create_order(self, config: PaymentConfig) -> PaymentResult:
        body = {
            "return_url": self.return_url,
            "website_url": self.website_url,
            # Khalti expects paisa
            "amount": int(config.amount),
            "purchase_order_id": config.reference_id,
            "purchase_order_name": config.metadata.get("product_name") or PURCHASE_NAMES.get(config.purpose, "Creator Payment"),
            "customer_info": {
                "name": config.metadata.get("user_name") or "Customer",
                "email": config.metadata.get("user_email") or "",
            },
        }
        try:
            data = await self._post("/epayment/initiate/", body)
        except httpx.HTTPStatusError as e:
            error = _error_detail(e.response) or "Khalti initiation failed"
            logger.error(
                "khalti_initiate_failed",
                status_code=e.response.status_code,
                error=error,
                reference_id=config.reference_id,
            )
            return PaymentResult.failure(error)
        except httpx.HTTPError as e:
            logger.error("khalti_initiate_unreachable", error=str(e), reference_id=config.reference_id)
            return PaymentResult.failure("Khalti is unreachable")

        logger.info("khalti_payment_initiated", pidx=data.get("pidx"), reference_id=config.reference_id)
        return PaymentResult(success=True, order_id=data.get("pidx"), redirect_url=data.get("payment_url"))

    async def verify_payment(
        self,
        order_id: str,
        payment_id: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> PaymentVerification:
        """Look the pidx up with Khalti; the lookup is the only trusted source."""
        try:
            data = await self._post("/epayment/lookup/", {"pidx": order_id})
        except httpx.HTTPStatusError as e:
            if e.response.status_code < 500:
                logger.warning("khalti_lookup_rejected", pidx=order_id, status_code=e.response.status_code)
                return PaymentVerification.failed(order_id, payment_id, error=_error_detail(e.response) or "Unknown pidx")
            return PaymentVerification.unreachable(order_id, payment_id, error=f"Khalti returned {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error("khalti_lookup_unreachable", pidx=order_id, error=str(e))
            return PaymentVerification.unreachable(order_id, payment_id, error=str(e))

        status = self.normalize_status(data.get("status"))
        return PaymentVerification(
            success=status == PaymentStatus.COMPLETED,
            order_id=order_id,
            payment_id=str(data.get("transaction_id") or order_id),
            amount=int(data.get("total_amount") or 0),
            status=status,
        )

    def normalize_status(self, provider_status: Optional[str]) -> PaymentStatus:
        if provider_status == "Completed":
            return PaymentStatus.COMPLETED
        if provider_status in ("Pending", "Initiated"):
            return PaymentStatus.PENDING
        # Expired, User canceled, Refunded, Partially Refunded
        return PaymentStatus.FAILED

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookPayload:
        """
        Khalti callbacks are unsigned. Only the pidx is taken from the request;
        process_webhook looks it up before anything is granted.
        """
        try:
            data = json.loads(body.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise WebhookVerificationError(f"Invalid webhook payload: {e}") from e
        pidx = data.get("pidx") if isinstance(data, dict) else None
        if not pidx:
            raise WebhookVerificationError("Missing pidx")
        return WebhookPayload(provider=self.provider, event="payment.lookup", data={"pidx": str(pidx)})

    async def process_webhook(self, payload: WebhookPayload) -> None:
        fulfillment = self._require_fulfillment()
        pidx = payload.data.get("pidx")
        if not pidx:
            self.ignore_event(payload)
            return

        verification = await self.verify_payment(pidx)
        if verification.status == PaymentStatus.COMPLETED:
            fulfillment.complete_payment(
                self.provider,
                pidx,
                payment_id=verification.payment_id,
                amount=verification.amount,
            )
        elif verification.status == PaymentStatus.FAILED and not verification.error:
            fulfillment.fail_payment(self.provider, pidx, reason="Khalti reported payment not completed")
        else:
            logger.info("khalti_payment_still_pending", pidx=pidx, error=verification.error)


def _error_detail(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    return body.get("detail") or body.get("error_key")
