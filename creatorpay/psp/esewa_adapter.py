"""
eSewa PSP Adapter Implementation.

eSewa (ePay v2) is a form-POST wallet: the browser submits a signed form to
eSewa and comes back with a base64 JSON callback that carries its own
signature. Amounts travel as rupee strings, never as floats on our side.
"""
from __future__ import annotations

import secrets
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from creatorpay.logging_config import get_logger
from .adapter import PSPAdapter
from .signatures import (
    ESEWA_REQUEST_FIELDS,
    decode_esewa_callback,
    esewa_signature,
    verify_esewa_callback,
)
from .types import (
    PaymentConfig,
    PaymentProvider,
    PaymentResult,
    PaymentStatus,
    PaymentVerification,
    WebhookPayload,
)

logger = get_logger(__name__)


def format_rupees(amount: int) -> str:
    """19900 -> "199", 19950 -> "199.50"."""
    rupees, paisa = divmod(int(amount), 100)
    return str(rupees) if paisa == 0 else f"{rupees}.{paisa:02d}"


def parse_rupees(value: Any) -> int:
    """Parse an eSewa amount string ("1,000.0") back to paisa."""
    try:
        return int((Decimal(str(value).replace(",", "")) * 100).to_integral_value())
    except (InvalidOperation, ValueError):
        return 0


class EsewaAdapter(PSPAdapter):
    """eSewa payment gateway adapter. api_key is the merchant/product code."""

    provider = PaymentProvider.ESEWA

    def __init__(self, api_key: str, api_secret: Optional[str] = None, **kwargs):
        super().__init__(api_key, api_secret, **kwargs)
        self.merchant_id = api_key
        self.form_url = kwargs.get("form_url") or "https://rc-epay.esewa.com.np/api/epay/main/v2/form"
        self.status_url = kwargs.get("status_url") or "https://rc.esewa.com.np/api/epay/transaction/status/"
        base_url = (kwargs.get("public_base_url") or "http://localhost:3000").rstrip("/")
        self.success_url = kwargs.get("success_url") or f"{base_url}/payment/esewa/success"
        self.failure_url = kwargs.get("failure_url") or f"{base_url}/payment/esewa/failure"

    @staticmethod
    def new_transaction_uuid() -> str:
        return f"{int(time.time() * 1000)}-{secrets.token_hex(3)}"

    async def create_order(self, config: PaymentConfig) -> PaymentResult:
        """Build the signed form the client POSTs to eSewa."""
        if config.amount <= 0:
            return PaymentResult.failure("Amount must be positive")

        transaction_uuid = self.new_transaction_uuid()
        total_amount = format_rupees(config.amount)
        fields = {
            "amount": total_amount,
            "tax_amount": "0",
            "total_amount": total_amount,
            "transaction_uuid": transaction_uuid,
            "product_code": self.merchant_id,
            "product_service_charge": "0",
            "product_delivery_charge": "0",
            "success_url": self.success_url,
            "failure_url": self.failure_url,
            "signed_field_names": ",".join(ESEWA_REQUEST_FIELDS),
        }
        fields["signature"] = esewa_signature(self.api_secret or "", fields)

        logger.info(
            "esewa_form_created",
            transaction_uuid=transaction_uuid,
            reference_id=config.reference_id,
            total_amount=total_amount,
        )
        return PaymentResult(
            success=True,
            order_id=transaction_uuid,
            redirect_url=self.form_url,
            form_data=fields,
        )

    async def verify_payment(
        self,
        order_id: str,
        payment_id: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> PaymentVerification:
        """
        Verify the callback eSewa appended to the success redirect.

        Args:
            order_id: transaction_uuid we issued
            signature: the raw base64 `data` query value from the redirect
        """
        if not signature:
            return PaymentVerification.failed(order_id, payment_id, error="Missing callback data")

        try:
            decoded = decode_esewa_callback(signature)
        except ValueError as e:
            logger.error("esewa_callback_malformed", transaction_uuid=order_id, error=str(e), integrity_failure=True)
            return PaymentVerification.failed(order_id, payment_id, error="Malformed callback data")

        transaction_code = str(decoded.get("transaction_code") or "")
        if not verify_esewa_callback(self.api_secret or "", decoded):
            logger.error(
                "esewa_signature_mismatch",
                transaction_uuid=order_id,
                transaction_code=transaction_code,
                integrity_failure=True,
            )
            return PaymentVerification.failed(order_id, transaction_code, error="Invalid callback signature")

        if decoded.get("transaction_uuid") != order_id:
            logger.error(
                "esewa_transaction_mismatch",
                transaction_uuid=order_id,
                callback_uuid=decoded.get("transaction_uuid"),
                integrity_failure=True,
            )
            return PaymentVerification.failed(order_id, transaction_code, error="Callback is for another transaction")

        if decoded.get("product_code") not in (None, self.merchant_id):
            logger.error("esewa_merchant_mismatch", transaction_uuid=order_id, integrity_failure=True)
            return PaymentVerification.failed(order_id, transaction_code, error="Callback is for another merchant")

        status = self.normalize_status(decoded.get("status"))
        return PaymentVerification(
            success=status == PaymentStatus.COMPLETED,
            order_id=order_id,
            payment_id=transaction_code,
            amount=parse_rupees(decoded.get("total_amount")),
            status=status,
        )

    async def check_status(self, order_id: str, amount: int) -> PaymentVerification:
        """
        Ask eSewa for the transaction state directly.
        Used when the success redirect never reached us.
        """
        params = {
            "product_code": self.merchant_id,
            "total_amount": format_rupees(amount),
            "transaction_uuid": order_id,
        }
        try:
            r = await self._request("GET", self.status_url, params=params)
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("esewa_status_check_failed", transaction_uuid=order_id, error=str(e))
            return PaymentVerification.unreachable(order_id, error=str(e))

        status = self.normalize_status(data.get("status"))
        return PaymentVerification(
            success=status == PaymentStatus.COMPLETED,
            order_id=order_id,
            payment_id=str(data.get("ref_id") or ""),
            amount=parse_rupees(data.get("total_amount")),
            status=status,
        )

    def normalize_status(self, provider_status: Optional[str]) -> PaymentStatus:
        if provider_status == "COMPLETE":
            return PaymentStatus.COMPLETED
        if provider_status in ("PENDING", "AMBIGUOUS"):
            return PaymentStatus.PENDING
        return PaymentStatus.FAILED

    async def process_webhook(self, payload: WebhookPayload) -> None:
        # eSewa has no webhooks; verification happens on the redirect
        self.ignore_event(payload)
