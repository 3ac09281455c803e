"""Bank transfer adapter. Payments are confirmed by an admin, never by a network."""
from datetime import datetime, timezone
from typing import Dict, Optional
from uuid import uuid4

from creatorpay.logging_config import get_logger
from .adapter import PSPAdapter
from .errors import PaymentNotFoundError
from .types import (
    PaymentConfig,
    PaymentProvider,
    PaymentResult,
    PaymentStatus,
    PaymentVerification,
    WebhookPayload,
)

logger = get_logger(__name__)

INSTRUCTIONS = (
    "Please transfer the exact amount to the bank account provided, "
    "quoting the reference, and upload the receipt."
)


class BankTransferAdapter(PSPAdapter):
    """Manual verification flow for direct bank transfers."""

    provider = PaymentProvider.BANK_TRANSFER

    def __init__(self, api_key: Optional[str] = None, api_secret: Optional[str] = None, **kwargs):
        super().__init__(api_key, api_secret, **kwargs)
        details = {
            "bank_name": kwargs.get("bank_name"),
            "account_name": kwargs.get("account_name"),
            "account_number": kwargs.get("account_number"),
            # India / Nepal / international
            "ifsc_code": kwargs.get("ifsc_code"),
            "branch_code": kwargs.get("branch_code"),
            "swift_code": kwargs.get("swift_code"),
        }
        self.bank_details: Dict[str, str] = {k: v for k, v in details.items() if v}

    @staticmethod
    def new_reference() -> str:
        return f"bt_{uuid4().hex[:16]}"

    async def create_order(self, config: PaymentConfig) -> PaymentResult:
        fulfillment = self._require_fulfillment()
        order_id = self.new_reference()
        fulfillment.record_pending_payment(
            self.provider,
            order_id,
            config,
            meta={"bank_details": self.bank_details, "instructions": INSTRUCTIONS},
        )
        logger.info("bank_transfer_order_created", order_id=order_id, reference_id=config.reference_id)
        # No redirect; the client shows the bank details
        return PaymentResult(success=True, order_id=order_id)

    async def verify_payment(
        self,
        order_id: str,
        payment_id: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> PaymentVerification:
        """Report the stored state; only verify_bank_transfer can complete it."""
        payment = self._require_fulfillment().get_payment(self.provider, order_id)
        if payment is None:
            return PaymentVerification.failed(order_id, payment_id, error="Unknown bank transfer reference")

        status = PaymentStatus(payment.status.lower())
        return PaymentVerification(
            success=status == PaymentStatus.COMPLETED,
            order_id=order_id,
            payment_id=payment.provider_payment_id or order_id,
            amount=payment.amount,
            status=status,
        )

    def verify_bank_transfer(
        self,
        order_id: str,
        transaction_id: str,
        note: Optional[str] = None,
        admin_id: Optional[str] = None,
    ) -> bool:
        """
        Mark a transfer as received and activate what it paid for.

        Returns False if the transfer was already verified or rejected.

        Raises:
            PaymentNotFoundError: If no bank transfer has this reference
        """
        fulfillment = self._require_fulfillment()
        if fulfillment.get_payment(self.provider, order_id) is None:
            raise PaymentNotFoundError(self.provider.value, order_id)

        return fulfillment.complete_payment(
            self.provider,
            order_id,
            payment_id=transaction_id,
            meta={"verified_at": datetime.now(timezone.utc).isoformat(), "admin_note": note},
            actor_id=admin_id,
        )

    def reject_bank_transfer(
        self,
        order_id: str,
        reason: Optional[str] = None,
        admin_id: Optional[str] = None,
    ) -> bool:
        fulfillment = self._require_fulfillment()
        if fulfillment.get_payment(self.provider, order_id) is None:
            raise PaymentNotFoundError(self.provider.value, order_id)
        return fulfillment.fail_payment(
            self.provider,
            order_id,
            reason=reason or "rejected by admin",
            actor_id=admin_id,
        )

    async def process_webhook(self, payload: WebhookPayload) -> None:
        # Raised by the admin API rather than a network
        if payload.event == "manual_verification":
            self.verify_bank_transfer(
                payload.data["order_id"],
                payload.data["transaction_id"],
                payload.data.get("note"),
                payload.data.get("admin_id"),
            )
        else:
            self.ignore_event(payload)
