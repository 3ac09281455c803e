"""
PSP Adapter Base Class and Interface.
Provides uniform interface for the payment networks (Stripe, Razorpay, eSewa, Khalti, bank transfer).
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, TYPE_CHECKING

import httpx

from creatorpay.logging_config import get_logger
from .types import (
    PaymentConfig,
    PaymentProvider,
    PaymentResult,
    PaymentStatus,
    PaymentVerification,
    WebhookPayload,
)

if TYPE_CHECKING:
    from creatorpay.services.fulfillment import PaymentFulfillment

logger = get_logger(__name__)


class PSPAdapter(ABC):
    """
    Base adapter for Payment Service Providers.
    All PSP implementations must inherit from this class.
    """

    provider: PaymentProvider

    def __init__(
        self,
        api_key: Optional[str],
        api_secret: Optional[str] = None,
        *,
        fulfillment: Optional["PaymentFulfillment"] = None,
        timeout: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
        **kwargs,
    ):
        """
        Initialize PSP adapter with credentials.

        Args:
            api_key: Primary API key
            api_secret: Secondary secret/webhook secret
            fulfillment: Applies verified results to the record store
            timeout: Seconds allowed for each outbound provider call
            http_client: Shared client (tests inject one with a mock transport)
            **kwargs: Provider-specific configuration
        """
        self.api_key = api_key
        self.api_secret = api_secret
        self.fulfillment = fulfillment
        self.timeout = timeout
        self.config = kwargs
        self._http_client = http_client

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, **kwargs)

    @abstractmethod
    async def create_order(self, config: PaymentConfig) -> PaymentResult:
        """
        Create a provider order/session for the given payment.

        Returns:
            PaymentResult with order_id and either redirect_url or form_data.
            Provider and network failures come back as success=False.
        """

    @abstractmethod
    async def verify_payment(
        self,
        order_id: str,
        payment_id: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> PaymentVerification:
        """
        Confirm a payment against the provider's authoritative state.

        A signature mismatch yields a failed verification, not an exception.
        """

    @abstractmethod
    async def process_webhook(self, payload: WebhookPayload) -> None:
        """
        Apply an asynchronous provider event. Must be safe to call more than
        once for the same event; unknown events are logged and ignored.
        """

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookPayload:
        """
        Verify and parse a raw webhook request.

        Raises:
            WebhookVerificationError: If the request is not authentic
        """
        raise NotImplementedError(f"{self.provider.value} does not send webhooks")

    def normalize_status(self, provider_status: Optional[str]) -> PaymentStatus:
        """
        Normalize provider-specific status to standard status.
        Unknown statuses stay pending so nothing is granted on a guess.
        """
        status_map = {
            "succeeded": PaymentStatus.COMPLETED,
            "completed": PaymentStatus.COMPLETED,
            "captured": PaymentStatus.COMPLETED,
            "paid": PaymentStatus.COMPLETED,
            "failed": PaymentStatus.FAILED,
            "canceled": PaymentStatus.FAILED,
            "cancelled": PaymentStatus.FAILED,
            "expired": PaymentStatus.FAILED,
        }
        return status_map.get((provider_status or "").lower(), PaymentStatus.PENDING)

    def ignore_event(self, payload: WebhookPayload) -> None:
        logger.info(
            "webhook_event_ignored",
            provider=self.provider.value,
            webhook_event=payload.event,
            event_id=payload.event_id,
        )

    def _require_fulfillment(self) -> "PaymentFulfillment":
        if self.fulfillment is None:
            raise RuntimeError(f"{self.__class__.__name__} was built without a fulfillment service")
        return self.fulfillment

    def __repr__(self):
        return f"<{self.__class__.__name__}(provider={getattr(self, 'provider', 'unknown')})>"


def metadata_str(metadata: Optional[Dict[str, Any]], key: str) -> Optional[str]:
    """Read a string value from provider notes/metadata."""
    if not metadata:
        return None
    value = metadata.get(key)
    return str(value) if value not in (None, "") else None
