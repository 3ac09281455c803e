"""PSP Adapter Dispatcher - Routes to correct PSP based on provider."""
from typing import Dict, List, Mapping, Optional, TYPE_CHECKING

import httpx

from creatorpay.config.settings import Settings
from creatorpay.logging_config import get_logger
from .adapter import PSPAdapter
from .bank_transfer_adapter import BankTransferAdapter
from .errors import ProviderNotConfiguredError, UnknownProviderError
from .esewa_adapter import EsewaAdapter
from .khalti_adapter import KhaltiAdapter
from .razorpay_adapter import RazorpayAdapter
from .stripe_adapter import StripeAdapter
from .types import (
    PaymentConfig,
    PaymentProvider,
    PaymentResult,
    PaymentVerification,
    WebhookPayload,
)

if TYPE_CHECKING:
    from creatorpay.services.fulfillment import PaymentFulfillment

logger = get_logger(__name__)

COUNTRY_PROVIDERS: Dict[str, List[PaymentProvider]] = {
    "IN": [PaymentProvider.RAZORPAY, PaymentProvider.STRIPE, PaymentProvider.BANK_TRANSFER],
    "NP": [PaymentProvider.ESEWA, PaymentProvider.KHALTI, PaymentProvider.BANK_TRANSFER],
}
DEFAULT_PROVIDERS = [PaymentProvider.STRIPE, PaymentProvider.BANK_TRANSFER]

CURRENCY_COUNTRIES = {"INR": "IN", "NPR": "NP"}


def parse_provider(provider) -> PaymentProvider:
    """
    Raises:
        UnknownProviderError: If the identifier is not a supported provider
    """
    if isinstance(provider, PaymentProvider):
        return provider
    try:
        return PaymentProvider(str(provider).strip().lower())
    except ValueError:
        raise UnknownProviderError(str(provider)) from None


def providers_for_country(country: Optional[str]) -> List[PaymentProvider]:
    return list(COUNTRY_PROVIDERS.get((country or "").upper(), DEFAULT_PROVIDERS))


def recommended_provider(country: Optional[str]) -> PaymentProvider:
    return providers_for_country(country)[0]


def providers_for_currency(currency: Optional[str]) -> List[PaymentProvider]:
    return providers_for_country(CURRENCY_COUNTRIES.get((currency or "").upper()))


def recommended_provider_for_currency(currency: Optional[str]) -> PaymentProvider:
    return providers_for_currency(currency)[0]


class PSPDispatcher:
    """
    Selects and initializes the correct PSP adapter.

    Credentials come from the Settings object it is built with; adapters are
    created on first use and cached per provider.
    """

    def __init__(
        self,
        settings: Settings,
        fulfillment: Optional["PaymentFulfillment"] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.fulfillment = fulfillment
        self.http_client = http_client
        self._adapters: Dict[PaymentProvider, PSPAdapter] = {}

    def get_adapter(self, provider) -> PSPAdapter:
        """
        Get PSP adapter for the given provider.

        Args:
            provider: PaymentProvider or its identifier (stripe, razorpay, ...)

        Returns:
            Initialized PSP adapter

        Raises:
            UnknownProviderError: If provider is not supported
            ProviderNotConfiguredError: If its credentials are missing
        """
        provider = parse_provider(provider)

        # Return cached adapter if exists
        if provider in self._adapters:
            return self._adapters[provider]

        adapter = self._build(provider)
        self._adapters[provider] = adapter
        logger.info("psp_adapter_initialized", provider=provider.value)
        return adapter

    def _require(self, provider: PaymentProvider, **values) -> None:
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise ProviderNotConfiguredError(provider.value, missing)

    def _build(self, provider: PaymentProvider) -> PSPAdapter:
        s = self.settings
        common = {
            "fulfillment": self.fulfillment,
            "timeout": s.PROVIDER_TIMEOUT_SECONDS,
            "http_client": self.http_client,
        }
        base_url = s.PUBLIC_BASE_URL.rstrip("/")

        if provider == PaymentProvider.STRIPE:
            self._require(provider, STRIPE_SECRET_KEY=s.STRIPE_SECRET_KEY)
            return StripeAdapter(
                api_key=s.STRIPE_SECRET_KEY,
                api_secret=s.STRIPE_WEBHOOK_SECRET,
                success_url=f"{base_url}/payment/stripe/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base_url}/payment/stripe/cancel",
                **common,
            )

        elif provider == PaymentProvider.RAZORPAY:
            self._require(
                provider,
                RAZORPAY_KEY_ID=s.RAZORPAY_KEY_ID,
                RAZORPAY_KEY_SECRET=s.RAZORPAY_KEY_SECRET,
            )
            return RazorpayAdapter(
                api_key=s.RAZORPAY_KEY_ID,
                api_secret=s.RAZORPAY_KEY_SECRET,
                webhook_secret=s.RAZORPAY_WEBHOOK_SECRET,
                api_base=s.RAZORPAY_API_BASE,
                **common,
            )

        elif provider == PaymentProvider.ESEWA:
            self._require(
                provider,
                ESEWA_MERCHANT_ID=s.ESEWA_MERCHANT_ID,
                ESEWA_SECRET_KEY=s.ESEWA_SECRET_KEY,
            )
            return EsewaAdapter(
                api_key=s.ESEWA_MERCHANT_ID,
                api_secret=s.ESEWA_SECRET_KEY,
                form_url=s.ESEWA_FORM_URL,
                status_url=s.ESEWA_STATUS_URL,
                public_base_url=base_url,
                **common,
            )

        elif provider == PaymentProvider.KHALTI:
            self._require(provider, KHALTI_SECRET_KEY=s.KHALTI_SECRET_KEY)
            return KhaltiAdapter(
                api_key=s.KHALTI_SECRET_KEY,
                api_base=s.KHALTI_API_BASE,
                public_base_url=base_url,
                **common,
            )

        elif provider == PaymentProvider.BANK_TRANSFER:
            self._require(
                provider,
                BANK_NAME=s.BANK_NAME,
                BANK_ACCOUNT_NAME=s.BANK_ACCOUNT_NAME,
                BANK_ACCOUNT_NUMBER=s.BANK_ACCOUNT_NUMBER,
            )
            return BankTransferAdapter(
                bank_name=s.BANK_NAME,
                account_name=s.BANK_ACCOUNT_NAME,
                account_number=s.BANK_ACCOUNT_NUMBER,
                ifsc_code=s.BANK_IFSC_CODE,
                branch_code=s.BANK_BRANCH_CODE,
                swift_code=s.BANK_SWIFT_CODE,
                **common,
            )

        raise UnknownProviderError(provider.value)

    def is_configured(self, provider) -> bool:
        try:
            self.get_adapter(provider)
        except ProviderNotConfiguredError:
            return False
        return True

    def available_providers(self, country: Optional[str] = None) -> List[PaymentProvider]:
        """Providers for the country that have credentials, in preference order."""
        return [p for p in providers_for_country(country) if self.is_configured(p)]

    async def create_order(self, config: PaymentConfig) -> PaymentResult:
        return await self.get_adapter(config.provider).create_order(config)

    async def verify_payment(
        self,
        provider,
        order_id: str,
        payment_id: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> PaymentVerification:
        return await self.get_adapter(provider).verify_payment(order_id, payment_id, signature)

    def verify_webhook(self, provider, body: bytes, headers: Mapping[str, str]) -> WebhookPayload:
        return self.get_adapter(provider).verify_webhook(body, headers)

    async def process_webhook(self, payload: WebhookPayload) -> None:
        await self.get_adapter(payload.provider).process_webhook(payload)

    def clear_cache(self):
        """Clear cached adapters (useful for testing)."""
        self._adapters = {}
