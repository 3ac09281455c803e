"""PSP error types."""
from typing import Iterable


class PaymentError(Exception):
    """Base class for payment errors."""


class ConfigurationError(PaymentError, ValueError):
    """Unknown provider or missing credentials."""


class UnknownProviderError(ConfigurationError):
    def __init__(self, provider: str):
        super().__init__(f"Unknown payment provider: {provider}")
        self.provider = provider


class ProviderNotConfiguredError(ConfigurationError):
    def __init__(self, provider: str, missing: Iterable[str]):
        self.provider = provider
        self.missing = list(missing)
        super().__init__(f"{provider} is not configured: missing {', '.join(self.missing)}")


class WebhookVerificationError(PaymentError, ValueError):
    """Webhook request failed its authenticity check."""


class PaymentNotFoundError(PaymentError, LookupError):
    def __init__(self, provider: str, order_id: str):
        super().__init__(f"No {provider} payment for order {order_id}")
        self.provider = provider
        self.order_id = order_id
