"""Payment service provider adapters."""
from .adapter import PSPAdapter
from .dispatcher import PSPDispatcher, parse_provider
from .errors import (
    ConfigurationError,
    PaymentError,
    PaymentNotFoundError,
    ProviderNotConfiguredError,
    UnknownProviderError,
    WebhookVerificationError,
)
from .types import (
    Currency,
    PaymentConfig,
    PaymentProvider,
    PaymentResult,
    PaymentStatus,
    PaymentVerification,
    WebhookPayload,
)

__all__ = [
    "PSPAdapter",
    "PSPDispatcher",
    "parse_provider",
    "ConfigurationError",
    "PaymentError",
    "PaymentNotFoundError",
    "ProviderNotConfiguredError",
    "UnknownProviderError",
    "WebhookVerificationError",
    "Currency",
    "PaymentConfig",
    "PaymentProvider",
    "PaymentResult",
    "PaymentStatus",
    "PaymentVerification",
    "WebhookPayload",
]
