"""
Payment provider value types shared by every adapter.
All amounts are integers in the smallest currency unit (paise/cents).
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class PaymentProvider(str, Enum):
    """Supported payment networks."""
    STRIPE = "stripe"
    RAZORPAY = "razorpay"
    ESEWA = "esewa"
    KHALTI = "khalti"
    BANK_TRANSFER = "bank_transfer"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Currency(str, Enum):
    INR = "INR"
    NPR = "NPR"
    USD = "USD"


@dataclass(frozen=True)
class PaymentConfig:
    """
    Input to order creation.

    `reference_id` is the subscription, purchase or DM bundle the order pays
    for. `metadata["type"]` is one of "subscription", "product" or "dm".
    """
    provider: PaymentProvider
    amount: int
    currency: str
    reference_id: str
    user_id: str
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def purpose(self) -> str:
        return self.metadata.get("type", "subscription")


@dataclass
class PaymentResult:
    success: bool
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    error: Optional[str] = None
    redirect_url: Optional[str] = None
    # Only for providers that need a client-side form POST
    form_data: Optional[Dict[str, str]] = None

    @classmethod
    def failure(cls, error: str) -> "PaymentResult":
        return cls(success=False, error=error)


@dataclass
class PaymentVerification:
    success: bool
    order_id: str
    payment_id: str
    amount: int
    status: PaymentStatus
    error: Optional[str] = None

    @classmethod
    def failed(cls, order_id: str, payment_id: Optional[str] = None, error: Optional[str] = None) -> "PaymentVerification":
        return cls(
            success=False,
            order_id=order_id,
            payment_id=payment_id or "",
            amount=0,
            status=PaymentStatus.FAILED,
            error=error,
        )

    @classmethod
    def unreachable(cls, order_id: str, payment_id: Optional[str] = None, error: Optional[str] = None) -> "PaymentVerification":
        """Provider could not be asked; the payment keeps its current state."""
        return cls(
            success=False,
            order_id=order_id,
            payment_id=payment_id or "",
            amount=0,
            status=PaymentStatus.PENDING,
            error=error or "provider unreachable",
        )


@dataclass
class WebhookPayload:
    """Provider-initiated notification. Event names are provider specific."""
    provider: PaymentProvider
    event: str
    data: Dict[str, Any]
    event_id: Optional[str] = None
