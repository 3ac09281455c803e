# creatorpay/schemas_pkg/__init__.py

from .payments import (
    CreateOrderRequest,
    CreateOrderResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    EsewaCallbackRequest,
    DMPurchaseRequest,
    ProvidersResponse,
    BankTransferVerifyRequest,
    BankTransferRejectRequest,
    SendMessageRequest,
    MessageOut,
    PaymentRequiredOut,
    PricingRequest,
    MonthlyRecurringRequest,
    RecurringLine,
    PayoutValidateRequest,
)

__all__ = [
    "CreateOrderRequest",
    "CreateOrderResponse",
    "VerifyPaymentRequest",
    "VerifyPaymentResponse",
    "EsewaCallbackRequest",
    "DMPurchaseRequest",
    "ProvidersResponse",
    "BankTransferVerifyRequest",
    "BankTransferRejectRequest",
    "SendMessageRequest",
    "MessageOut",
    "PaymentRequiredOut",
    "PricingRequest",
    "MonthlyRecurringRequest",
    "RecurringLine",
    "PayoutValidateRequest",
]
