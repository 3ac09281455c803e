from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from creatorpay.psp.types import PaymentProvider


class CreateOrderRequest(BaseModel):
    purpose: Literal["subscription", "product", "dm"] = "subscription"
    reference_id: str = Field(..., description="Subscription, product or DM bundle id")


class CreateOrderResponse(BaseModel):
    provider: PaymentProvider
    order_id: str
    payment_id: Optional[str] = None
    amount: int
    currency: str
    redirect_url: Optional[str] = None
    # Only for form-POST providers (eSewa)
    form_data: Optional[Dict[str, str]] = None
    # Only for bank transfers
    bank_details: Optional[Dict[str, str]] = None
    instructions: Optional[str] = None


class VerifyPaymentRequest(BaseModel):
    order_id: str
    payment_id: Optional[str] = None
    signature: Optional[str] = None


class EsewaCallbackRequest(BaseModel):
    data: str = Field(..., description="Base64 payload eSewa appends to the success redirect")


class VerifyPaymentResponse(BaseModel):
    success: bool
    order_id: str
    payment_id: str
    amount: int
    status: str
    error: Optional[str] = None
    payment_status: Optional[str] = None


class DMPurchaseRequest(BaseModel):
    creator_id: str
    messages_count: int = Field(1, ge=1, le=100)
    provider: PaymentProvider


class ProvidersResponse(BaseModel):
    country: Optional[str]
    currency: Optional[str] = None
    available: List[PaymentProvider]
    recommended: Optional[PaymentProvider]


class BankTransferVerifyRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1, max_length=128)
    note: Optional[str] = Field(None, max_length=500)


class BankTransferRejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class MessageOut(BaseModel):
    id: str
    creator_id: str
    sender_id: str
    content: str
    is_paid: bool
    price: int
    dm_payment_id: Optional[str] = None

    class Config:
        from_attributes = True


class PaymentRequiredOut(BaseModel):
    payment_required: bool = True
    creator_id: str
    price: int
    currency: str
    payment_url: str


class PricingRequest(BaseModel):
    amount: int = Field(..., ge=0, description="Gross amount in smallest currency unit")
    method: str = Field(..., description="Fee method (RAZORPAY_UPI, STRIPE, ...) or provider")
    tier: str = "STANDARD"
    currency: str = "INR"


class RecurringLine(BaseModel):
    price: int = Field(..., ge=0)
    subscribers: int = Field(..., ge=0)


class MonthlyRecurringRequest(BaseModel):
    lines: List[RecurringLine] = Field(..., min_length=1)
    method: str
    tier: str = "STANDARD"
    currency: str = "INR"


class PayoutValidateRequest(BaseModel):
    amount: int
    currency: str
