"""
Checkout orchestration: price the thing being bought, open a provider order,
and apply the provider's verdict once the user comes back.

Amounts are always read from our own records, never from the client.
"""
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from creatorpay.logging_config import get_logger
from creatorpay.models import CreatorProfile, DMPayment, Payment, Product, Purchase, Subscription
from creatorpay.psp.dispatcher import PSPDispatcher, parse_provider
from creatorpay.psp.errors import PaymentNotFoundError
from creatorpay.psp.esewa_adapter import EsewaAdapter
from creatorpay.psp.types import (
    PaymentConfig,
    PaymentProvider,
    PaymentResult,
    PaymentStatus,
    PaymentVerification,
)
from creatorpay.services import dm_ledger
from creatorpay.services.fulfillment import PaymentFulfillment

logger = get_logger(__name__)

PURPOSES = ("subscription", "product", "dm")

# Wallets that only settle in their home currency
PROVIDER_CURRENCIES = {
    PaymentProvider.RAZORPAY: {"INR"},
    PaymentProvider.ESEWA: {"NPR"},
    PaymentProvider.KHALTI: {"NPR"},
}


class CheckoutError(ValueError):
    """The request cannot be turned into a provider order."""


class ReferenceNotFoundError(LookupError):
    def __init__(self, purpose: str, reference_id: str):
        super().__init__(f"No {purpose} {reference_id}")
        self.purpose = purpose
        self.reference_id = reference_id


@dataclass
class Checkout:
    config: PaymentConfig
    result: PaymentResult
    payment: Optional[Payment] = None


def _price(db: Session, user_id: str, purpose: str, reference_id: str) -> Tuple[str, int, str, str]:
    """
    Returns (reference_id, amount, currency, label) for what is being bought.
    A product checkout opens a PENDING purchase and references that.
    """
    if purpose == "subscription":
        subscription = db.get(Subscription, reference_id)
        if subscription is None or subscription.user_id != user_id:
            raise ReferenceNotFoundError(purpose, reference_id)
        if subscription.status in ("ACTIVE", "CANCELLED"):
            raise CheckoutError(f"Subscription is {subscription.status.lower()}")
        creator = db.get(CreatorProfile, subscription.creator_id)
        label = f"Subscription to {creator.display_name}" if creator else "Creator Subscription"
        return subscription.id, subscription.amount, subscription.currency, label

    if purpose == "product":
        product = db.get(Product, reference_id)
        if product is None or not product.is_active:
            raise ReferenceNotFoundError(purpose, reference_id)
        purchase = Purchase(
            user_id=user_id,
            product_id=product.id,
            amount=product.price,
            currency=product.currency,
            status="PENDING",
        )
        db.add(purchase)
        db.commit()
        return purchase.id, purchase.amount, purchase.currency, product.title

    if purpose == "dm":
        credit = db.get(DMPayment, reference_id)
        if credit is None or credit.user_id != user_id:
            raise ReferenceNotFoundError(purpose, reference_id)
        if credit.status != "PENDING":
            raise CheckoutError("Message bundle is already settled")
        return credit.id, credit.amount, credit.currency, f"{credit.messages_allowed} message credits"

    raise CheckoutError(f"Unknown purpose: {purpose}")


async def start_checkout(
    db: Session,
    dispatcher: PSPDispatcher,
    fulfillment: PaymentFulfillment,
    user_id: str,
    provider,
    purpose: str,
    reference_id: str,
) -> Checkout:
    """
    Create a provider order for a subscription, product or DM bundle.

    Raises:
        UnknownProviderError / ProviderNotConfiguredError: bad provider
        ReferenceNotFoundError: nothing to pay for
        CheckoutError: the reference cannot be paid with this provider
    """
    provider = parse_provider(provider)
    adapter = dispatcher.get_adapter(provider)

    reference_id, amount, currency, label = _price(db, user_id, purpose, reference_id)
    allowed = PROVIDER_CURRENCIES.get(provider)
    if allowed and currency not in allowed:
        raise CheckoutError(f"{provider.value} does not accept {currency}")

    config = PaymentConfig(
        provider=provider,
        amount=amount,
        currency=currency,
        reference_id=reference_id,
        user_id=user_id,
        metadata={"type": purpose, "product_name": label},
    )
    result = await adapter.create_order(config)
    if not result.success:
        logger.warning(
            "checkout_order_failed",
            provider=provider.value,
            purpose=purpose,
            reference_id=reference_id,
            error=result.error,
        )
        return Checkout(config=config, result=result)

    payment = fulfillment.record_pending_payment(provider, result.order_id, config)
    return Checkout(config=config, result=result, payment=payment)


async def start_dm_purchase(
    db: Session,
    dispatcher: PSPDispatcher,
    fulfillment: PaymentFulfillment,
    user_id: str,
    creator_id: str,
    messages_count: int,
    provider,
) -> Checkout:
    """Open a PENDING message bundle and a provider order to pay for it."""
    provider = parse_provider(provider)
    dispatcher.get_adapter(provider)

    creator = db.get(CreatorProfile, creator_id)
    if creator is None:
        raise ReferenceNotFoundError("creator", creator_id)
    if creator.user_id == user_id:
        raise CheckoutError("Creators cannot buy messages to themselves")
    try:
        credit = dm_ledger.open_credit(db, user_id, creator, messages_count, provider.value)
    except ValueError as e:
        raise CheckoutError(str(e)) from e
    db.commit()

    return await start_checkout(db, dispatcher, fulfillment, user_id, provider, "dm", credit.id)


async def confirm_payment(
    dispatcher: PSPDispatcher,
    fulfillment: PaymentFulfillment,
    user_id: str,
    provider,
    order_id: str,
    payment_id: Optional[str] = None,
    signature: Optional[str] = None,
) -> Tuple[PaymentVerification, Payment]:
    """
    Verify with the provider and apply the outcome.

    A verification that failed its integrity checks is reported back but
    does not touch the stored payment; only a provider-confirmed failure
    moves it to FAILED.

    Raises:
        PaymentNotFoundError: If the order is unknown or belongs to someone else
    """
    provider = parse_provider(provider)
    payment = fulfillment.get_payment(provider, order_id)
    if payment is None or payment.user_id != user_id:
        raise PaymentNotFoundError(provider.value, order_id)

    adapter = dispatcher.get_adapter(provider)
    if isinstance(adapter, EsewaAdapter) and not signature:
        # Redirect never arrived; ask eSewa directly
        verification = await adapter.check_status(order_id, payment.amount)
    else:
        verification = await adapter.verify_payment(order_id, payment_id, signature)

    if verification.status == PaymentStatus.COMPLETED:
        fulfillment.complete_payment(
            provider,
            order_id,
            payment_id=verification.payment_id or payment_id,
            amount=verification.amount,
        )
    elif verification.status == PaymentStatus.FAILED and not verification.error:
        fulfillment.fail_payment(provider, order_id, payment_id=verification.payment_id or payment_id,
                                 reason="provider reported payment failed")

    return verification, fulfillment.get_payment(provider, order_id)
