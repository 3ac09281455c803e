"""
Payment API Routes
Provider discovery, order creation, verification and DM bundle purchase.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from creatorpay.deps import (
    configuration_http_error,
    get_current_user_id,
    get_db,
    get_dispatcher,
    get_fulfillment,
)
from creatorpay.logging_config import get_logger
from creatorpay.psp.dispatcher import (
    PSPDispatcher,
    providers_for_currency,
    recommended_provider,
    recommended_provider_for_currency,
)
from creatorpay.psp.errors import ConfigurationError, PaymentNotFoundError
from creatorpay.psp.signatures import decode_esewa_callback
from creatorpay.psp.types import PaymentProvider
from creatorpay.schemas_pkg import (
    CreateOrderRequest,
    CreateOrderResponse,
    DMPurchaseRequest,
    EsewaCallbackRequest,
    ProvidersResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from creatorpay.services import checkout
from creatorpay.services.fulfillment import PaymentFulfillment

logger = get_logger(__name__)

router = APIRouter(tags=["Payments"])


def _order_response(result: checkout.Checkout) -> CreateOrderResponse:
    if not result.result.success:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.result.error or "Payment provider error")

    meta = (result.payment.meta or {}) if result.payment is not None else {}
    return CreateOrderResponse(
        provider=result.config.provider,
        order_id=result.result.order_id,
        payment_id=result.result.payment_id,
        amount=result.config.amount,
        currency=result.config.currency,
        redirect_url=result.result.redirect_url,
        form_data=result.result.form_data,
        bank_details=meta.get("bank_details"),
        instructions=meta.get("instructions"),
    )


@router.get("/providers", response_model=ProvidersResponse)
def list_providers(
    country: Optional[str] = Query(None, min_length=2, max_length=2),
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    dispatcher: PSPDispatcher = Depends(get_dispatcher),
):
    if currency and not country:
        available = [p for p in providers_for_currency(currency) if dispatcher.is_configured(p)]
        preferred = recommended_provider_for_currency(currency)
    else:
        available = dispatcher.available_providers(country)
        preferred = recommended_provider(country)
    return ProvidersResponse(
        country=country.upper() if country else None,
        currency=currency.upper() if currency else None,
        available=available,
        recommended=preferred if preferred in available else (available[0] if available else None),
    )


@router.post("/dm", response_model=CreateOrderResponse, status_code=status.HTTP_201_CREATED)
async def buy_message_credits(
    body: DMPurchaseRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    dispatcher: PSPDispatcher = Depends(get_dispatcher),
    fulfillment: PaymentFulfillment = Depends(get_fulfillment),
):
    try:
        result = await checkout.start_dm_purchase(
            db, dispatcher, fulfillment, user_id, body.creator_id, body.messages_count, body.provider
        )
    except ConfigurationError as e:
        raise configuration_http_error(e)
    except checkout.ReferenceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except checkout.CheckoutError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _order_response(result)


@router.post("/esewa/callback", response_model=VerifyPaymentResponse)
async def esewa_callback(
    body: EsewaCallbackRequest,
    user_id: str = Depends(get_current_user_id),
    dispatcher: PSPDispatcher = Depends(get_dispatcher),
    fulfillment: PaymentFulfillment = Depends(get_fulfillment),
):
    """
    The browser relays eSewa's base64 `data` redirect parameter here.
    """
    try:
        order_id = decode_esewa_callback(body.data).get("transaction_uuid")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed eSewa callback")
    if not order_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed eSewa callback")

    return await _verify(dispatcher, fulfillment, user_id, PaymentProvider.ESEWA, order_id, None, body.data)


@router.post("/{provider}/orders", response_model=CreateOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    provider: str,
    body: CreateOrderRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    dispatcher: PSPDispatcher = Depends(get_dispatcher),
    fulfillment: PaymentFulfillment = Depends(get_fulfillment),
):
    try:
        result = await checkout.start_checkout(
            db, dispatcher, fulfillment, user_id, provider, body.purpose, body.reference_id
        )
    except ConfigurationError as e:
        raise configuration_http_error(e)
    except checkout.ReferenceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except checkout.CheckoutError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _order_response(result)


@router.post("/{provider}/verify", response_model=VerifyPaymentResponse)
async def verify_payment(
    provider: str,
    body: VerifyPaymentRequest,
    user_id: str = Depends(get_current_user_id),
    dispatcher: PSPDispatcher = Depends(get_dispatcher),
    fulfillment: PaymentFulfillment = Depends(get_fulfillment),
):
    return await _verify(dispatcher, fulfillment, user_id, provider, body.order_id, body.payment_id, body.signature)


async def _verify(dispatcher, fulfillment, user_id, provider, order_id, payment_id, signature) -> VerifyPaymentResponse:
    try:
        verification, payment = await checkout.confirm_payment(
            dispatcher, fulfillment, user_id, provider, order_id, payment_id, signature
        )
    except ConfigurationError as e:
        raise configuration_http_error(e)
    except PaymentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return VerifyPaymentResponse(
        success=verification.success,
        order_id=verification.order_id,
        payment_id=verification.payment_id,
        amount=verification.amount,
        status=verification.status.value,
        error=verification.error,
        payment_status=payment.status if payment is not None else None,
    )
