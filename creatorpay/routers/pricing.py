from fastapi import APIRouter, HTTPException, Query

from creatorpay.config import settings
from creatorpay.schemas_pkg import MonthlyRecurringRequest, PayoutValidateRequest, PricingRequest
from creatorpay.services import pricing_service
from creatorpay.services.payout_service import (
    PayoutValidationError,
    UnsupportedCurrencyError,
    check_payout_eligibility,
    validate_payout_amount,
)

router = APIRouter(tags=["Pricing"])
payouts_router = APIRouter(tags=["Payouts"])


@router.get("/calculate")
def pricing_guidance(currency: str = Query("INR", min_length=3, max_length=3)):
    """Fee schedules, commission tiers and the cheapest method for the currency."""
    return {
        "currency": currency.upper(),
        "recommended_method": pricing_service.recommended_fee_method(currency),
        "payment_methods": [
            {"id": method, "name": fee.name, "fee_bps": fee.bps, "fixed_fee": fee.fixed}
            for method, fee in pricing_service.PAYMENT_FEES.items()
        ],
        "commission_tiers": settings.commission_rates,
    }


@router.post("/calculate")
def calculate(body: PricingRequest):
    try:
        breakdown = pricing_service.calculate_earnings(body.amount, body.method, body.tier, body.currency.upper())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        **breakdown.to_dict(),
        "formatted": {
            "gross_amount": pricing_service.format_currency(breakdown.gross_amount, breakdown.currency),
            "net_earnings": pricing_service.format_currency(breakdown.net_earnings, breakdown.currency),
        },
    }


@router.post("/monthly-recurring")
def monthly_recurring(body: MonthlyRecurringRequest):
    try:
        return pricing_service.calculate_monthly_recurring(
            [(line.price, line.subscribers) for line in body.lines],
            body.method,
            body.tier,
            body.currency.upper(),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/projection")
def annual_projection(
    monthly_gross: int = Query(..., ge=0),
    method: str = Query(...),
    tier: str = Query("STANDARD"),
    growth_bps: int = Query(500, ge=0, le=10000),
):
    try:
        return pricing_service.estimate_annual_earnings(monthly_gross, method, tier, growth_bps)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@payouts_router.get("/eligibility")
def payout_eligibility(
    balance: int = Query(..., ge=0),
    currency: str = Query(..., min_length=3, max_length=3),
):
    try:
        return check_payout_eligibility(balance, currency).to_dict()
    except UnsupportedCurrencyError as e:
        raise HTTPException(status_code=400, detail=str(e))


@payouts_router.post("/validate")
def validate_payout(body: PayoutValidateRequest):
    try:
        validate_payout_amount(body.amount, body.currency)
    except UnsupportedCurrencyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PayoutValidationError as e:
        raise HTTPException(status_code=422, detail={"errors": e.errors})
    return {"valid": True, "amount": body.amount, "currency": body.currency.upper()}
