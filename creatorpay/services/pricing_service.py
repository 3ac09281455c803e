"""
Fee and commission calculation.

Every amount is an integer in the smallest currency unit (paise/cents) and
every rate is an integer in basis points (1% = 100 bps). Rounding is half up
on the integer result; floats only appear in the display percentages.
"""
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Tuple

from creatorpay.config import settings
from creatorpay.psp.types import Currency, PaymentProvider

BPS_DENOMINATOR = 10000


class FeeMethod(str, Enum):
    RAZORPAY_UPI = "RAZORPAY_UPI"
    RAZORPAY_CARD = "RAZORPAY_CARD"
    STRIPE = "STRIPE"
    ESEWA = "ESEWA"
    KHALTI = "KHALTI"
    BANK_TRANSFER = "BANK_TRANSFER"


class CommissionTier(str, Enum):
    STANDARD = "STANDARD"
    # High-volume creators
    PREMIUM = "PREMIUM"
    # New creators
    PROMOTIONAL = "PROMOTIONAL"


@dataclass(frozen=True)
class FeeSchedule:
    bps: int
    fixed: int
    name: str


# Processing fees charged by each network
PAYMENT_FEES: Dict[FeeMethod, FeeSchedule] = {
    FeeMethod.RAZORPAY_UPI: FeeSchedule(bps=200, fixed=0, name="UPI"),
    FeeMethod.RAZORPAY_CARD: FeeSchedule(bps=250, fixed=0, name="Card (India)"),
    FeeMethod.STRIPE: FeeSchedule(bps=290, fixed=30, name="International Card"),
    FeeMethod.ESEWA: FeeSchedule(bps=200, fixed=0, name="eSewa"),
    FeeMethod.KHALTI: FeeSchedule(bps=200, fixed=0, name="Khalti"),
    FeeMethod.BANK_TRANSFER: FeeSchedule(bps=100, fixed=0, name="Bank Transfer"),
}

# Razorpay defaults to UPI; card payments are priced separately when known
PROVIDER_FEE_METHODS: Dict[PaymentProvider, FeeMethod] = {
    PaymentProvider.STRIPE: FeeMethod.STRIPE,
    PaymentProvider.RAZORPAY: FeeMethod.RAZORPAY_UPI,
    PaymentProvider.ESEWA: FeeMethod.ESEWA,
    PaymentProvider.KHALTI: FeeMethod.KHALTI,
    PaymentProvider.BANK_TRANSFER: FeeMethod.BANK_TRANSFER,
}


@dataclass(frozen=True)
class PaymentFee:
    fee: int
    percentage: float


@dataclass(frozen=True)
class PlatformCommission:
    commission: int
    percentage: float


@dataclass(frozen=True)
class EarningsBreakdown:
    gross_amount: int
    payment_fee: int
    payment_fee_percentage: float
    platform_commission: int
    platform_commission_percentage: float
    total_fees: int
    total_fees_percentage: float
    net_earnings: int
    creator_share_percentage: float
    currency: str

    def to_dict(self) -> dict:
        return asdict(self)


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded half up. Both arguments must be non-negative."""
    return (2 * numerator + denominator) // (2 * denominator)


def apply_bps(amount: int, bps: int) -> int:
    return round_half_up(amount * bps, BPS_DENOMINATOR)


def fee_method_for(method) -> FeeMethod:
    """Accept a FeeMethod, its name, or a PaymentProvider."""
    if isinstance(method, FeeMethod):
        return method
    if isinstance(method, PaymentProvider):
        return PROVIDER_FEE_METHODS[method]
    key = str(method)
    if key.upper() in FeeMethod.__members__:
        return FeeMethod[key.upper()]
    try:
        return PROVIDER_FEE_METHODS[PaymentProvider(key.lower())]
    except ValueError:
        raise ValueError(f"Unknown fee method: {method}") from None


def commission_tier_for(tier) -> CommissionTier:
    if isinstance(tier, CommissionTier):
        return tier
    try:
        return CommissionTier(str(tier).upper())
    except ValueError:
        raise ValueError(f"Unknown commission tier: {tier}") from None


def _check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError("amount must be an integer number of minor units")
    if amount < 0:
        raise ValueError("amount must not be negative")
    return amount


def _percentage(part: int, whole: int) -> float:
    if whole == 0:
        return 0.0
    return round(part * 100 / whole, 2)


def calculate_payment_fee(amount: int, method) -> PaymentFee:
    """
    Processing fee for a transaction.

    Args:
        amount: Gross amount in smallest currency unit
        method: FeeMethod (or provider; providers map to their default method)

    Returns:
        PaymentFee with the fee in minor units and the rate as a percentage
    """
    _check_amount(amount)
    schedule = PAYMENT_FEES[fee_method_for(method)]
    return PaymentFee(
        fee=apply_bps(amount, schedule.bps) + schedule.fixed,
        percentage=schedule.bps / 100,
    )


def calculate_platform_commission(
    amount: int,
    tier=CommissionTier.STANDARD,
    rates: Optional[Mapping[str, int]] = None,
) -> PlatformCommission:
    """Platform commission on the gross amount. The caller picks the tier."""
    _check_amount(amount)
    rates = rates if rates is not None else settings.commission_rates
    bps = rates[commission_tier_for(tier).value]
    return PlatformCommission(commission=apply_bps(amount, bps), percentage=bps / 100)


def calculate_earnings(
    gross_amount: int,
    method,
    tier=CommissionTier.STANDARD,
    currency: str = Currency.INR.value,
    rates: Optional[Mapping[str, int]] = None,
) -> EarningsBreakdown:
    """
    Full split of a payment. Fee and commission are both taken on the gross
    amount; net_earnings + payment_fee + platform_commission == gross_amount.
    """
    fee = calculate_payment_fee(gross_amount, method)
    commission = calculate_platform_commission(gross_amount, tier, rates)

    total_fees = fee.fee + commission.commission
    net_earnings = gross_amount - total_fees

    return EarningsBreakdown(
        gross_amount=gross_amount,
        payment_fee=fee.fee,
        payment_fee_percentage=fee.percentage,
        platform_commission=commission.commission,
        platform_commission_percentage=commission.percentage,
        total_fees=total_fees,
        total_fees_percentage=_percentage(total_fees, gross_amount),
        net_earnings=net_earnings,
        creator_share_percentage=_percentage(net_earnings, gross_amount),
        currency=str(getattr(currency, "value", currency)),
    )


def calculate_monthly_recurring(
    subscriptions: Iterable[Tuple[int, int]],
    method,
    tier=CommissionTier.STANDARD,
    currency: str = Currency.INR.value,
) -> dict:
    """
    Monthly recurring revenue from (price, subscriber_count) pairs.
    """
    gross_revenue = 0
    subscriber_count = 0
    for price, count in subscriptions:
        gross_revenue += price * count
        subscriber_count += count

    earnings = calculate_earnings(gross_revenue, method, tier, currency)
    return {
        "gross_revenue": gross_revenue,
        "net_revenue": earnings.net_earnings,
        "total_fees": earnings.total_fees,
        "subscriber_count": subscriber_count,
    }


def estimate_annual_earnings(
    monthly_gross: int,
    method,
    tier=CommissionTier.STANDARD,
    growth_bps: int = 500,
) -> dict:
    """
    Twelve-month projection of net earnings, flat and with compound monthly
    growth (default 5%).
    """
    monthly_net = calculate_earnings(monthly_gross, method, tier).net_earnings

    growth = Decimal(1) + Decimal(growth_bps) / BPS_DENOMINATOR
    month_value = Decimal(monthly_net)
    with_growth = Decimal(0)
    for _ in range(12):
        with_growth += month_value
        month_value *= growth

    return {
        "current_monthly": monthly_net,
        "projected_annual": monthly_net * 12,
        "with_growth": int(with_growth.quantize(Decimal(1), rounding=ROUND_HALF_UP)),
    }


def recommended_fee_method(currency: str) -> FeeMethod:
    """Cheapest common method for the currency's region."""
    code = str(getattr(currency, "value", currency)).upper()
    if code == Currency.INR.value:
        return FeeMethod.RAZORPAY_UPI
    if code == Currency.NPR.value:
        return FeeMethod.ESEWA
    return FeeMethod.STRIPE


def _group_indian(whole: int) -> str:
    # 10000000 -> 1,00,00,000
    digits = str(whole)
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_currency(amount: int, currency: str) -> str:
    """
    Display string for an amount in minor units.
    INR and NPR show whole units; USD shows cents.
    """
    code = str(getattr(currency, "value", currency)).upper()
    sign = "-" if amount < 0 else ""
    amount = abs(amount)

    if code == Currency.INR.value:
        return f"{sign}₹{_group_indian(round_half_up(amount, 100))}"
    if code == Currency.NPR.value:
        return f"{sign}NPR {round_half_up(amount, 100)}"
    if code == Currency.USD.value:
        dollars, cents = divmod(amount, 100)
        return f"{sign}${dollars:,}.{cents:02d}"
    return f"{sign}{code} {amount // 100}.{amount % 100:02d}"
