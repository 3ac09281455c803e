"""
Payout eligibility and payout amount validation.

Thresholds and limits are per currency, in minor units, and come from
Settings so they can be tuned without a deploy.
"""
from dataclasses import dataclass, field, asdict
from typing import List, Mapping, Optional

from creatorpay.config import settings
from creatorpay.services.pricing_service import format_currency


class UnsupportedCurrencyError(ValueError):
    def __init__(self, currency: str):
        super().__init__(f"Unsupported payout currency: {currency}")
        self.currency = currency


class PayoutValidationError(ValueError):
    """Raised with every bound the requested payout violates."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = list(errors)


@dataclass
class PayoutEligibility:
    eligible: bool
    current_balance: int
    threshold: int
    max_limit: int
    deficit: int
    currency: str
    message: str
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _bounds(
    currency: str,
    thresholds: Optional[Mapping[str, int]],
    limits: Optional[Mapping[str, int]],
):
    code = str(getattr(currency, "value", currency)).upper()
    thresholds = thresholds if thresholds is not None else settings.PAYOUT_THRESHOLDS
    limits = limits if limits is not None else settings.PAYOUT_LIMITS
    if code not in thresholds or code not in limits:
        raise UnsupportedCurrencyError(code)
    return code, thresholds[code], limits[code]


def check_payout_eligibility(
    balance: int,
    currency: str,
    thresholds: Optional[Mapping[str, int]] = None,
    limits: Optional[Mapping[str, int]] = None,
) -> PayoutEligibility:
    """
    Eligible iff balance >= threshold. A balance above the per-payout limit
    is still eligible; it only adds a warning that the payout will be split.
    """
    code, threshold, max_limit = _bounds(currency, thresholds, limits)

    eligible = balance >= threshold
    deficit = 0 if eligible else threshold - balance

    if eligible:
        message = f"You are eligible for payout! Current balance: {format_currency(balance, code)}"
    else:
        message = (
            f"Earn {format_currency(deficit, code)} more to reach the "
            f"{format_currency(threshold, code)} payout threshold."
        )

    warnings = []
    if balance > max_limit:
        warnings.append(
            f"Balance exceeds the {format_currency(max_limit, code)} per-payout limit; "
            f"it will be paid out over multiple payouts."
        )

    return PayoutEligibility(
        eligible=eligible,
        current_balance=balance,
        threshold=threshold,
        max_limit=max_limit,
        deficit=deficit,
        currency=code,
        message=message,
        warnings=warnings,
    )


def validate_payout_amount(
    amount: int,
    currency: str,
    thresholds: Optional[Mapping[str, int]] = None,
    limits: Optional[Mapping[str, int]] = None,
) -> None:
    """
    Raises:
        PayoutValidationError: listing all violated bounds
        UnsupportedCurrencyError: for currencies without payout bounds
    """
    code, threshold, max_limit = _bounds(currency, thresholds, limits)

    errors = []
    if amount <= 0:
        errors.append("Payout amount must be positive")
    if amount < threshold:
        errors.append(f"Minimum payout is {format_currency(threshold, code)}")
    if amount > max_limit:
        errors.append(f"Maximum payout is {format_currency(max_limit, code)}")

    if errors:
        raise PayoutValidationError(errors)
