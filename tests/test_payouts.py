import unittest

from creatorpay.services.payout_service import (
    PayoutValidationError,
    UnsupportedCurrencyError,
    check_payout_eligibility,
    validate_payout_amount,
)

THRESHOLDS = {"INR": 50000, "NPR": 100000, "USD": 1000}
LIMITS = {"INR": 10000000, "NPR": 20000000, "USD": 500000}


class TestPayoutEligibility(unittest.TestCase):
    def test_eligible(self):
        result = check_payout_eligibility(60000, "INR", THRESHOLDS, LIMITS)
        self.assertTrue(result.eligible)
        self.assertEqual(result.deficit, 0)
        self.assertEqual(result.message, "You are eligible for payout! Current balance: ₹600")
        self.assertEqual(result.warnings, [])

    def test_exactly_at_threshold(self):
        self.assertTrue(check_payout_eligibility(50000, "INR", THRESHOLDS, LIMITS).eligible)

    def test_below_threshold(self):
        result = check_payout_eligibility(20000, "inr", THRESHOLDS, LIMITS)
        self.assertFalse(result.eligible)
        self.assertEqual(result.deficit, 30000)
        self.assertEqual(result.currency, "INR")
        self.assertEqual(result.message, "Earn ₹300 more to reach the ₹500 payout threshold.")

    def test_above_limit_warns(self):
        result = check_payout_eligibility(25000000, "NPR", THRESHOLDS, LIMITS)
        self.assertTrue(result.eligible)
        self.assertEqual(len(result.warnings), 1)

    def test_unsupported_currency(self):
        with self.assertRaises(UnsupportedCurrencyError):
            check_payout_eligibility(1000, "EUR", THRESHOLDS, LIMITS)


class TestPayoutValidation(unittest.TestCase):
    def test_valid(self):
        validate_payout_amount(50000, "INR", THRESHOLDS, LIMITS)

    def test_zero_collects_every_error(self):
        with self.assertRaises(PayoutValidationError) as ctx:
            validate_payout_amount(0, "INR", THRESHOLDS, LIMITS)
        self.assertEqual(ctx.exception.errors, ["Payout amount must be positive", "Minimum payout is ₹500"])

    def test_over_limit(self):
        with self.assertRaises(PayoutValidationError) as ctx:
            validate_payout_amount(10000001, "INR", THRESHOLDS, LIMITS)
        self.assertEqual(ctx.exception.errors, ["Maximum payout is ₹1,00,000"])

    def test_usd(self):
        with self.assertRaises(PayoutValidationError) as ctx:
            validate_payout_amount(999, "USD", THRESHOLDS, LIMITS)
        self.assertEqual(ctx.exception.errors, ["Minimum payout is $10.00"])


if __name__ == "__main__":
    unittest.main()
