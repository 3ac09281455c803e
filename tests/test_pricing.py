import unittest

from creatorpay.psp.types import PaymentProvider
from creatorpay.services.pricing_service import (
    CommissionTier,
    FeeMethod,
    apply_bps,
    calculate_earnings,
    calculate_monthly_recurring,
    calculate_payment_fee,
    calculate_platform_commission,
    estimate_annual_earnings,
    fee_method_for,
    format_currency,
    recommended_fee_method,
    round_half_up,
)

RATES = {"STANDARD": 1000, "PREMIUM": 500, "PROMOTIONAL": 300}


class TestFees(unittest.TestCase):
    def test_upi_fee(self):
        fee = calculate_payment_fee(19900, FeeMethod.RAZORPAY_UPI)
        self.assertEqual(fee.fee, 398)
        self.assertEqual(fee.percentage, 2.0)

    def test_stripe_adds_fixed_fee(self):
        # 2.9% of $100.00 plus 30 cents
        fee = calculate_payment_fee(10000, FeeMethod.STRIPE)
        self.assertEqual(fee.fee, 320)

    def test_provider_maps_to_default_method(self):
        self.assertEqual(fee_method_for(PaymentProvider.RAZORPAY), FeeMethod.RAZORPAY_UPI)
        self.assertEqual(fee_method_for("khalti"), FeeMethod.KHALTI)
        self.assertEqual(fee_method_for("razorpay_card"), FeeMethod.RAZORPAY_CARD)

    def test_unknown_method(self):
        with self.assertRaises(ValueError):
            calculate_payment_fee(1000, "paypal")

    def test_rounds_half_up(self):
        # 25 * 2% = 0.5
        self.assertEqual(apply_bps(25, 200), 1)
        self.assertEqual(apply_bps(24, 200), 0)
        self.assertEqual(round_half_up(5, 10), 1)
        self.assertEqual(round_half_up(4, 10), 0)

    def test_rejects_bad_amounts(self):
        with self.assertRaises(ValueError):
            calculate_payment_fee(-1, FeeMethod.STRIPE)
        with self.assertRaises(TypeError):
            calculate_payment_fee(199.0, FeeMethod.STRIPE)


class TestCommission(unittest.TestCase):
    def test_tiers(self):
        self.assertEqual(calculate_platform_commission(19900, CommissionTier.STANDARD, RATES).commission, 1990)
        self.assertEqual(calculate_platform_commission(19900, CommissionTier.PREMIUM, RATES).commission, 995)
        self.assertEqual(calculate_platform_commission(19900, "promotional", RATES).commission, 597)

    def test_unknown_tier(self):
        with self.assertRaises(ValueError):
            calculate_platform_commission(1000, "GOLD", RATES)


class TestEarnings(unittest.TestCase):
    def test_subscription_split(self):
        breakdown = calculate_earnings(19900, FeeMethod.RAZORPAY_UPI, CommissionTier.STANDARD, "INR", RATES)
        self.assertEqual(breakdown.payment_fee, 398)
        self.assertEqual(breakdown.platform_commission, 1990)
        self.assertEqual(breakdown.total_fees, 2388)
        self.assertEqual(breakdown.net_earnings, 17512)
        self.assertEqual(breakdown.creator_share_percentage, 88.0)

    def test_parts_sum_to_gross(self):
        for amount in (1, 99, 19900, 123457):
            for method in FeeMethod:
                b = calculate_earnings(amount, method, CommissionTier.PREMIUM, "INR", RATES)
                self.assertEqual(b.net_earnings + b.payment_fee + b.platform_commission, amount)

    def test_zero_amount(self):
        b = calculate_earnings(0, FeeMethod.ESEWA, CommissionTier.STANDARD, "NPR", RATES)
        self.assertEqual(b.net_earnings, 0)
        self.assertEqual(b.total_fees_percentage, 0.0)

    def test_monthly_recurring(self):
        mrr = calculate_monthly_recurring([(19900, 10), (9900, 5)], FeeMethod.RAZORPAY_UPI)
        self.assertEqual(mrr["gross_revenue"], 248500)
        self.assertEqual(mrr["subscriber_count"], 15)
        self.assertEqual(mrr["net_revenue"] + mrr["total_fees"], 248500)

    def test_annual_estimate(self):
        estimate = estimate_annual_earnings(19900, FeeMethod.RAZORPAY_UPI)
        self.assertEqual(estimate["current_monthly"], 17512)
        self.assertEqual(estimate["projected_annual"], 17512 * 12)
        self.assertGreater(estimate["with_growth"], estimate["projected_annual"])

        flat = estimate_annual_earnings(19900, FeeMethod.RAZORPAY_UPI, growth_bps=0)
        self.assertEqual(flat["with_growth"], flat["projected_annual"])


class TestDisplay(unittest.TestCase):
    def test_format_currency(self):
        self.assertEqual(format_currency(19900, "INR"), "₹199")
        self.assertEqual(format_currency(10000000, "INR"), "₹1,00,000")
        self.assertEqual(format_currency(150000, "NPR"), "NPR 1500")
        self.assertEqual(format_currency(123456, "USD"), "$1,234.56")
        self.assertEqual(format_currency(123456, "EUR"), "EUR 1234.56")

    def test_recommended_method(self):
        self.assertEqual(recommended_fee_method("INR"), FeeMethod.RAZORPAY_UPI)
        self.assertEqual(recommended_fee_method("NPR"), FeeMethod.ESEWA)
        self.assertEqual(recommended_fee_method("USD"), FeeMethod.STRIPE)


if __name__ == "__main__":
    unittest.main()
