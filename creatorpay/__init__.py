"""CreatorPay - multi-provider payments, earnings and paid-message credits."""
