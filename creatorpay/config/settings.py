"""
Configuration settings for CreatorPay
Handles environment variables and application settings
"""
from typing import Optional, Dict, List
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "CreatorPay"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Public URL used to build redirect/callback URLs
    PUBLIC_BASE_URL: str = "http://localhost:3000"

    # Database
    DATABASE_URL: str = "sqlite:///./creatorpay.db"

    # Admin operations (manual bank transfer verification)
    ADMIN_API_TOKEN: Optional[str] = None

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
    ]

    # Outbound provider calls
    PROVIDER_TIMEOUT_SECONDS: float = 15.0

    # Stripe (international cards)
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None

    # Razorpay (India - UPI + cards)
    RAZORPAY_KEY_ID: Optional[str] = None
    RAZORPAY_KEY_SECRET: Optional[str] = None
    RAZORPAY_WEBHOOK_SECRET: Optional[str] = None
    RAZORPAY_API_BASE: str = "https://api.razorpay.com"

    # eSewa (Nepal). Defaults are the public UAT merchant credentials.
    ESEWA_MERCHANT_ID: str = "EPAYTEST"
    ESEWA_SECRET_KEY: Optional[str] = "8gBm/:&EnhH.1/q"
    ESEWA_FORM_URL: str = "https://rc-epay.esewa.com.np/api/epay/main/v2/form"
    ESEWA_STATUS_URL: str = "https://rc.esewa.com.np/api/epay/transaction/status/"

    # Khalti (Nepal)
    KHALTI_SECRET_KEY: Optional[str] = None
    KHALTI_PUBLIC_KEY: Optional[str] = None
    KHALTI_API_BASE: str = "https://a.khalti.com/api/v2"

    # Bank transfer (manual verification)
    BANK_NAME: Optional[str] = None
    BANK_ACCOUNT_NAME: str = "CreatorPay Pvt Ltd"
    BANK_ACCOUNT_NUMBER: Optional[str] = None
    BANK_IFSC_CODE: Optional[str] = None
    BANK_BRANCH_CODE: Optional[str] = None
    BANK_SWIFT_CODE: Optional[str] = None

    # Platform commission in basis points (1000 = 10%)
    COMMISSION_STANDARD_BPS: int = 1000
    COMMISSION_PREMIUM_BPS: int = 500
    COMMISSION_PROMOTIONAL_BPS: int = 300

    # Payout bounds in minor units
    PAYOUT_THRESHOLDS: Dict[str, int] = {"INR": 50000, "NPR": 100000, "USD": 1000}
    PAYOUT_LIMITS: Dict[str, int] = {"INR": 10000000, "NPR": 20000000, "USD": 500000}

    # Subscriptions, paid messages, downloads
    SUBSCRIPTION_PERIOD_DAYS: int = 30
    DM_CREDIT_TTL_HOURS: int = 24
    DOWNLOAD_SECRET: str = "change-this-download-secret"
    DOWNLOAD_TOKEN_TTL_HOURS: int = 24
    DOWNLOAD_TOKEN_ALGORITHM: str = "HS256"

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @property
    def commission_rates(self) -> Dict[str, int]:
        return {
            "STANDARD": self.COMMISSION_STANDARD_BPS,
            "PREMIUM": self.COMMISSION_PREMIUM_BPS,
            "PROMOTIONAL": self.COMMISSION_PROMOTIONAL_BPS,
        }

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env file


# Create settings instance
settings = Settings()


# Environment-specific overrides
if settings.ENVIRONMENT == "development":
    settings.DEBUG = True


# Validation
def validate_settings(current: Optional[Settings] = None):
    """Validate critical settings"""
    current = current or settings
    issues = []

    if current.DOWNLOAD_SECRET == "change-this-download-secret":
        issues.append("DOWNLOAD_SECRET must be set in production")
    if not current.ADMIN_API_TOKEN:
        issues.append("ADMIN_API_TOKEN must be set for bank transfer verification")
    if current.ESEWA_MERCHANT_ID == "EPAYTEST":
        issues.append("ESEWA_MERCHANT_ID is still the UAT merchant")

    if issues:
        raise ValueError(f"Configuration issues: {', '.join(issues)}")


# Auto-validate on import in production
if settings.ENVIRONMENT == "production":
    validate_settings()
