"""
Structured logging configuration using structlog.
"""
import structlog
import logging
import sys
from typing import Any, Dict

from creatorpay.config import settings

# Configure standard library logging
logging.basicConfig(
    format="%(message)s",
    stream=sys.stdout,
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
)


def add_app_context(logger: Any, method_name: str, event_dict: Dict) -> Dict:
    """Add application context to log entries."""
    event_dict['app'] = 'creatorpay'
    event_dict['environment'] = settings.ENVIRONMENT
    return event_dict


# Never written to logs in full
SECRET_KEYS = {
    "signature",
    "authorization",
    "x-admin-token",
    "stripe-signature",
    "x-razorpay-signature",
    "key_secret",
    "download_token",
}
ACCOUNT_KEYS = {"account_number", "bank_account_number"}


def _mask(key: str, value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _mask(str(k).lower(), v) for k, v in value.items()}
    if value is None:
        return value
    if key in SECRET_KEYS:
        return "***"
    if key in ACCOUNT_KEYS:
        return f"****{str(value)[-4:]}"
    return value


def mask_payment_secrets(logger: Any, method_name: str, event_dict: Dict) -> Dict:
    """Mask signatures, credentials and bank account numbers, nested dicts included."""
    return {key: _mask(str(key).lower(), value) for key, value in event_dict.items()}


def configure_logging(json_logs: bool = True):
    """Configure structlog with processors."""
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            add_app_context,
            mask_payment_secrets,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Initialize logging (console output while developing)
configure_logging(json_logs=settings.ENVIRONMENT != "development")


def get_logger(name: str = __name__):
    """Get a structured logger instance."""
    return structlog.get_logger(name)
