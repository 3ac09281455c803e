import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from creatorpay.config import settings
from creatorpay.db import get_db  # noqa: F401  re-exported for routers
from creatorpay.psp.dispatcher import PSPDispatcher
from creatorpay.psp.errors import ConfigurationError, ProviderNotConfiguredError
from creatorpay.services.fulfillment import PaymentFulfillment


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    Caller identity, set by the upstream auth gateway.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id


def require_admin(
    x_admin_token: Optional[str] = Header(None),
    user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> str:
    """
    Dependency for admin-only routes. Returns the admin's id for the audit trail.
    """
    expected = settings.ADMIN_API_TOKEN
    if not expected or not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user_id or "admin"


def get_dispatcher(request: Request) -> PSPDispatcher:
    return request.app.state.dispatcher


def get_fulfillment(dispatcher: PSPDispatcher = Depends(get_dispatcher)) -> PaymentFulfillment:
    return dispatcher.fulfillment


def configuration_http_error(e: ConfigurationError) -> HTTPException:
    """Unknown provider is the caller's mistake; missing credentials are ours."""
    if isinstance(e, ProviderNotConfiguredError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"{e.provider} is not available")
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
