"""
Signed, time-limited download tokens for purchased products.

Tokens are JWTs carrying the purchase, product and buyer plus an `exp`
claim, signed with DOWNLOAD_SECRET.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt

from creatorpay.config import settings

TOKEN_TYPE = "download"


class DownloadTokenError(ValueError):
    """Token is malformed, tampered with or expired."""


@dataclass(frozen=True)
class DownloadGrant:
    purchase_id: str
    product_id: str
    user_id: str
    expires_at: datetime


def generate_download_token(
    purchase_id: str,
    product_id: str,
    user_id: str,
    expiry_hours: Optional[int] = None,
    secret: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    secret = secret or settings.DOWNLOAD_SECRET
    hours = expiry_hours if expiry_hours is not None else settings.DOWNLOAD_TOKEN_TTL_HOURS
    now = now or datetime.now(timezone.utc)

    claims = {
        "sub": user_id,
        "purchase_id": purchase_id,
        "product_id": product_id,
        "type": TOKEN_TYPE,
        "exp": now + timedelta(hours=hours),
    }
    return jwt.encode(claims, secret, algorithm=settings.DOWNLOAD_TOKEN_ALGORITHM)


def verify_download_token(token: str, secret: Optional[str] = None) -> DownloadGrant:
    """
    Raises:
        DownloadTokenError: If the token is malformed, forged or expired
    """
    secret = secret or settings.DOWNLOAD_SECRET
    try:
        claims = jwt.decode(token, secret, algorithms=[settings.DOWNLOAD_TOKEN_ALGORITHM])
    except ExpiredSignatureError:
        raise DownloadTokenError("Download link has expired") from None
    except JWTError:
        raise DownloadTokenError("Invalid download token") from None

    try:
        if claims.get("type") != TOKEN_TYPE:
            raise KeyError("type")
        return DownloadGrant(
            purchase_id=str(claims["purchase_id"]),
            product_id=str(claims["product_id"]),
            user_id=str(claims["sub"]),
            expires_at=datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc),
        )
    except (KeyError, TypeError, ValueError):
        raise DownloadTokenError("Invalid download token") from None
