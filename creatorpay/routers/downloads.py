"""
Download redemption
Trades a signed download token for the purchased file.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from creatorpay.deps import get_db
from creatorpay.logging_config import get_logger
from creatorpay.models import Product, Purchase
from creatorpay.services.downloads import DownloadTokenError, verify_download_token

logger = get_logger(__name__)

router = APIRouter(tags=["Downloads"])

NO_STORE = {"Cache-Control": "no-store, must-revalidate"}


@router.get("/{token}")
def redeem_download(token: str, db: Session = Depends(get_db)):
    try:
        grant = verify_download_token(token)
    except DownloadTokenError as e:
        logger.warning("download_token_rejected", error=str(e))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

    purchase = (
        db.query(Purchase)
        .filter(
            Purchase.id == grant.purchase_id,
            Purchase.product_id == grant.product_id,
            Purchase.user_id == grant.user_id,
            Purchase.status == "COMPLETED",
        )
        .first()
    )
    if purchase is None:
        logger.warning("download_purchase_not_completed", purchase_id=grant.purchase_id, user_id=grant.user_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Purchase not found or not yet completed")

    product = db.get(Product, purchase.product_id)
    if product is None or not product.file_url:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product no longer available")

    logger.info("download_authorized", purchase_id=purchase.id, product_id=product.id, user_id=grant.user_id)

    if product.file_url.startswith(("http://", "https://")):
        return RedirectResponse(product.file_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT, headers=NO_STORE)
    return {
        "success": True,
        "file_url": product.file_url,
        "product": {"id": product.id, "title": product.title},
    }
