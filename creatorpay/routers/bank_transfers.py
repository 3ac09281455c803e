"""
Admin: manual bank transfer verification.
"""
from fastapi import APIRouter, Depends, HTTPException, status

from creatorpay.deps import configuration_http_error, get_dispatcher, require_admin
from creatorpay.logging_config import get_logger
from creatorpay.psp.bank_transfer_adapter import BankTransferAdapter
from creatorpay.psp.dispatcher import PSPDispatcher
from creatorpay.psp.errors import ConfigurationError, PaymentNotFoundError
from creatorpay.psp.types import PaymentProvider
from creatorpay.schemas_pkg import BankTransferRejectRequest, BankTransferVerifyRequest

logger = get_logger(__name__)

router = APIRouter(tags=["Admin"])


def _adapter(dispatcher: PSPDispatcher) -> BankTransferAdapter:
    try:
        return dispatcher.get_adapter(PaymentProvider.BANK_TRANSFER)
    except ConfigurationError as e:
        raise configuration_http_error(e)


@router.post("/{order_id}/verify")
def verify_bank_transfer(
    order_id: str,
    body: BankTransferVerifyRequest,
    admin_id: str = Depends(require_admin),
    dispatcher: PSPDispatcher = Depends(get_dispatcher),
):
    adapter = _adapter(dispatcher)
    try:
        changed = adapter.verify_bank_transfer(order_id, body.transaction_id, body.note, admin_id)
    except PaymentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    payment = adapter.fulfillment.get_payment(PaymentProvider.BANK_TRANSFER, order_id)
    if not changed and payment.status != "COMPLETED":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Bank transfer is already {payment.status.lower()}",
        )

    logger.info("bank_transfer_verified", order_id=order_id, admin_id=admin_id, changed=changed)
    return {"order_id": order_id, "status": payment.status, "changed": changed}


@router.post("/{order_id}/reject")
def reject_bank_transfer(
    order_id: str,
    body: BankTransferRejectRequest,
    admin_id: str = Depends(require_admin),
    dispatcher: PSPDispatcher = Depends(get_dispatcher),
):
    adapter = _adapter(dispatcher)
    try:
        changed = adapter.reject_bank_transfer(order_id, body.reason, admin_id)
    except PaymentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    payment = adapter.fulfillment.get_payment(PaymentProvider.BANK_TRANSFER, order_id)
    if not changed and payment.status != "FAILED":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Bank transfer is already {payment.status.lower()}",
        )

    logger.info("bank_transfer_rejected", order_id=order_id, admin_id=admin_id, changed=changed)
    return {"order_id": order_id, "status": payment.status, "changed": changed}
