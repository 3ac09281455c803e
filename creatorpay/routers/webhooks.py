"""
Provider webhooks: POST /v1/webhooks/{stripe|razorpay|khalti}
- Raw body logged to webhook_events before anything else
- Authenticity checked by the adapter before any field is trusted
- Idempotent via PspEvent table keyed by the provider's event id, claimed
  before processing
"""
import json

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from creatorpay.deps import configuration_http_error, get_db, get_dispatcher
from creatorpay.logging_config import get_logger
from creatorpay.psp.dispatcher import PSPDispatcher, parse_provider
from creatorpay.psp.errors import ConfigurationError, WebhookVerificationError
from creatorpay.psp.types import PaymentProvider
from creatorpay.services.webhook_service import (
    claim_event,
    log_webhook,
    release_event,
    update_webhook_status,
)

logger = get_logger(__name__)

router = APIRouter(tags=["Webhooks"])

WEBHOOK_PROVIDERS = (PaymentProvider.STRIPE, PaymentProvider.RAZORPAY, PaymentProvider.KHALTI)


@router.post("/{provider}")
async def receive_webhook(
    provider: str,
    request: Request,
    db: Session = Depends(get_db),
    dispatcher: PSPDispatcher = Depends(get_dispatcher),
):
    try:
        provider_enum = parse_provider(provider)
    except ConfigurationError as e:
        raise configuration_http_error(e)
    if provider_enum not in WEBHOOK_PROVIDERS:
        raise HTTPException(status_code=404, detail=f"{provider_enum.value} does not send webhooks")

    body = await request.body()
    try:
        payload_dict = json.loads(body)
    except ValueError:
        payload_dict = {"raw": body.decode(errors="replace")}

    # 1. Log raw webhook
    wh_event = log_webhook(db, provider_enum.value, dict(request.headers), payload_dict)
    wh_id = wh_event.id if wh_event else None

    # 2. Authenticity
    try:
        payload = dispatcher.verify_webhook(provider_enum, body, request.headers)
    except ConfigurationError as e:
        update_webhook_status(db, wh_id, "failed", str(e))
        raise configuration_http_error(e)
    except WebhookVerificationError as e:
        update_webhook_status(db, wh_id, "failed", str(e))
        raise HTTPException(status_code=400, detail=str(e))

    # 3. Replay
    if not claim_event(db, provider_enum.value, payload.event, payload.event_id, payload_dict):
        update_webhook_status(db, wh_id, "duplicate")
        logger.info("webhook_duplicate", provider=provider_enum.value, event_id=payload.event_id)
        return {"status": "ok", "duplicate": True}

    # 4. Apply
    try:
        await dispatcher.process_webhook(payload)
    except Exception as e:
        logger.error(
            "webhook_processing_failed",
            provider=provider_enum.value,
            webhook_event=payload.event,
            event_id=payload.event_id,
            exc_info=e,
        )
        release_event(db, payload.event_id)
        update_webhook_status(db, wh_id, "failed", str(e))
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    update_webhook_status(db, wh_id, "processed")
    logger.info("webhook_processed", provider=provider_enum.value, webhook_event=payload.event, event_id=payload.event_id)
    return {"status": "ok", "duplicate": False}
