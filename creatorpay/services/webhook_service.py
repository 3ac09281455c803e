from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from creatorpay.logging_config import get_logger
from creatorpay.models import PspEvent, WebhookEvent

logger = get_logger(__name__)


def log_webhook(db: Session, provider: str, headers: dict, payload: dict) -> Optional[WebhookEvent]:
    """
    Log a raw webhook event to the database.
    Returns the WebhookEvent, or None if the log could not be written.
    """
    try:
        event = WebhookEvent(
            provider=provider,
            headers=headers,
            payload=payload,
            status="received",
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        return event
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("webhook_log_failed", provider=provider, error=str(e))
        return None


def update_webhook_status(db: Session, event_id: Optional[int], status: str, error: Optional[str] = None):
    """
    Update the status of a webhook event.
    """
    if event_id is None:
        return
    try:
        event = db.query(WebhookEvent).filter(WebhookEvent.id == event_id).first()
        if event:
            event.status = status
            event.processed_at = datetime.now(timezone.utc)
            if error:
                event.error = error[:2000]
            db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("webhook_status_update_failed", webhook_id=event_id, error=str(e))


def claim_event(db: Session, provider: str, event_type: str, psp_event_id: Optional[str], payload: dict) -> bool:
    """
    Reserve a provider event id before it is processed.

    The unique constraint on psp_event_id decides between concurrent
    deliveries: exactly one claim commits, every other one gets False.
    Events without an id are always claimable.
    """
    if not psp_event_id:
        return True
    try:
        db.add(PspEvent(
            provider=provider,
            event_type=event_type[:64],
            psp_event_id=psp_event_id,
            payload=payload,
        ))
        db.commit()
        return True
    except IntegrityError:
        db.rollback()
        logger.info("psp_event_already_claimed", provider=provider, psp_event_id=psp_event_id)
        return False


def release_event(db: Session, psp_event_id: Optional[str]) -> None:
    """Drop a claim whose processing failed so the provider's retry is applied."""
    if not psp_event_id:
        return
    try:
        db.query(PspEvent).filter(PspEvent.psp_event_id == psp_event_id).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("psp_event_release_failed", psp_event_id=psp_event_id, error=str(e))
