from typing import Optional, Dict, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from creatorpay.logging_config import get_logger
from creatorpay.models import AuditLog

logger = get_logger(__name__)


def log_audit(
    db: Session,
    user_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    changes: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    commit: bool = True,
):
    """
    Record an audit log entry for payment state changes.

    With commit=False the entry joins the caller's transaction and is
    written together with the change it describes.
    """
    log_entry = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        changes=changes,
        ip_address=ip_address,
    )
    db.add(log_entry)
    if not commit:
        return log_entry
    try:
        db.commit()
    except SQLAlchemyError as e:
        # Audit logging should not break the main flow
        db.rollback()
        logger.error("audit_log_failed", action=action, resource_id=resource_id, error=str(e))
    return log_entry
