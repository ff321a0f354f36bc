from sqlalchemy.orm import Session
from database.models.user_model import AuditLog
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

SET_STATUS = "SET_STATUS"
ADMIN_FEEDBACK = "ADMIN_FEEDBACK"
REJECT_OVERDUE = "REJECT_OVERDUE"
DELETE_PAPER = "DELETE_PAPER"
TOGGLE_ADMIN = "TOGGLE_ADMIN"
AI_CHECK = "AI_CHECK"


def log_action(
    db: Session,
    user_id: str,
    action: str,
    target_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """
    Records an administrative action in the same transaction as the change it
    describes. Committing is left to the caller.
    """
    log_entry = AuditLog(
        id=str(uuid.uuid4()),
        user_id=user_id,
        action=action,
        target_id=target_id,
        payload=payload or None,
        ip_address=ip_address,
        timestamp=datetime.now(timezone.utc)
    )
    db.add(log_entry)
    logger.info(f"AUDIT action={action} user_id={user_id} target={target_id}")
    return log_entry


def list_actions_for_target(db: Session, target_id: str) -> List[AuditLog]:
    return (
        db.query(AuditLog)
        .filter(AuditLog.target_id == target_id)
        .order_by(AuditLog.timestamp.asc())
        .all()
    )
