"""
In-app notification service
Workflow events (bookings, approvals, cancellations) leave a notification row
for each affected user. Delivery over email is handled elsewhere.
"""

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import Notification

logger = logging.getLogger(__name__)


def notify(
    db: Session,
    user_id: int,
    title: str,
    message: str,
    type: str = "info",
    data: Optional[dict[str, Any]] = None,
    commit: bool = True,
) -> Optional[Notification]:
    """
    Create an in-app notification

    A failure here never breaks the workflow that triggered it; it is logged
    and None is returned.
    """
    try:
        notification = Notification(user_id=user_id, title=title, message=message, type=type, data=data or {})
        db.add(notification)
        if commit:
            db.commit()
            db.refresh(notification)
        logger.info(f"🔔 Notification '{type}' queued for user {user_id}")
        return notification
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to create notification for user {user_id}: {e}")
        return None
