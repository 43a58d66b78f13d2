"""
In-app notification service
Fire-and-forget notifications for contract lifecycle events.
A failed insert is logged and rolled back, never raised to the caller.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import DEFAULT_LANGUAGE
from ..models import Notification, Profile
from ..notification_templates import render_notification

logger = logging.getLogger(__name__)


def send_notification(
    db: Session,
    user_id: str,
    notification_type: str,
    content_id: Optional[str] = None,
    language: Optional[str] = None,
) -> Optional[Notification]:
    """
    Insert a notification for ``user_id``.

    Args:
        db: Database session
        user_id: Recipient profile ID
        notification_type: Key into NOTIFICATION_TEMPLATES
        content_id: ID of the contract/booking/quote the notification is about
        language: Override for the recipient's preferred language

    Returns:
        The stored Notification, or None when delivery failed
    """
    try:
        if language is None:
            recipient = db.query(Profile).filter(Profile.id == user_id).first()
            language = (recipient.preferred_language if recipient else None) or DEFAULT_LANGUAGE

        title, message = render_notification(notification_type, language)
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            notification_type=notification_type,
            content_id=content_id,
        )
        db.add(notification)
        db.commit()
        logger.info(f"🔔 {notification_type} notification sent to {user_id}")
        return notification
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Failed to send {notification_type} notification to {user_id}: {e}")
        return None


def list_notifications(db: Session, user_id: str, unread_only: bool = False) -> list[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc()).limit(50).all()


def mark_notification_read(db: Session, notification_id: str, user_id: str) -> Optional[Notification]:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .first()
    )
    if not notification:
        return None
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    logger.debug(f"Notification {notification_id} marked read")
    return notification
