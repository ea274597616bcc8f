import json
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ngnasoro.models.notification import AdminNotification


def notify(
    db: Session,
    recipient_id,
    title: str,
    message: str,
    type: str,
    sender_id=None,
    action_url: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> AdminNotification:
    notification = AdminNotification(
        recipient_id=recipient_id,
        sender_id=sender_id,
        title=title,
        message=message,
        type=type,
        action_url=action_url,
        meta=json.loads(json.dumps(metadata, default=str)) if metadata else None,
    )
    db.add(notification)
    return notification


def notify_many(db: Session, recipient_ids: Iterable, **kwargs) -> list[AdminNotification]:
    return [notify(db, recipient_id, **kwargs) for recipient_id in set(recipient_ids)]


def list_notifications(db: Session, recipient_id, unread_only: bool = False, limit: int = 50):
    query = db.query(AdminNotification).filter(AdminNotification.recipient_id == recipient_id)
    if unread_only:
        query = query.filter(AdminNotification.read.is_(False))
    return query.order_by(AdminNotification.created_at.desc()).limit(limit).all()


def mark_read(db: Session, notification_id, recipient_id) -> Optional[AdminNotification]:
    notification = (
        db.query(AdminNotification)
        .filter(AdminNotification.id == notification_id, AdminNotification.recipient_id == recipient_id)
        .first()
    )
    if not notification:
        return None
    notification.read = True
    db.commit()
    db.refresh(notification)
    return notification


def format_fcfa(amount) -> str:
    # 250000 -> "250 000"
    return f"{int(amount):,}".replace(",", " ")
