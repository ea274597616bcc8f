from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ngnasoro.core.permissions import AuthContext
from ngnasoro.deps import get_auth_context, get_db
from ngnasoro.schemas.audit import NotificationRead
from ngnasoro.services.notifications import list_notifications, mark_read

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=list[NotificationRead])
def my_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return list_notifications(db, ctx.user_id, unread_only=unread_only, limit=limit)


@router.post("/{notification_id}/read", response_model=NotificationRead)
def read_notification(
    notification_id: UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    notification = mark_read(db, notification_id, ctx.user_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification
