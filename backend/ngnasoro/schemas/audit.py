from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Any, Optional
from ngnasoro.models.audit import AuditLogCategory, AuditLogSeverity, AuditLogStatus


class AuditLogRead(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    action: str
    category: AuditLogCategory
    severity: AuditLogSeverity
    status: AuditLogStatus
    target_resource: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotificationRead(BaseModel):
    id: UUID
    title: str
    message: str
    type: str
    action_url: Optional[str] = None
    read: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
