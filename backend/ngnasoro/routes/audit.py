from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ngnasoro.core.permissions import AuthContext, Capability
from ngnasoro.deps import get_db, require_capability
from ngnasoro.models.audit import AuditLogCategory, AuditLogSeverity, AuditLogStatus
from ngnasoro.schemas.audit import AuditLogRead
from ngnasoro.services.audit import export_audit_logs_csv, get_audit_logs

router = APIRouter(prefix="/audit-logs", tags=["Audit"])


def _values(items):
    return [item.value for item in items] if items else None


@router.get("", response_model=list[AuditLogRead])
def list_audit_logs(
    category: Optional[list[AuditLogCategory]] = Query(None),
    severity: Optional[list[AuditLogSeverity]] = Query(None),
    status: Optional[AuditLogStatus] = Query(None),
    user_id: Optional[UUID] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.VIEW_AUDIT_LOGS)),
):
    return get_audit_logs(
        db,
        category=_values(category),
        severity=_values(severity),
        status=status.value if status else None,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )


@router.get("/export")
def export_audit_logs(
    category: Optional[list[AuditLogCategory]] = Query(None),
    severity: Optional[list[AuditLogSeverity]] = Query(None),
    status: Optional[AuditLogStatus] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.VIEW_AUDIT_LOGS)),
):
    logs = get_audit_logs(
        db,
        category=_values(category),
        severity=_values(severity),
        status=status.value if status else None,
        start_date=start_date,
        end_date=end_date,
        limit=None,
    )
    filename = f"audit_logs_{datetime.now(timezone.utc):%Y%m%d}.csv"
    return Response(
        content=export_audit_logs_csv(logs),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
