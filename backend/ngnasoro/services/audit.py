"""Append-only audit trail.

``log_audit_event`` only adds the row to the session; the caller commits it
together with the change it describes. Reads filter in SQL.
"""
import csv
import io
import json
import logging
from datetime import datetime
from typing import Iterable, Optional, Sequence, Union

from sqlalchemy.orm import Session

from ngnasoro.models.audit import AuditLog, AuditLogCategory, AuditLogSeverity, AuditLogStatus

logger = logging.getLogger("ngnasoro.audit")

CSV_COLUMNS = [
    "id", "created_at", "user_id", "action", "category", "severity",
    "status", "target_resource", "details", "error_message", "ip_address",
]


def log_audit_event(
    db: Session,
    action: str,
    category: AuditLogCategory,
    severity: AuditLogSeverity = AuditLogSeverity.INFO,
    status: AuditLogStatus = AuditLogStatus.SUCCESS,
    user_id=None,
    target_resource: Optional[str] = None,
    details: Optional[dict] = None,
    error_message: Optional[str] = None,
    ip_address: Optional[str] = None,
    commit: bool = False,
) -> AuditLog:
    entry = AuditLog(
        user_id=user_id,
        action=action,
        category=category,
        severity=severity,
        status=status,
        target_resource=target_resource,
        details=_jsonable(details) if details else None,
        error_message=error_message,
        ip_address=ip_address,
    )
    db.add(entry)
    if commit:
        db.commit()
        db.refresh(entry)
    logger.info("audit %s category=%s status=%s target=%s", action, category.value, status.value, target_resource)
    return entry


def _as_list(value: Union[str, Sequence[str], None]) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def get_audit_logs(
    db: Session,
    category: Union[str, Sequence[str], None] = None,
    severity: Union[str, Sequence[str], None] = None,
    status: Optional[str] = None,
    user_id=None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: Optional[int] = 100,
) -> list[AuditLog]:
    query = db.query(AuditLog)

    categories = _as_list(category)
    if categories:
        query = query.filter(AuditLog.category.in_(categories))

    severities = _as_list(severity)
    if severities:
        query = query.filter(AuditLog.severity.in_(severities))

    if status:
        query = query.filter(AuditLog.status == status)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    if start_date:
        query = query.filter(AuditLog.created_at >= start_date)
    if end_date:
        query = query.filter(AuditLog.created_at <= end_date)

    query = query.order_by(AuditLog.created_at.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def export_audit_logs_csv(logs: Iterable[AuditLog]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for log in logs:
        writer.writerow([
            log.id,
            log.created_at.isoformat() if log.created_at else "",
            log.user_id or "",
            log.action,
            _enum_value(log.category),
            _enum_value(log.severity),
            _enum_value(log.status),
            log.target_resource or "",
            json.dumps(log.details, ensure_ascii=False) if log.details else "",
            log.error_message or "",
            log.ip_address or "",
        ])
    return buffer.getvalue()


def _enum_value(value) -> str:
    return getattr(value, "value", value) or ""


def _jsonable(details: dict) -> dict:
    # UUID / Decimal / datetime values are stored as strings
    return json.loads(json.dumps(details, default=str))
