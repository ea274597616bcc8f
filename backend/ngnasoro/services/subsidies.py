"""MEREF subsidy (fund) requests raised by SFDs.

pending -> approved -> completed, or pending -> rejected.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ngnasoro.core.permissions import Role
from ngnasoro.models.audit import AuditLogCategory
from ngnasoro.models.sfd import Sfd
from ngnasoro.models.subsidy import (
    SubsidyPriority,
    SubsidyRequest,
    SubsidyRequestActivity,
    SubsidyStatus,
)
from ngnasoro.models.user import User
from ngnasoro.services.audit import log_audit_event
from ngnasoro.services.credit import WorkflowError
from ngnasoro.services.ledger import to_amount
from ngnasoro.services.notifications import format_fcfa, notify_many

logger = logging.getLogger("ngnasoro.subsidies")

# Approved amount may exceed the requested amount by at most 50 %
MAX_APPROVAL_RATIO = Decimal("1.5")


class SubsidyNotFound(WorkflowError):
    pass


def _record_activity(db: Session, request: SubsidyRequest, activity_type: str, description: str, performed_by, details=None):
    db.add(SubsidyRequestActivity(
        request_id=request.id,
        activity_type=activity_type,
        description=description,
        performed_by=performed_by,
        details=details,
    ))


def _admin_ids(db: Session) -> list:
    return [row.id for row in db.query(User.id).filter(User.role == Role.ADMIN.value, User.is_active.is_(True))]


def _sfd_admin_ids(db: Session, sfd_id) -> list:
    return [
        row.id for row in db.query(User.id).filter(
            User.role == Role.SFD_ADMIN.value, User.sfd_id == sfd_id, User.is_active.is_(True)
        )
    ]


def create_request(
    db: Session,
    sfd_id,
    amount,
    purpose: str,
    requested_by,
    justification: Optional[str] = None,
    expected_impact: Optional[str] = None,
    region: Optional[str] = None,
    priority: str = SubsidyPriority.NORMAL.value,
) -> SubsidyRequest:
    value = to_amount(amount)
    if value <= 0:
        raise WorkflowError("Amount must be greater than 0")
    if not purpose or not purpose.strip():
        raise WorkflowError("Purpose is required")
    try:
        priority = SubsidyPriority(priority)
    except ValueError:
        raise WorkflowError(f"Invalid priority: {priority}")

    sfd = db.query(Sfd).filter(Sfd.id == sfd_id).first()
    if not sfd:
        raise SubsidyNotFound("SFD not found")

    request = SubsidyRequest(
        sfd_id=sfd.id,
        amount=value,
        purpose=purpose.strip(),
        justification=justification,
        expected_impact=expected_impact,
        region=region or sfd.region,
        priority=priority,
        status=SubsidyStatus.PENDING,
        requested_by=requested_by,
    )
    db.add(request)
    db.flush()
    _record_activity(db, request, "request_created", "Demande de financement créée", requested_by)
    notify_many(
        db,
        _admin_ids(db),
        sender_id=requested_by,
        title="Nouvelle demande de subvention",
        message=f"{sfd.name} demande {format_fcfa(value)} FCFA",
        type="subsidy",
        action_url=f"/meref/subsidies/requests/{request.id}",
    )
    log_audit_event(
        db,
        action="fund_request_submit",
        category=AuditLogCategory.SUBSIDY,
        user_id=requested_by,
        target_resource=f"subsidy_requests/{request.id}",
        details={"sfd_id": sfd.id, "amount": value, "priority": priority.value},
    )
    db.commit()
    db.refresh(request)
    logger.info("Subsidy request %s created for SFD %s", request.id, sfd.code)
    return request


def list_requests(db: Session, sfd_id=None, status: Optional[str] = None, priority: Optional[str] = None):
    query = db.query(SubsidyRequest)
    if sfd_id:
        query = query.filter(SubsidyRequest.sfd_id == sfd_id)
    if status:
        query = query.filter(SubsidyRequest.status == status)
    if priority:
        query = query.filter(SubsidyRequest.priority == priority)
    return query.order_by(SubsidyRequest.created_at.desc()).all()


def get_request(db: Session, request_id) -> SubsidyRequest:
    request = db.query(SubsidyRequest).filter(SubsidyRequest.id == request_id).first()
    if not request:
        raise SubsidyNotFound("Subsidy request not found")
    return request


def get_activities(db: Session, request_id):
    return (
        db.query(SubsidyRequestActivity)
        .filter(SubsidyRequestActivity.request_id == request_id)
        .order_by(SubsidyRequestActivity.created_at.asc())
        .all()
    )


def _claim(db: Session, request: SubsidyRequest, expected: SubsidyStatus, **values) -> None:
    result = db.execute(
        update(SubsidyRequest)
        .where(SubsidyRequest.id == request.id, SubsidyRequest.status == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise WorkflowError(f"Request is not {expected.value} (current status: {request.status.value})")


def approve_request(db: Session, request_id, reviewer_id, approved_amount=None, comments: Optional[str] = None) -> SubsidyRequest:
    request = get_request(db, request_id)
    if request.status != SubsidyStatus.PENDING:
        raise WorkflowError(f"Request is not pending (current status: {request.status.value})")

    requested = Decimal(request.amount)
    final_amount = to_amount(approved_amount) if approved_amount is not None else requested
    if final_amount <= 0:
        raise WorkflowError("Approved amount must be positive")
    if final_amount > requested * MAX_APPROVAL_RATIO:
        raise WorkflowError("Approved amount cannot exceed 150% of requested amount")

    try:
        _claim(
            db, request, SubsidyStatus.PENDING,
            status=SubsidyStatus.APPROVED,
            approved_amount=final_amount,
            reviewed_by=reviewer_id,
            reviewed_at=datetime.now(timezone.utc),
            decision_comments=comments,
        )
        db.execute(
            update(Sfd)
            .where(Sfd.id == request.sfd_id)
            .values(subsidy_balance=Sfd.subsidy_balance + final_amount)
            .execution_options(synchronize_session=False)
        )
        _record_activity(
            db, request, "request_approved",
            f"Demande approuvée: {format_fcfa(final_amount)} FCFA alloués",
            reviewer_id, {"comments": comments, "previous_status": SubsidyStatus.PENDING.value},
        )
        allocated = ""
        if final_amount != requested:
            allocated = f" (montant alloué: {format_fcfa(final_amount)} FCFA)"
        notify_many(
            db,
            _sfd_admin_ids(db, request.sfd_id),
            sender_id=reviewer_id,
            title="Subvention approuvée",
            message=f"Votre demande de {format_fcfa(requested)} FCFA a été approuvée{allocated}",
            type="subsidy_approved",
            action_url="/sfd/subsidies/active",
        )
        log_audit_event(
            db,
            action="subsidy_approval",
            category=AuditLogCategory.SUBSIDY,
            user_id=reviewer_id,
            target_resource=f"subsidy_requests/{request.id}",
            details={"sfd_id": request.sfd_id, "amount": final_amount, "comments": comments},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(request)
    logger.info("Subsidy request %s approved for %s", request.id, final_amount)
    return request


def reject_request(db: Session, request_id, reviewer_id, reason: str) -> SubsidyRequest:
    if not reason or not reason.strip():
        raise WorkflowError("Rejection reason is required")
    request = get_request(db, request_id)
    if request.status != SubsidyStatus.PENDING:
        raise WorkflowError(f"Request is not pending (current status: {request.status.value})")

    try:
        _claim(
            db, request, SubsidyStatus.PENDING,
            status=SubsidyStatus.REJECTED,
            reviewed_by=reviewer_id,
            reviewed_at=datetime.now(timezone.utc),
            decision_comments=reason.strip(),
        )
        _record_activity(db, request, "request_rejected", f"Demande rejetée: {reason.strip()}", reviewer_id)
        notify_many(
            db,
            _sfd_admin_ids(db, request.sfd_id),
            sender_id=reviewer_id,
            title="Subvention rejetée",
            message=f"Votre demande de subvention a été rejetée: {reason.strip()}",
            type="subsidy_rejected",
            action_url=f"/sfd/subsidies/requests/{request.id}",
        )
        log_audit_event(
            db,
            action="subsidy_rejection",
            category=AuditLogCategory.SUBSIDY,
            user_id=reviewer_id,
            target_resource=f"subsidy_requests/{request.id}",
            details={"sfd_id": request.sfd_id, "reason": reason.strip()},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(request)
    return request


def complete_request(db: Session, request_id, performed_by) -> SubsidyRequest:
    request = get_request(db, request_id)
    if request.status != SubsidyStatus.APPROVED:
        raise WorkflowError(f"Request is not approved (current status: {request.status.value})")

    try:
        _claim(db, request, SubsidyStatus.APPROVED, status=SubsidyStatus.COMPLETED, completed_at=datetime.now(timezone.utc))
        _record_activity(db, request, "funds_transferred", "Fonds transférés à la SFD", performed_by)
        log_audit_event(
            db,
            action="subsidy_transfer_completed",
            category=AuditLogCategory.SUBSIDY,
            user_id=performed_by,
            target_resource=f"subsidy_requests/{request.id}",
            details={"sfd_id": request.sfd_id, "amount": request.approved_amount},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(request)
    return request


def update_priority(db: Session, request_id, priority: str, performed_by) -> SubsidyRequest:
    try:
        new_priority = SubsidyPriority(priority)
    except ValueError:
        raise WorkflowError(f"Invalid priority: {priority}")
    request = get_request(db, request_id)
    previous = request.priority
    request.priority = new_priority
    _record_activity(
        db, request, "priority_changed",
        f"Priorité modifiée: {previous.value} -> {new_priority.value}",
        performed_by, {"previous": previous.value, "new": new_priority.value},
    )
    db.commit()
    db.refresh(request)
    return request
