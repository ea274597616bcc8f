from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ngnasoro.core.permissions import AuthContext, Capability
from ngnasoro.deps import get_auth_context, get_db, require_capability
from ngnasoro.models.subsidy import SubsidyPriority, SubsidyStatus
from ngnasoro.schemas.subsidy import (
    SubsidyActivityRead,
    SubsidyApproval,
    SubsidyPriorityUpdate,
    SubsidyRejection,
    SubsidyRequestCreate,
    SubsidyRequestRead,
)
from ngnasoro.services import subsidies
from ngnasoro.services.credit import WorkflowError
from ngnasoro.services.ledger import LedgerError

router = APIRouter(prefix="/subsidies", tags=["Subsidies"])


def _raise(e: Exception):
    if isinstance(e, subsidies.SubsidyNotFound):
        raise HTTPException(status_code=404, detail=str(e))
    if str(e).startswith("Request is not"):
        raise HTTPException(status_code=409, detail=str(e))
    raise HTTPException(status_code=400, detail=str(e))


def _visible_request(db: Session, request_id: UUID, ctx: AuthContext):
    try:
        request = subsidies.get_request(db, request_id)
    except subsidies.SubsidyNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    if not ctx.can_access_sfd(request.sfd_id):
        raise HTTPException(status_code=403, detail="Permission denied")
    return request


@router.post("/requests", response_model=SubsidyRequestRead, status_code=status.HTTP_201_CREATED)
def create_request(
    data: SubsidyRequestCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    if not (ctx.can(Capability.REQUEST_SUBSIDY) or ctx.can(Capability.MANAGE_SUBSIDIES)):
        raise HTTPException(status_code=403, detail="Permission denied")
    sfd_id = data.sfd_id or ctx.sfd_id
    if sfd_id is None:
        raise HTTPException(status_code=400, detail="sfd_id is required")
    if not ctx.can_access_sfd(sfd_id):
        raise HTTPException(status_code=403, detail="Permission denied")

    try:
        return subsidies.create_request(
            db,
            sfd_id=sfd_id,
            amount=data.amount,
            purpose=data.purpose,
            requested_by=ctx.user_id,
            justification=data.justification,
            expected_impact=data.expected_impact,
            region=data.region,
            priority=data.priority.value,
        )
    except (WorkflowError, LedgerError) as e:
        _raise(e)


@router.get("/requests", response_model=list[SubsidyRequestRead])
def list_requests(
    status: Optional[SubsidyStatus] = Query(None),
    priority: Optional[SubsidyPriority] = Query(None),
    sfd_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    if ctx.can(Capability.MANAGE_SUBSIDIES):
        scoped = sfd_id
    elif ctx.can(Capability.REQUEST_SUBSIDY):
        scoped = ctx.sfd_id
    else:
        raise HTTPException(status_code=403, detail="Permission denied")
    return subsidies.list_requests(
        db,
        sfd_id=scoped,
        status=status.value if status else None,
        priority=priority.value if priority else None,
    )


@router.get("/requests/{request_id}", response_model=SubsidyRequestRead)
def get_request(request_id: UUID, db: Session = Depends(get_db), ctx: AuthContext = Depends(get_auth_context)):
    return _visible_request(db, request_id, ctx)


@router.get("/requests/{request_id}/activities", response_model=list[SubsidyActivityRead])
def get_activities(request_id: UUID, db: Session = Depends(get_db), ctx: AuthContext = Depends(get_auth_context)):
    _visible_request(db, request_id, ctx)
    return subsidies.get_activities(db, request_id)


@router.post("/requests/{request_id}/approve", response_model=SubsidyRequestRead)
def approve_request(
    request_id: UUID,
    data: SubsidyApproval,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.MANAGE_SUBSIDIES)),
):
    try:
        return subsidies.approve_request(
            db, request_id, reviewer_id=ctx.user_id, approved_amount=data.approved_amount, comments=data.comments
        )
    except (WorkflowError, LedgerError) as e:
        _raise(e)


@router.post("/requests/{request_id}/reject", response_model=SubsidyRequestRead)
def reject_request(
    request_id: UUID,
    data: SubsidyRejection,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.MANAGE_SUBSIDIES)),
):
    try:
        return subsidies.reject_request(db, request_id, reviewer_id=ctx.user_id, reason=data.reason)
    except WorkflowError as e:
        _raise(e)


@router.post("/requests/{request_id}/complete", response_model=SubsidyRequestRead)
def complete_request(
    request_id: UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.MANAGE_SUBSIDIES)),
):
    try:
        return subsidies.complete_request(db, request_id, performed_by=ctx.user_id)
    except WorkflowError as e:
        _raise(e)


@router.patch("/requests/{request_id}/priority", response_model=SubsidyRequestRead)
def update_priority(
    request_id: UUID,
    data: SubsidyPriorityUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.MANAGE_SUBSIDIES)),
):
    try:
        return subsidies.update_priority(db, request_id, data.priority.value, performed_by=ctx.user_id)
    except WorkflowError as e:
        _raise(e)
