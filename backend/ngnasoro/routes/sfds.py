from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from ngnasoro.core.permissions import AuthContext, Capability
from ngnasoro.deps import admin_required, get_db, require_capability
from ngnasoro.models.sfd import ClientStatus, SfdStatus
from ngnasoro.schemas.sfd import (
    ClientCreate,
    ClientRead,
    ClientRejection,
    ClientValidation,
    KycUpgrade,
    SfdCreate,
    SfdRead,
    SfdStatusUpdate,
)
from ngnasoro.services import clients
from ngnasoro.services.ledger import ClientNotFound
from ngnasoro.services.roles import find_user_by_email

router = APIRouter(tags=["SFDs"])


class ClientUserLink(BaseModel):
    email: EmailStr


def _bad_request(e: Exception):
    raise HTTPException(status_code=400, detail=str(e))


# --- SFDs ---
@router.post("/sfds", response_model=SfdRead, status_code=status.HTTP_201_CREATED)
def create_sfd(
    data: SfdCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.CREATE_SFD)),
):
    try:
        return clients.create_sfd(db, data.name, data.code, region=data.region, performed_by=ctx.user_id)
    except clients.ClientError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/sfds", response_model=list[SfdRead])
def list_sfds(
    status: Optional[SfdStatus] = Query(None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.VIEW_BALANCES)),
):
    rows = clients.list_sfds(db, status=status.value if status else None)
    if not ctx.is_admin:
        rows = [sfd for sfd in rows if sfd.id == ctx.sfd_id]
    return rows


@router.patch("/sfds/{sfd_id}/status", response_model=SfdRead)
def set_sfd_status(
    sfd_id: UUID,
    data: SfdStatusUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(admin_required),
):
    try:
        return clients.set_sfd_status(db, sfd_id, data.status.value, performed_by=ctx.user_id, reason=data.reason)
    except clients.ClientError as e:
        raise HTTPException(status_code=404, detail=str(e))


# --- Clients ---
def _client_for(db: Session, client_id: UUID, ctx: AuthContext):
    try:
        client = clients.get_client(db, client_id)
    except ClientNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    if not ctx.can_access_sfd(client.sfd_id):
        raise HTTPException(status_code=403, detail="Permission denied")
    return client


@router.post("/clients", response_model=ClientRead, status_code=status.HTTP_201_CREATED)
def create_client(
    data: ClientCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.MANAGE_CLIENTS)),
):
    sfd_id = data.sfd_id or ctx.sfd_id
    if sfd_id is None:
        raise HTTPException(status_code=400, detail="sfd_id is required")
    if not ctx.can_access_sfd(sfd_id):
        raise HTTPException(status_code=403, detail="Permission denied")
    try:
        return clients.create_client(
            db,
            sfd_id=sfd_id,
            full_name=data.full_name,
            phone=data.phone,
            email=data.email,
            id_type=data.id_type,
            id_number=data.id_number,
            user_id=data.user_id,
            performed_by=ctx.user_id,
        )
    except clients.ClientError as e:
        _bad_request(e)


@router.get("/clients", response_model=list[ClientRead])
def list_clients(
    status: Optional[ClientStatus] = Query(None),
    search: Optional[str] = Query(None),
    sfd_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.MANAGE_CLIENTS)),
):
    scoped = sfd_id if ctx.is_admin else ctx.sfd_id
    return clients.list_clients(db, sfd_id=scoped, status=status.value if status else None, search=search)


@router.get("/clients/{client_id}", response_model=ClientRead)
def get_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.MANAGE_CLIENTS)),
):
    return _client_for(db, client_id, ctx)


@router.post("/clients/{client_id}/validate", response_model=ClientRead)
def validate_client(
    client_id: UUID,
    data: ClientValidation,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.MANAGE_CLIENTS)),
):
    client = _client_for(db, client_id, ctx)
    try:
        return clients.validate_client(db, client.id, performed_by=ctx.user_id, kyc_level=data.kyc_level)
    except clients.ClientError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/clients/{client_id}/reject", response_model=ClientRead)
def reject_client(
    client_id: UUID,
    data: ClientRejection,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.MANAGE_CLIENTS)),
):
    client = _client_for(db, client_id, ctx)
    try:
        return clients.reject_client(db, client.id, performed_by=ctx.user_id, reason=data.reason)
    except clients.ClientError as e:
        _bad_request(e)


@router.post("/clients/{client_id}/kyc", response_model=ClientRead)
def upgrade_kyc(
    client_id: UUID,
    data: KycUpgrade,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.MANAGE_CLIENTS)),
):
    client = _client_for(db, client_id, ctx)
    try:
        return clients.upgrade_kyc_level(db, client.id, data.level, performed_by=ctx.user_id)
    except clients.ClientError as e:
        _bad_request(e)


@router.post("/clients/{client_id}/link-user", response_model=ClientRead)
def link_user(
    client_id: UUID,
    data: ClientUserLink,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.MANAGE_CLIENTS)),
):
    client = _client_for(db, client_id, ctx)
    user = find_user_by_email(db, data.email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    try:
        return clients.link_client_user(db, client.id, user, performed_by=ctx.user_id)
    except clients.ClientError as e:
        raise HTTPException(status_code=409, detail=str(e))
