from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ngnasoro.core.permissions import AuthContext, Capability
from ngnasoro.deps import get_db, require_capability
from ngnasoro.schemas.user import AdminUserRead, RoleAssignment, StaffCreate, UserRead
from ngnasoro.services import roles

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/roles")
def assign_role(
    data: RoleAssignment,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.MANAGE_USERS)),
):
    try:
        user = roles.assign_role_to_user(db, data.email, data.role, performed_by=ctx.user_id, sfd_id=data.sfd_id)
    except roles.RoleAssignmentError as e:
        detail = str(e)
        code = status.HTTP_404_NOT_FOUND if detail.startswith("No user found") else status.HTTP_400_BAD_REQUEST
        raise HTTPException(status_code=code, detail=detail)

    return {
        "success": True,
        "message": f"Role {user.role} assigned to {user.email}",
        "user": UserRead.model_validate(user),
        "roles": roles.get_user_roles(db, user.id),
    }


@router.post("/users", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_staff(
    data: StaffCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.MANAGE_USERS)),
):
    try:
        return roles.create_staff_user(
            db,
            email=data.email,
            password=data.password,
            role=data.role,
            full_name=data.full_name,
            sfd_id=data.sfd_id,
            performed_by=ctx.user_id,
        )
    except roles.RoleAssignmentError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/users", response_model=list[AdminUserRead])
def list_admin_users(
    role: Optional[str] = Query(None),
    sfd_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.MANAGE_USERS)),
):
    rows = roles.list_admin_users(db, role=role, sfd_id=sfd_id)
    return [
        AdminUserRead(
            id=mirror.id,
            email=mirror.email,
            full_name=mirror.full_name,
            role=mirror.role,
            sfd_id=user.sfd_id,
            has_2fa=bool(mirror.has_2fa),
            last_sign_in_at=mirror.last_sign_in_at,
        )
        for mirror, user in rows
    ]


@router.delete("/sfd-users/{user_id}")
def delete_sfd_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_capability(Capability.MANAGE_USERS)),
):
    try:
        roles.delete_sfd_user(db, user_id, performed_by=ctx.user_id)
    except roles.RoleAssignmentError as e:
        code = status.HTTP_404_NOT_FOUND if str(e) == "User not found" else status.HTTP_400_BAD_REQUEST
        raise HTTPException(status_code=code, detail=str(e))
    return {"success": True, "message": "SFD user deleted"}
