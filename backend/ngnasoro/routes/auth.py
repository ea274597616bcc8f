import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from ngnasoro.core.permissions import Role
from ngnasoro.core.security import create_access_token, hash_password, verify_password
from ngnasoro.deps import get_current_user, get_db
from ngnasoro.models.audit import AuditLogCategory, AuditLogSeverity, AuditLogStatus
from ngnasoro.models.user import AdminUser, User, UserRoleAssignment
from ngnasoro.schemas.user import LoginRequest, TokenResponse, UserCreate, UserRead
from ngnasoro.services.audit import log_audit_event

logger = logging.getLogger("ngnasoro.auth")

router = APIRouter(prefix="/auth", tags=["Auth"])


def _client_ip(request: Request):
    return request.client.host if request.client else None


# --- Auth routes ---
@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register(user_in: UserCreate, request: Request, db: Session = Depends(get_db)):
    email = user_in.email.strip().lower()
    existing_user = db.query(User).filter(func.lower(User.email) == email).first()
    if existing_user:
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(
        email=email,
        hashed_password=hash_password(user_in.password),
        full_name=user_in.full_name,
        phone=user_in.phone,
        role=Role.CLIENT.value,
        is_active=True,
    )
    db.add(user)
    db.flush()
    db.add(UserRoleAssignment(user_id=user.id, role=Role.CLIENT.value))
    log_audit_event(
        db,
        action="user_registered",
        category=AuditLogCategory.AUTHENTICATION,
        user_id=user.id,
        target_resource=f"users/{user.id}",
        ip_address=_client_ip(request),
    )
    db.commit()
    db.refresh(user)
    logger.info("New client account %s", user.id)
    return user


@router.post("/login", response_model=TokenResponse)
def login(user_in: LoginRequest, request: Request, db: Session = Depends(get_db)):
    email = user_in.email.strip().lower()
    user = db.query(User).filter(func.lower(User.email) == email).first()
    if not user or not user.is_active or not verify_password(user_in.password, user.hashed_password):
        log_audit_event(
            db,
            action="login_failed",
            category=AuditLogCategory.AUTHENTICATION,
            severity=AuditLogSeverity.WARNING,
            status=AuditLogStatus.FAILURE,
            user_id=user.id if user else None,
            details={"email": email},
            error_message="Invalid email or password",
            ip_address=_client_ip(request),
            commit=True,
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    now = datetime.now(timezone.utc)
    user.last_sign_in_at = now
    mirror = db.query(AdminUser).filter(AdminUser.id == user.id).first()
    if mirror:
        mirror.last_sign_in_at = now
    log_audit_event(
        db,
        action="login",
        category=AuditLogCategory.AUTHENTICATION,
        user_id=user.id,
        ip_address=_client_ip(request),
    )
    db.commit()

    token = create_access_token({
        "sub": str(user.id),
        "role": user.role,
        "sfd_id": str(user.sfd_id) if user.sfd_id else None,
    })
    return {"access_token": token, "token_type": "bearer", "role": user.role}


@router.get("/me", response_model=UserRead)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/logout")
def logout():
    return {"message": "Logout successful. Remove token on client side."}
