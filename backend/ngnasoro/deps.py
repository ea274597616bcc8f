import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ngnasoro.core.logging import set_actor_id
from ngnasoro.core.permissions import AuthContext, Capability, Role
from ngnasoro.core.security import decode_access_token
from ngnasoro.database import SessionLocal
from ngnasoro.models.user import User


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    if not authorization:
        raise _unauthorized("Missing authorization header")

    payload = decode_access_token(authorization)
    if not payload or not payload.get("sub"):
        raise _unauthorized("Invalid token")

    user = db.query(User).filter(User.id == _as_uuid(payload["sub"])).first()
    if not user or not user.is_active:
        raise _unauthorized("Invalid user")

    set_actor_id(user.id)
    return user


def get_auth_context(current_user: User = Depends(get_current_user)) -> AuthContext:
    # Role comes from the stored user, so a revoked role takes effect before token expiry
    return AuthContext.for_user(current_user)


def admin_required(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if ctx.role != Role.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return ctx


def require_capability(capability: Capability):
    def checker(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not ctx.can(capability):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permission denied")
        return ctx

    return checker


def _as_uuid(value) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise _unauthorized("Invalid token")
