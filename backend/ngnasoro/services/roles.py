"""Role assignment and staff accounts.

``users.role`` (the claim put in access tokens), the ``admin_users`` mirror
and ``user_roles`` are written in one commit so they cannot disagree.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ngnasoro.core.permissions import STAFF_ROLES, Role, parse_role
from ngnasoro.core.security import hash_password
from ngnasoro.models.audit import AuditLogCategory, AuditLogSeverity
from ngnasoro.models.sfd import Sfd
from ngnasoro.models.user import AdminUser, User, UserRoleAssignment
from ngnasoro.services.audit import log_audit_event

logger = logging.getLogger("ngnasoro.roles")


class RoleAssignmentError(ValueError):
    pass


def find_user_by_email(db: Session, email: str) -> Optional[User]:
    normalized = email.strip().lower()
    mirror = db.query(AdminUser).filter(func.lower(AdminUser.email) == normalized).first()
    if mirror:
        user = db.query(User).filter(User.id == mirror.id).first()
        if user:
            return user
    return db.query(User).filter(func.lower(User.email) == normalized).first()


def _sync_role(db: Session, user: User, role: Role) -> None:
    user.role = role.value

    mirror = db.query(AdminUser).filter(AdminUser.id == user.id).first()
    if role in STAFF_ROLES:
        if mirror is None:
            mirror = AdminUser(id=user.id, email=user.email)
            db.add(mirror)
        mirror.email = user.email
        mirror.full_name = user.full_name
        mirror.role = role.value
    elif mirror is not None:
        db.delete(mirror)

    # One current role per user
    db.query(UserRoleAssignment).filter(
        UserRoleAssignment.user_id == user.id, UserRoleAssignment.role != role.value
    ).delete(synchronize_session=False)
    exists = db.query(UserRoleAssignment).filter(
        UserRoleAssignment.user_id == user.id, UserRoleAssignment.role == role.value
    ).first()
    if not exists:
        db.add(UserRoleAssignment(user_id=user.id, role=role.value))


def assign_role_to_user(db: Session, email: str, role: str, performed_by=None, sfd_id=None) -> User:
    parsed = parse_role(role)
    if parsed is None:
        raise RoleAssignmentError(f"Invalid role: {role}")
    if not email:
        raise RoleAssignmentError("Email is required")

    user = find_user_by_email(db, email)
    if not user:
        raise RoleAssignmentError(f"No user found with email {email}")

    if sfd_id is not None:
        if not db.query(Sfd).filter(Sfd.id == sfd_id).first():
            raise RoleAssignmentError("SFD not found")
        user.sfd_id = sfd_id
    if parsed in (Role.SFD_ADMIN, Role.CASHIER) and user.sfd_id is None:
        raise RoleAssignmentError(f"Role {parsed.value} requires an SFD")

    previous = user.role
    try:
        _sync_role(db, user, parsed)
        log_audit_event(
            db,
            action="role_assigned",
            category=AuditLogCategory.USER_MANAGEMENT,
            user_id=performed_by,
            target_resource=f"users/{user.id}",
            details={"email": user.email, "previous_role": previous, "role": parsed.value},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(user)
    logger.info("Role of %s changed from %s to %s", user.email, previous, parsed.value)
    return user


def get_user_roles(db: Session, user_id) -> list[str]:
    return [
        row.role for row in db.query(UserRoleAssignment).filter(UserRoleAssignment.user_id == user_id)
    ]


def create_staff_user(
    db: Session,
    email: str,
    password: str,
    role: str,
    full_name: Optional[str] = None,
    sfd_id=None,
    performed_by=None,
) -> User:
    parsed = parse_role(role)
    if parsed not in STAFF_ROLES:
        raise RoleAssignmentError(f"Invalid staff role: {role}")
    if parsed in (Role.SFD_ADMIN, Role.CASHIER) and sfd_id is None:
        raise RoleAssignmentError(f"Role {parsed.value} requires an SFD")
    if sfd_id is not None and not db.query(Sfd).filter(Sfd.id == sfd_id).first():
        raise RoleAssignmentError("SFD not found")
    if find_user_by_email(db, email):
        raise RoleAssignmentError("Email already registered")

    user = User(
        email=email.strip().lower(),
        hashed_password=hash_password(password),
        full_name=full_name,
        role=parsed.value,
        sfd_id=sfd_id,
        is_active=True,
    )
    try:
        db.add(user)
        db.flush()
        _sync_role(db, user, parsed)
        log_audit_event(
            db,
            action="staff_user_created",
            category=AuditLogCategory.USER_MANAGEMENT,
            user_id=performed_by,
            target_resource=f"users/{user.id}",
            details={"email": user.email, "role": parsed.value, "sfd_id": sfd_id},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(user)
    return user


def list_admin_users(db: Session, role: Optional[str] = None, sfd_id=None):
    query = db.query(AdminUser, User).join(User, AdminUser.id == User.id)
    if role:
        query = query.filter(AdminUser.role == role)
    if sfd_id:
        query = query.filter(User.sfd_id == sfd_id)
    return query.order_by(AdminUser.created_at.desc()).all()


def delete_sfd_user(db: Session, user_id, performed_by=None) -> None:
    """Only SFD staff accounts (sfd_admin / cashier) can be deleted."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise RoleAssignmentError("User not found")
    if user.role not in (Role.SFD_ADMIN.value, Role.CASHIER.value):
        raise RoleAssignmentError("Only SFD users can be deleted")

    try:
        db.query(UserRoleAssignment).filter(UserRoleAssignment.user_id == user.id).delete(synchronize_session=False)
        db.query(AdminUser).filter(AdminUser.id == user.id).delete(synchronize_session=False)
        # Ledger and audit rows keep the id; the login is disabled instead of removed
        user.is_active = False
        user.email = f"deleted+{user.id}@ngnasoro.invalid"
        user.hashed_password = None
        user.role = Role.USER.value
        log_audit_event(
            db,
            action="sfd_user_deleted",
            category=AuditLogCategory.USER_MANAGEMENT,
            severity=AuditLogSeverity.WARNING,
            user_id=performed_by,
            target_resource=f"users/{user.id}",
            details={"sfd_id": user.sfd_id, "deleted_at": datetime.now(timezone.utc)},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("SFD user %s deleted", user.id)
