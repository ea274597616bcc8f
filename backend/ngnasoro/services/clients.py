import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ngnasoro.core.config import settings
from ngnasoro.core.permissions import Role
from ngnasoro.models.account import Account
from ngnasoro.models.audit import AuditLogCategory, AuditLogSeverity
from ngnasoro.models.sfd import ClientStatus, Sfd, SfdClient, SfdStatus
from ngnasoro.models.user import User
from ngnasoro.services.audit import log_audit_event
from ngnasoro.services.ledger import ClientNotFound
from ngnasoro.services.notifications import notify

logger = logging.getLogger("ngnasoro.clients")

MAX_KYC_LEVEL = 3


class ClientError(ValueError):
    pass


# --- SFDs ---

def create_sfd(db: Session, name: str, code: str, region: Optional[str] = None, performed_by=None) -> Sfd:
    code = code.strip().upper()
    if db.query(Sfd).filter(Sfd.code == code).first():
        raise ClientError(f"SFD code {code} already exists")
    sfd = Sfd(name=name.strip(), code=code, region=region, status=SfdStatus.ACTIVE, subsidy_balance=Decimal("0"))
    db.add(sfd)
    db.flush()
    log_audit_event(
        db,
        action="sfd_created",
        category=AuditLogCategory.ADMINISTRATION,
        user_id=performed_by,
        target_resource=f"sfds/{sfd.id}",
        details={"name": sfd.name, "code": code},
    )
    db.commit()
    db.refresh(sfd)
    return sfd


def list_sfds(db: Session, status: Optional[str] = None):
    query = db.query(Sfd)
    if status:
        query = query.filter(Sfd.status == status)
    return query.order_by(Sfd.name.asc()).all()


def get_sfd(db: Session, sfd_id) -> Sfd:
    sfd = db.query(Sfd).filter(Sfd.id == sfd_id).first()
    if not sfd:
        raise ClientError("SFD not found")
    return sfd


def set_sfd_status(db: Session, sfd_id, status: str, performed_by=None, reason: Optional[str] = None) -> Sfd:
    try:
        new_status = SfdStatus(status)
    except ValueError:
        raise ClientError(f"Invalid SFD status: {status}")
    sfd = get_sfd(db, sfd_id)
    sfd.status = new_status
    log_audit_event(
        db,
        action=f"sfd_{new_status.value}",
        category=AuditLogCategory.ADMINISTRATION,
        severity=AuditLogSeverity.WARNING if new_status == SfdStatus.SUSPENDED else AuditLogSeverity.INFO,
        user_id=performed_by,
        target_resource=f"sfds/{sfd.id}",
        details={"reason": reason},
    )
    db.commit()
    db.refresh(sfd)
    return sfd


# --- Clients and KYC ---

def create_client(
    db: Session,
    sfd_id,
    full_name: str,
    phone: Optional[str] = None,
    email: Optional[str] = None,
    id_type: Optional[str] = None,
    id_number: Optional[str] = None,
    user_id=None,
    performed_by=None,
) -> SfdClient:
    sfd = get_sfd(db, sfd_id)
    if sfd.status != SfdStatus.ACTIVE:
        raise ClientError("SFD is not active")
    if not full_name or not full_name.strip():
        raise ClientError("Full name is required")
    if user_id is not None and not db.query(User).filter(User.id == user_id).first():
        raise ClientError("User not found")

    client = SfdClient(
        sfd_id=sfd.id,
        user_id=user_id,
        full_name=full_name.strip(),
        phone=normalize_phone(phone),
        email=email,
        id_type=id_type,
        id_number=id_number,
        status=ClientStatus.PENDING,
        kyc_level=0,
    )
    db.add(client)
    db.flush()
    log_audit_event(
        db,
        action="client_created",
        category=AuditLogCategory.ADMINISTRATION,
        user_id=performed_by,
        target_resource=f"sfd_clients/{client.id}",
        details={"sfd_id": sfd.id, "full_name": client.full_name},
    )
    db.commit()
    db.refresh(client)
    return client


def list_clients(db: Session, sfd_id=None, status: Optional[str] = None, search: Optional[str] = None):
    query = db.query(SfdClient)
    if sfd_id:
        query = query.filter(SfdClient.sfd_id == sfd_id)
    if status:
        query = query.filter(SfdClient.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.filter(SfdClient.full_name.ilike(pattern) | SfdClient.phone.ilike(pattern))
    return query.order_by(SfdClient.created_at.desc()).all()


def get_client(db: Session, client_id) -> SfdClient:
    client = db.query(SfdClient).filter(SfdClient.id == client_id).first()
    if not client:
        raise ClientNotFound("Client not found")
    return client


def _ensure_account(db: Session, client: SfdClient) -> None:
    if not client.user_id:
        return
    if db.query(Account).filter(Account.user_id == client.user_id).first():
        return
    db.add(Account(
        user_id=client.user_id,
        sfd_id=client.sfd_id,
        balance=Decimal("0"),
        currency=settings.DEFAULT_CURRENCY,
        version=0,
    ))


def validate_client(db: Session, client_id, performed_by, kyc_level: int = 1) -> SfdClient:
    client = get_client(db, client_id)
    if client.status == ClientStatus.VALIDATED:
        raise ClientError("Client is already validated")
    if not 1 <= kyc_level <= MAX_KYC_LEVEL:
        raise ClientError(f"KYC level must be between 1 and {MAX_KYC_LEVEL}")

    client.status = ClientStatus.VALIDATED
    client.kyc_level = max(client.kyc_level or 0, kyc_level)
    client.validated_by = performed_by
    client.validated_at = datetime.now(timezone.utc)
    client.rejection_reason = None
    _ensure_account(db, client)
    if client.user_id:
        notify(
            db,
            recipient_id=client.user_id,
            sender_id=performed_by,
            title="Adhésion validée",
            message="Votre dossier a été validé, votre compte est actif",
            type="kyc",
        )
    log_audit_event(
        db,
        action="client_kyc_validated",
        category=AuditLogCategory.ADMINISTRATION,
        user_id=performed_by,
        target_resource=f"sfd_clients/{client.id}",
        details={"kyc_level": client.kyc_level},
    )
    db.commit()
    db.refresh(client)
    logger.info("Client %s validated at KYC level %s", client.id, client.kyc_level)
    return client


def reject_client(db: Session, client_id, performed_by, reason: str) -> SfdClient:
    if not reason or not reason.strip():
        raise ClientError("Rejection reason is required")
    client = get_client(db, client_id)
    if client.status != ClientStatus.PENDING:
        raise ClientError(f"Client is not pending (current status: {client.status.value})")

    client.status = ClientStatus.REJECTED
    client.rejection_reason = reason.strip()
    client.validated_by = performed_by
    client.validated_at = datetime.now(timezone.utc)
    log_audit_event(
        db,
        action="client_kyc_rejected",
        category=AuditLogCategory.ADMINISTRATION,
        severity=AuditLogSeverity.WARNING,
        user_id=performed_by,
        target_resource=f"sfd_clients/{client.id}",
        details={"reason": client.rejection_reason},
    )
    db.commit()
    db.refresh(client)
    return client


def upgrade_kyc_level(db: Session, client_id, level: int, performed_by) -> SfdClient:
    client = get_client(db, client_id)
    if client.status != ClientStatus.VALIDATED:
        raise ClientError("Only validated clients can be upgraded")
    if level > MAX_KYC_LEVEL or level <= (client.kyc_level or 0):
        raise ClientError(f"KYC level can only increase, up to {MAX_KYC_LEVEL}")

    previous = client.kyc_level
    client.kyc_level = level
    log_audit_event(
        db,
        action="client_kyc_upgraded",
        category=AuditLogCategory.ADMINISTRATION,
        user_id=performed_by,
        target_resource=f"sfd_clients/{client.id}",
        details={"previous_level": previous, "level": level},
    )
    db.commit()
    db.refresh(client)
    return client


def link_client_user(db: Session, client_id, user: User, performed_by=None) -> SfdClient:
    """Attach a mobile user to their client file."""
    client = get_client(db, client_id)
    if client.user_id and client.user_id != user.id:
        raise ClientError("Client is already linked to another user")
    client.user_id = user.id
    if user.role == Role.USER.value:
        user.role = Role.CLIENT.value
    if user.sfd_id is None:
        user.sfd_id = client.sfd_id
    if client.status == ClientStatus.VALIDATED:
        _ensure_account(db, client)
    log_audit_event(
        db,
        action="client_user_linked",
        category=AuditLogCategory.ADMINISTRATION,
        user_id=performed_by,
        target_resource=f"sfd_clients/{client.id}",
        details={"user_id": user.id},
    )
    db.commit()
    db.refresh(client)
    return client


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    # "+223 70-00-00-01" -> "+22370000001"
    if not phone:
        return None
    return "".join(ch for ch in str(phone) if ch.isdigit() or ch == "+") or None


def find_client_by_phone(db: Session, phone: Optional[str]) -> Optional[SfdClient]:
    phone = normalize_phone(phone)
    if not phone:
        return None
    return (
        db.query(SfdClient)
        .filter(SfdClient.phone == phone, SfdClient.status == ClientStatus.VALIDATED)
        .first()
    )
