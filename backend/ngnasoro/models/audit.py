# ngnasoro/models/audit.py
import enum
import uuid
from sqlalchemy import Column, String, DateTime, Enum, Text, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from ngnasoro.database import Base


class AuditLogCategory(str, enum.Enum):
    AUTHENTICATION = "AUTHENTICATION"
    DATA_ACCESS = "DATA_ACCESS"
    ADMINISTRATION = "ADMINISTRATION"
    SECURITY = "SECURITY"
    FINANCIAL = "FINANCIAL"
    USER_MANAGEMENT = "USER_MANAGEMENT"
    SUBSIDY = "SUBSIDY"


class AuditLogSeverity(str, enum.Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AuditLogStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"


def _values(enum_cls):
    return [member.value for member in enum_cls]


class AuditLog(Base):
    """Immutable record of an action."""

    __tablename__ = "audit_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), index=True, nullable=True)  # actor
    action = Column(String(64), nullable=False)
    category = Column(Enum(AuditLogCategory, native_enum=False, values_callable=_values), index=True, nullable=False)
    severity = Column(Enum(AuditLogSeverity, native_enum=False, values_callable=_values), nullable=False)
    status = Column(Enum(AuditLogStatus, native_enum=False, values_callable=_values), nullable=False)
    target_resource = Column(String, nullable=True)
    details = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
