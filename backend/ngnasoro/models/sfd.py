# ngnasoro/models/sfd.py
import enum
import uuid
from sqlalchemy import Column, String, DateTime, Numeric, Integer, ForeignKey, Enum, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from ngnasoro.database import Base


class SfdStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class ClientStatus(str, enum.Enum):
    PENDING = "pending"
    VALIDATED = "validated"
    REJECTED = "rejected"


class Sfd(Base):
    __tablename__ = "sfds"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    code = Column(String(32), unique=True, index=True, nullable=False)
    region = Column(String, nullable=True)
    status = Column(
        Enum(SfdStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=SfdStatus.ACTIVE,
        nullable=False,
    )
    subsidy_balance = Column(Numeric(18, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SfdClient(Base):
    __tablename__ = "sfd_clients"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sfd_id = Column(UUID(as_uuid=True), ForeignKey("sfds.id"), index=True, nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), index=True, nullable=True)

    full_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, index=True, nullable=True)
    id_type = Column(String(32), nullable=True)      # cni | passport | ...
    id_number = Column(String(64), nullable=True)

    status = Column(
        Enum(ClientStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=ClientStatus.PENDING,
        nullable=False,
    )
    kyc_level = Column(Integer, nullable=False, default=0)
    validated_by = Column(UUID(as_uuid=True), nullable=True)
    validated_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
