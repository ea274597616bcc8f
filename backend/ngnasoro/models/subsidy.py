# ngnasoro/models/subsidy.py
import enum
import uuid
from sqlalchemy import Column, String, DateTime, Numeric, ForeignKey, Enum, Text, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from ngnasoro.database import Base


class SubsidyStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"   # funds transferred to the SFD


class SubsidyPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class SubsidyRequest(Base):
    __tablename__ = "subsidy_requests"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sfd_id = Column(UUID(as_uuid=True), ForeignKey("sfds.id"), index=True, nullable=False)

    amount = Column(Numeric(18, 2), nullable=False)
    approved_amount = Column(Numeric(18, 2), nullable=True)
    purpose = Column(Text, nullable=False)
    justification = Column(Text, nullable=True)
    expected_impact = Column(Text, nullable=True)
    region = Column(String, nullable=True)
    priority = Column(
        Enum(SubsidyPriority, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=SubsidyPriority.NORMAL,
        nullable=False,
    )
    status = Column(
        Enum(SubsidyStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=SubsidyStatus.PENDING,
        nullable=False,
    )

    requested_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    reviewed_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    decision_comments = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SubsidyRequestActivity(Base):
    __tablename__ = "subsidy_request_activities"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    request_id = Column(UUID(as_uuid=True), ForeignKey("subsidy_requests.id", ondelete="CASCADE"), index=True, nullable=False)
    activity_type = Column(String(64), nullable=False)  # request_created | request_approved | ...
    description = Column(Text, nullable=True)
    performed_by = Column(UUID(as_uuid=True), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
