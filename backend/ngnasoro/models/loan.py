# ngnasoro/models/loan.py
import enum
import uuid
from sqlalchemy import Column, String, DateTime, Numeric, Integer, ForeignKey, Enum, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from ngnasoro.database import Base


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LoanStatus(str, enum.Enum):
    APPROVED = "approved"     # waiting for disbursement
    ACTIVE = "active"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"


class CreditApplication(Base):
    __tablename__ = "credit_applications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reference = Column(String(32), unique=True, index=True, nullable=False)  # CR-2024-0001
    sfd_id = Column(UUID(as_uuid=True), ForeignKey("sfds.id"), index=True, nullable=False)
    client_id = Column(UUID(as_uuid=True), ForeignKey("sfd_clients.id"), index=True, nullable=False)

    amount = Column(Numeric(18, 2), nullable=False)
    purpose = Column(Text, nullable=False)
    duration_months = Column(Integer, nullable=False)
    interest_rate = Column(Numeric(5, 2), nullable=False, default=0)  # annual %
    score = Column(Integer, nullable=True)

    status = Column(
        Enum(ApplicationStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=ApplicationStatus.PENDING,
        nullable=False,
    )
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    reviewed_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SfdLoan(Base):
    __tablename__ = "sfd_loans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sfd_id = Column(UUID(as_uuid=True), ForeignKey("sfds.id"), index=True, nullable=False)
    client_id = Column(UUID(as_uuid=True), ForeignKey("sfd_clients.id"), index=True, nullable=False)
    application_id = Column(UUID(as_uuid=True), ForeignKey("credit_applications.id"), nullable=True)

    amount = Column(Numeric(18, 2), nullable=False)
    interest_rate = Column(Numeric(5, 2), nullable=False, default=0)
    duration_months = Column(Integer, nullable=False)
    monthly_payment = Column(Numeric(18, 2), nullable=False)
    remaining_amount = Column(Numeric(18, 2), nullable=False)

    status = Column(
        Enum(LoanStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=LoanStatus.APPROVED,
        nullable=False,
    )
    disbursed_at = Column(DateTime(timezone=True), nullable=True)
    next_payment_date = Column(DateTime(timezone=True), nullable=True)
    last_payment_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class LoanPenalty(Base):
    __tablename__ = "loan_penalties"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(UUID(as_uuid=True), ForeignKey("sfd_loans.id"), index=True, nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)
    penalty_type = Column(String, nullable=False, default="late_payment")
    days_overdue = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
