# ngnasoro/models/transaction.py
import uuid
from sqlalchemy import Column, String, ForeignKey, DateTime, Numeric, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from ngnasoro.database import Base
from sqlalchemy import Enum
import enum


class TransactionType(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    LOAN_DISBURSEMENT = "loan_disbursement"
    LOAN_REPAYMENT = "loan_repayment"
    TRANSFER = "transfer"
    PAYMENT = "payment"


class TransactionStatus(str, enum.Enum):
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"
    FLAGGED = "flagged"


# French labels shown in statements
TRANSACTION_NAMES = {
    TransactionType.DEPOSIT: "Dépôt",
    TransactionType.WITHDRAWAL: "Retrait",
    TransactionType.LOAN_DISBURSEMENT: "Décaissement de prêt",
    TransactionType.LOAN_REPAYMENT: "Remboursement de prêt",
    TransactionType.TRANSFER: "Transfert",
    TransactionType.PAYMENT: "Paiement",
}


class Transaction(Base):
    """Ledger row. Inserted once, never updated or deleted."""

    __tablename__ = "transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), index=True, nullable=False)
    sfd_id = Column(UUID(as_uuid=True), ForeignKey("sfds.id"), index=True, nullable=True)
    account_id = Column(UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=True)

    # positive = credit, negative = debit
    amount = Column(Numeric(18, 2), nullable=False)
    type = Column(
        Enum(TransactionType, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    status = Column(
        Enum(TransactionStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=TransactionStatus.SUCCESS,
        nullable=False,
    )

    name = Column(String, nullable=True)
    description = Column(Text, default="")
    payment_method = Column(String(32), nullable=True)   # cash | sfd_account | mobile_money
    reference_id = Column(String, index=True, nullable=True)
    performed_by = Column(UUID(as_uuid=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
