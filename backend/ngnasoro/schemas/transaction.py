from pydantic import BaseModel, PlainSerializer
from uuid import UUID
from decimal import Decimal
from datetime import datetime
from typing import Annotated, Optional
from ngnasoro.models.loan import LoanStatus
from ngnasoro.models.transaction import TransactionStatus, TransactionType

# Amounts go out as JSON numbers
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class TransactionRead(BaseModel):
    id: UUID
    user_id: UUID
    sfd_id: Optional[UUID] = None
    type: TransactionType
    amount: Money
    status: TransactionStatus
    name: Optional[str] = None
    description: Optional[str] = None
    payment_method: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TransactionPage(BaseModel):
    total: int
    skip: int
    limit: int
    transactions: list[TransactionRead]


class LoanRepayment(BaseModel):
    amount: Decimal


class LoanRead(BaseModel):
    id: UUID
    sfd_id: UUID
    client_id: UUID
    application_id: Optional[UUID] = None
    amount: Money
    interest_rate: Money
    duration_months: int
    monthly_payment: Money
    remaining_amount: Money
    status: LoanStatus
    disbursed_at: Optional[datetime] = None
    next_payment_date: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None

    class Config:
        from_attributes = True


class LoanOperationResult(BaseModel):
    success: bool = True
    loan: LoanRead
    balance: Money
    transaction_id: UUID
    penalty: Money = Decimal("0")
