from pydantic import BaseModel, Field
from uuid import UUID
from decimal import Decimal
from datetime import datetime
from typing import Optional
from ngnasoro.models.loan import ApplicationStatus
from ngnasoro.schemas.transaction import Money


class CreditApplicationCreate(BaseModel):
    client_id: UUID
    amount: Decimal = Field(gt=0)
    purpose: str = Field(min_length=1)
    duration_months: int = Field(ge=1, le=120)
    interest_rate: Decimal = Field(default=Decimal("0"), ge=0)


class CreditApplicationFilter(BaseModel):
    status: Optional[ApplicationStatus] = None
    sfd_id: Optional[UUID] = None
    limit: int = Field(default=100, ge=1, le=500)


class CreditDecision(BaseModel):
    application_id: UUID
    reason: Optional[str] = None


class CreditApplicationRead(BaseModel):
    id: UUID
    reference: str
    sfd_id: UUID
    client_id: UUID
    amount: Money
    purpose: str
    duration_months: int
    interest_rate: Money
    score: Optional[int] = None
    status: ApplicationStatus
    created_by: Optional[UUID] = None
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
