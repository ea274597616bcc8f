from pydantic import BaseModel
from uuid import UUID
from decimal import Decimal
from datetime import datetime
from typing import Optional
from ngnasoro.models.subsidy import SubsidyPriority, SubsidyStatus
from ngnasoro.schemas.transaction import Money


class SubsidyRequestCreate(BaseModel):
    sfd_id: Optional[UUID] = None  # defaults to the caller's SFD
    amount: Decimal
    purpose: str
    justification: Optional[str] = None
    expected_impact: Optional[str] = None
    region: Optional[str] = None
    priority: SubsidyPriority = SubsidyPriority.NORMAL


class SubsidyApproval(BaseModel):
    approved_amount: Optional[Decimal] = None
    comments: Optional[str] = None


class SubsidyRejection(BaseModel):
    reason: str


class SubsidyPriorityUpdate(BaseModel):
    priority: SubsidyPriority


class SubsidyRequestRead(BaseModel):
    id: UUID
    sfd_id: UUID
    amount: Money
    approved_amount: Optional[Money] = None
    purpose: str
    justification: Optional[str] = None
    expected_impact: Optional[str] = None
    region: Optional[str] = None
    priority: SubsidyPriority
    status: SubsidyStatus
    requested_by: Optional[UUID] = None
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    decision_comments: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SubsidyActivityRead(BaseModel):
    id: UUID
    activity_type: str
    description: Optional[str] = None
    performed_by: Optional[UUID] = None
    details: Optional[dict] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
