from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Optional
from ngnasoro.models.sfd import ClientStatus, SfdStatus
from ngnasoro.schemas.transaction import Money


class SfdCreate(BaseModel):
    name: str
    code: str = Field(min_length=2, max_length=32)
    region: Optional[str] = None


class SfdStatusUpdate(BaseModel):
    status: SfdStatus
    reason: Optional[str] = None


class SfdRead(BaseModel):
    id: UUID
    name: str
    code: str
    region: Optional[str] = None
    status: SfdStatus
    subsidy_balance: Money
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ClientCreate(BaseModel):
    sfd_id: Optional[UUID] = None  # defaults to the caller's SFD
    full_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    id_type: Optional[str] = None
    id_number: Optional[str] = None
    user_id: Optional[UUID] = None


class ClientValidation(BaseModel):
    kyc_level: int = Field(default=1, ge=1, le=3)


class ClientRejection(BaseModel):
    reason: str


class KycUpgrade(BaseModel):
    level: int = Field(ge=1, le=3)


class ClientRead(BaseModel):
    id: UUID
    sfd_id: UUID
    user_id: Optional[UUID] = None
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    id_type: Optional[str] = None
    id_number: Optional[str] = None
    status: ClientStatus
    kyc_level: int
    validated_by: Optional[UUID] = None
    validated_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
