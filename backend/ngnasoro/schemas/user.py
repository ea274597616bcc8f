from pydantic import BaseModel, EmailStr, Field
from uuid import UUID
from datetime import datetime
from typing import Optional


class UserBase(BaseModel):
    email: EmailStr


class UserCreate(UserBase):
    password: str = Field(min_length=8)
    full_name: Optional[str] = None
    phone: Optional[str] = None


class LoginRequest(UserBase):
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str


class UserRead(BaseModel):
    id: UUID
    email: EmailStr
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: str
    sfd_id: Optional[UUID] = None
    is_active: bool
    created_at: Optional[datetime] = None
    last_sign_in_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RoleAssignment(BaseModel):
    email: EmailStr
    role: str
    sfd_id: Optional[UUID] = None


class StaffCreate(UserCreate):
    role: str
    sfd_id: Optional[UUID] = None


class AdminUserRead(BaseModel):
    id: UUID
    email: EmailStr
    full_name: Optional[str] = None
    role: str
    sfd_id: Optional[UUID] = None
    has_2fa: bool = False
    last_sign_in_at: Optional[datetime] = None
