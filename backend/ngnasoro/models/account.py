# ngnasoro/models/account.py
import uuid
from sqlalchemy import Column, String, DateTime, Numeric, Integer, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from ngnasoro.database import Base


class Account(Base):
    __tablename__ = "accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), unique=True, index=True, nullable=False)
    sfd_id = Column(UUID(as_uuid=True), ForeignKey("sfds.id"), index=True, nullable=True)

    balance = Column(Numeric(18, 2), nullable=False, default=0)
    currency = Column(String(8), nullable=False, default="FCFA")

    # Bumped by every balance change
    version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_updated = Column(DateTime(timezone=True), server_default=func.now())
