# ngnasoro/models/deposit.py
import uuid
from sqlalchemy import Column, String, DateTime, Numeric, Boolean, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from ngnasoro.database import Base


class MobileMoneyWebhook(Base):
    __tablename__ = "mobile_money_webhooks"
    __table_args__ = (
        UniqueConstraint("operator", "transaction_id", name="uq_mobile_money_operator_tx"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    operator = Column(String(32), nullable=False)   # orange_money / moov / wave
    transaction_id = Column(String, index=True, nullable=False)
    event_type = Column(String(32), nullable=False)  # deposit / payment
    amount = Column(Numeric(18, 2), nullable=False)
    phone_number = Column(String, nullable=True)
    status = Column(String(32), nullable=False)

    payload = Column(JSON, nullable=True)

    processed = Column(Boolean, default=False)
    matched_user_id = Column(UUID(as_uuid=True), nullable=True)
    ledger_transaction_id = Column(UUID(as_uuid=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
