import csv
import io
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ngnasoro.models.account import Account
from ngnasoro.models.loan import LoanStatus, SfdLoan
from ngnasoro.models.subsidy import SubsidyRequest, SubsidyStatus
from ngnasoro.models.transaction import Transaction, TransactionStatus, TransactionType

DEFAULT_REPORT_DAYS = 30

REPORT_COLUMNS = [
    "id", "created_at", "user_id", "sfd_id", "type", "status",
    "amount", "payment_method", "reference_id", "description",
]


def _sum(query) -> Decimal:
    return Decimal(query.scalar() or 0)


def financial_overview(db: Session, sfd_id=None, now: Optional[datetime] = None) -> dict:
    """
    Per-period money movement (today / week / month / year):
    - amounts per transaction type, debits reported as positive figures
    - total holdings across accounts (same across periods)
    - approved subsidies (same across periods)

    "today" is the calendar day so far; the other periods are rolling windows.
    """
    now = now or datetime.now(timezone.utc)
    periods = {
        "today": now.replace(hour=0, minute=0, second=0, microsecond=0),
        "week": now - timedelta(days=7),
        "month": now - timedelta(days=30),
        "year": now - timedelta(days=365),
    }

    holdings_query = db.query(func.coalesce(func.sum(Account.balance), 0))
    if sfd_id:
        holdings_query = holdings_query.filter(Account.sfd_id == sfd_id)
    total_holding = _sum(holdings_query)

    subsidies_query = (
        db.query(func.coalesce(func.sum(SubsidyRequest.approved_amount), 0))
        .filter(SubsidyRequest.status.in_([SubsidyStatus.APPROVED, SubsidyStatus.COMPLETED]))
    )
    if sfd_id:
        subsidies_query = subsidies_query.filter(SubsidyRequest.sfd_id == sfd_id)
    total_subsidies = _sum(subsidies_query)

    loans_query = (
        db.query(func.coalesce(func.sum(SfdLoan.remaining_amount), 0))
        .filter(SfdLoan.status == LoanStatus.ACTIVE)
    )
    if sfd_id:
        loans_query = loans_query.filter(SfdLoan.sfd_id == sfd_id)
    outstanding_loans = _sum(loans_query)

    overview = {}
    for period_name, start_date in periods.items():
        query = (
            db.query(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0))
            .filter(Transaction.status == TransactionStatus.SUCCESS)
            .filter(Transaction.created_at >= start_date)
        )
        if sfd_id:
            query = query.filter(Transaction.sfd_id == sfd_id)
        totals = {tx_type.value: Decimal("0") for tx_type in TransactionType}
        for tx_type, amount in query.group_by(Transaction.type).all():
            key = getattr(tx_type, "value", tx_type)
            totals[key] = abs(Decimal(amount))

        overview[period_name] = {
            "deposits": totals[TransactionType.DEPOSIT.value],
            "withdrawals": totals[TransactionType.WITHDRAWAL.value],
            "loan_disbursements": totals[TransactionType.LOAN_DISBURSEMENT.value],
            "loan_repayments": totals[TransactionType.LOAN_REPAYMENT.value],
            "by_type": totals,
            "total_holding": total_holding,
            "outstanding_loans": outstanding_loans,
            "approved_subsidies": total_subsidies,
        }

    return overview


def transaction_report(
    db: Session,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    sfd_id=None,
    user_id=None,
) -> list[Transaction]:
    end_date = end_date or datetime.now(timezone.utc)
    start_date = start_date or end_date - timedelta(days=DEFAULT_REPORT_DAYS)

    query = (
        db.query(Transaction)
        .filter(Transaction.created_at >= start_date)
        .filter(Transaction.created_at <= end_date)
    )
    if sfd_id:
        query = query.filter(Transaction.sfd_id == sfd_id)
    if user_id:
        query = query.filter(Transaction.user_id == user_id)
    return query.order_by(Transaction.created_at.asc()).all()


def render_transactions_csv(rows: Iterable[Transaction]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(REPORT_COLUMNS)
    for tx in rows:
        writer.writerow([
            tx.id,
            tx.created_at.isoformat() if tx.created_at else "",
            tx.user_id,
            tx.sfd_id or "",
            getattr(tx.type, "value", tx.type),
            getattr(tx.status, "value", tx.status),
            tx.amount,
            tx.payment_method or "",
            tx.reference_id or "",
            tx.description or "",
        ])
    return buffer.getvalue()
