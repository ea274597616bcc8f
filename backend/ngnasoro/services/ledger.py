"""Account balances and the transaction ledger.

Every balance change goes through ``update_balance``: one conditional UPDATE
that refuses to take the balance below zero, followed by the ledger row, the
owner's notification and the audit row, all committed together.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from ngnasoro.core.config import settings
from ngnasoro.models.account import Account
from ngnasoro.models.audit import AuditLogCategory
from ngnasoro.models.loan import LoanPenalty, LoanStatus, SfdLoan
from ngnasoro.models.sfd import SfdClient
from ngnasoro.models.transaction import (
    TRANSACTION_NAMES,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from ngnasoro.models.user import User
from ngnasoro.services.audit import log_audit_event
from ngnasoro.services.notifications import format_fcfa, notify

logger = logging.getLogger("ngnasoro.ledger")

CENT = Decimal("0.01")
PAYMENT_INTERVAL = timedelta(days=30)
LATE_PENALTY_RATE = Decimal("0.05")
LATE_GRACE_DAYS = 7


class LedgerError(ValueError):
    pass


class InsufficientBalance(LedgerError):
    def __init__(self, message: str = "Insufficient balance"):
        super().__init__(message)


class ClientNotFound(LedgerError):
    pass


class AccountNotFound(LedgerError):
    pass


class LoanStateError(LedgerError):
    pass


@dataclass
class TransactionResult:
    transaction: Transaction
    balance: Decimal
    penalty: Decimal = Decimal("0")

    @property
    def transaction_id(self):
        return self.transaction.id


def to_amount(value) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise LedgerError("Invalid amount")
    if not amount.is_finite():
        raise LedgerError("Invalid amount")
    return amount.quantize(CENT)


# --- Reads ---

def get_account(db: Session, user_id) -> Optional[Account]:
    return db.query(Account).filter(Account.user_id == user_id).first()


def get_balance(db: Session, user_id) -> dict:
    account = get_account(db, user_id)
    if not account:
        return {"balance": Decimal("0"), "currency": settings.DEFAULT_CURRENCY}
    return {"balance": Decimal(account.balance), "currency": account.currency}


def resolve_user_id(db: Session, client_id=None, user_id=None, require_user: bool = True):
    """Return ``(user_id, sfd_id)`` for a client id (admin flow) or a user id (mobile flow)."""
    if client_id:
        client = db.query(SfdClient).filter(SfdClient.id == client_id).first()
        if not client:
            raise ClientNotFound("Client not found")
        if not client.user_id:
            raise ClientNotFound("Client has no associated user account")
        return client.user_id, client.sfd_id

    if user_id:
        account = get_account(db, user_id)
        if account:
            return user_id, account.sfd_id
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            if require_user:
                raise AccountNotFound("User not found")
            return user_id, None
        return user.id, user.sfd_id

    raise LedgerError("Either userId or clientId is required")


def get_transactions(db: Session, user_id, limit: int = 50) -> list[Transaction]:
    return (
        db.query(Transaction)
        .filter(Transaction.user_id == user_id)
        .order_by(Transaction.created_at.desc())
        .limit(limit)
        .all()
    )


def list_transactions(
    db: Session,
    sfd_id=None,
    user_id=None,
    tx_type: Optional[str] = None,
    status: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    skip: int = 0,
    limit: int = 20,
):
    query = db.query(Transaction)
    if sfd_id:
        query = query.filter(Transaction.sfd_id == sfd_id)
    if user_id:
        query = query.filter(Transaction.user_id == user_id)
    if tx_type:
        query = query.filter(Transaction.type == tx_type)
    if status:
        query = query.filter(Transaction.status == status)
    if start_date:
        query = query.filter(Transaction.created_at >= start_date)
    if end_date:
        query = query.filter(Transaction.created_at <= end_date)

    total = query.count()
    rows = query.order_by(Transaction.created_at.desc()).offset(skip).limit(limit).all()
    return total, rows


# --- Writes ---

def _get_or_create_account(db: Session, user_id, sfd_id=None) -> Account:
    account = get_account(db, user_id)
    if account:
        return account
    account = Account(
        user_id=user_id,
        sfd_id=sfd_id,
        balance=Decimal("0"),
        currency=settings.DEFAULT_CURRENCY,
        version=0,
    )
    db.add(account)
    db.flush()
    logger.info("Created account %s for user %s", account.id, user_id)
    return account


def _apply_delta(db: Session, account: Account, delta: Decimal) -> None:
    result = db.execute(
        update(Account)
        .where(Account.id == account.id)
        .where(Account.balance + delta >= 0)
        .values(
            balance=Account.balance + delta,
            version=Account.version + 1,
            last_updated=func.now(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientBalance()
    db.refresh(account)


def update_balance(
    db: Session,
    user_id,
    amount,
    description: Optional[str] = None,
    sfd_id=None,
    performed_by=None,
    tx_type: Optional[TransactionType] = None,
    payment_method: str = "sfd_account",
    reference_id: Optional[str] = None,
    commit: bool = True,
) -> TransactionResult:
    """Apply a signed amount to the user's account and record it in the ledger.

    With ``commit=False`` the caller owns the transaction and must commit
    (or roll back) alongside its own changes.
    """
    delta = to_amount(amount)
    if delta == 0:
        raise LedgerError("Amount must not be zero")
    if tx_type is None:
        tx_type = TransactionType.DEPOSIT if delta > 0 else TransactionType.WITHDRAWAL

    try:
        account = _get_or_create_account(db, user_id, sfd_id)
        _apply_delta(db, account, delta)

        tx = Transaction(
            user_id=user_id,
            sfd_id=account.sfd_id or sfd_id,
            account_id=account.id,
            amount=delta,
            type=tx_type,
            status=TransactionStatus.SUCCESS,
            name=TRANSACTION_NAMES[tx_type],
            description=description or TRANSACTION_NAMES[tx_type],
            payment_method=payment_method,
            reference_id=reference_id,
            performed_by=performed_by,
        )
        db.add(tx)
        db.flush()

        if delta > 0:
            title = "Dépôt reçu" if tx_type == TransactionType.DEPOSIT else TRANSACTION_NAMES[tx_type]
            message = f"Un montant de {format_fcfa(delta)} {account.currency} a été crédité sur votre compte"
        else:
            title = "Retrait effectué" if tx_type == TransactionType.WITHDRAWAL else TRANSACTION_NAMES[tx_type]
            message = f"Un montant de {format_fcfa(-delta)} {account.currency} a été débité de votre compte"
        notify(
            db,
            recipient_id=user_id,
            sender_id=performed_by,
            title=title,
            message=message,
            type="transaction",
            metadata={"amount": delta, "transaction_id": tx.id, "transaction_type": tx_type.value},
        )
        log_audit_event(
            db,
            action=f"{tx_type.value}_processed",
            category=AuditLogCategory.FINANCIAL,
            user_id=performed_by,
            target_resource=f"accounts/{account.id}",
            details={
                "user_id": user_id,
                "amount": delta,
                "transaction_type": tx_type.value,
                "transaction_id": tx.id,
                "balance": account.balance,
            },
        )

        if commit:
            db.commit()
            db.refresh(account)
    except Exception:
        db.rollback()
        raise

    logger.info(
        "%s of %s on account %s, new balance %s",
        tx_type.value, delta, account.id, account.balance,
    )
    return TransactionResult(transaction=tx, balance=Decimal(account.balance))


def process_deposit(db: Session, user_id, amount, **kwargs) -> TransactionResult:
    value = to_amount(amount)
    if value <= 0:
        raise LedgerError("Amount must be greater than 0")
    kwargs.setdefault("description", "Dépôt sur compte")
    return update_balance(db, user_id, value, tx_type=TransactionType.DEPOSIT, **kwargs)


def process_withdrawal(db: Session, user_id, amount, **kwargs) -> TransactionResult:
    value = to_amount(amount)
    if value <= 0:
        raise LedgerError("Amount must be greater than 0")
    kwargs.setdefault("description", "Retrait du compte")
    return update_balance(db, user_id, -value, tx_type=TransactionType.WITHDRAWAL, **kwargs)


# --- Loans ---

def _get_loan(db: Session, loan_id) -> SfdLoan:
    loan = db.query(SfdLoan).filter(SfdLoan.id == loan_id).first()
    if not loan:
        raise LoanStateError("Loan not found")
    return loan


def _loan_owner(db: Session, loan: SfdLoan) -> SfdClient:
    client = db.query(SfdClient).filter(SfdClient.id == loan.client_id).first()
    if not client or not client.user_id:
        raise ClientNotFound("Client has no associated user account")
    return client


def process_loan_disbursement(db: Session, loan_id, performed_by=None) -> TransactionResult:
    loan = _get_loan(db, loan_id)
    if loan.status != LoanStatus.APPROVED:
        raise LoanStateError("Loan must be in approved status to disburse")
    client = _loan_owner(db, loan)

    now = datetime.now(timezone.utc)
    try:
        claimed = db.execute(
            update(SfdLoan)
            .where(SfdLoan.id == loan.id, SfdLoan.status == LoanStatus.APPROVED)
            .values(
                status=LoanStatus.ACTIVE,
                disbursed_at=now,
                next_payment_date=now + PAYMENT_INTERVAL,
            )
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise LoanStateError("Loan must be in approved status to disburse")

        result = update_balance(
            db,
            client.user_id,
            loan.amount,
            description=f"Décaissement du prêt {loan.id}",
            sfd_id=loan.sfd_id,
            performed_by=performed_by,
            tx_type=TransactionType.LOAN_DISBURSEMENT,
            reference_id=str(loan.id),
            commit=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(loan)
    logger.info("Loan %s disbursed (%s)", loan.id, loan.amount)
    return result


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands timestamps back without tzinfo; they are stored in UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def late_penalty(loan: SfdLoan, now: datetime) -> tuple[Decimal, int]:
    """5 % of the instalment once a payment is more than a week late."""
    due = _as_utc(loan.next_payment_date)
    if due is None:
        return Decimal("0"), 0
    days_overdue = (now - due).days
    if days_overdue <= LATE_GRACE_DAYS:
        return Decimal("0"), days_overdue
    return (Decimal(loan.monthly_payment) * LATE_PENALTY_RATE).quantize(CENT), days_overdue


def process_loan_repayment(db: Session, loan_id, amount, performed_by=None) -> TransactionResult:
    value = to_amount(amount)
    if value <= 0:
        raise LedgerError("Amount must be greater than 0")

    loan = _get_loan(db, loan_id)
    if loan.status != LoanStatus.ACTIVE:
        raise LoanStateError("Loan is not active")

    now = datetime.now(timezone.utc)
    penalty, days_overdue = late_penalty(loan, now)
    outstanding = Decimal(loan.remaining_amount) + penalty
    instalment = Decimal(loan.monthly_payment or 0)
    if value > outstanding:
        raise LedgerError(f"Amount exceeds the remaining loan balance of {format_fcfa(outstanding)} FCFA")
    # Only the payment that clears the loan may be smaller than an instalment
    if value < instalment and value != outstanding:
        raise LedgerError(f"Payment amount must be at least {format_fcfa(instalment)} FCFA (monthly payment)")
    client = _loan_owner(db, loan)

    try:
        claimed = db.execute(
            update(SfdLoan)
            .where(
                SfdLoan.id == loan.id,
                SfdLoan.status == LoanStatus.ACTIVE,
                SfdLoan.remaining_amount + penalty >= value,
            )
            .values(remaining_amount=SfdLoan.remaining_amount + penalty - value, last_payment_date=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise LoanStateError("Loan changed while processing the repayment")

        if penalty:
            db.add(LoanPenalty(loan_id=loan.id, amount=penalty, days_overdue=days_overdue))

        result = update_balance(
            db,
            client.user_id,
            -value,
            description=f"Remboursement du prêt {loan.id}",
            sfd_id=loan.sfd_id,
            performed_by=performed_by,
            tx_type=TransactionType.LOAN_REPAYMENT,
            reference_id=str(loan.id),
            commit=False,
        )

        db.refresh(loan)
        if Decimal(loan.remaining_amount) <= 0:
            loan.status = LoanStatus.COMPLETED
            loan.next_payment_date = None
        else:
            # The schedule moves one interval per full instalment covered, penalty excluded
            covered = int((value - penalty) // instalment) if instalment > 0 else 1
            if covered > 0:
                due = _as_utc(loan.next_payment_date) or now
                loan.next_payment_date = due + covered * PAYMENT_INTERVAL
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(loan)
    result.penalty = penalty
    if penalty:
        logger.warning("Loan %s paid %s days late, penalty %s", loan.id, days_overdue, penalty)
    logger.info("Loan %s repayment of %s, remaining %s", loan.id, value, loan.remaining_amount)
    return result
