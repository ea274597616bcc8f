import uuid
from decimal import Decimal

import pytest

from ngnasoro.models.account import Account
from ngnasoro.models.audit import AuditLog, AuditLogCategory
from ngnasoro.models.notification import AdminNotification
from ngnasoro.models.transaction import Transaction, TransactionStatus, TransactionType
from ngnasoro.services import ledger


def _transactions(db, user_id):
    db.expire_all()
    return db.query(Transaction).filter(Transaction.user_id == user_id).all()


def test_deposit_onto_empty_account(db, client_file, client_user, cashier):
    result = ledger.process_deposit(db, client_user.id, 250000, performed_by=cashier.id)

    assert result.balance == Decimal("250000")
    rows = _transactions(db, client_user.id)
    assert len(rows) == 1
    assert rows[0].type == TransactionType.DEPOSIT
    assert rows[0].amount == Decimal("250000")
    assert rows[0].status == TransactionStatus.SUCCESS
    assert rows[0].id == result.transaction_id
    assert ledger.get_balance(db, client_user.id) == {"balance": Decimal("250000"), "currency": "FCFA"}


def test_withdrawal_above_balance_is_rejected(db, client_file, client_user, cashier):
    ledger.process_deposit(db, client_user.id, 50000, performed_by=cashier.id)

    with pytest.raises(ledger.InsufficientBalance, match="Insufficient balance"):
        ledger.process_withdrawal(db, client_user.id, 100000, performed_by=cashier.id)

    assert ledger.get_balance(db, client_user.id)["balance"] == Decimal("50000")
    rows = _transactions(db, client_user.id)
    assert [row.type for row in rows] == [TransactionType.DEPOSIT]


def test_withdrawal_is_stored_negative(db, client_file, client_user, cashier):
    ledger.process_deposit(db, client_user.id, 80000, performed_by=cashier.id)
    result = ledger.process_withdrawal(db, client_user.id, 30000, performed_by=cashier.id)

    assert result.balance == Decimal("50000")
    assert result.transaction.amount == Decimal("-30000")
    assert result.transaction.type == TransactionType.WITHDRAWAL


def test_balance_without_account_is_zero(db):
    assert ledger.get_balance(db, uuid.uuid4()) == {"balance": Decimal("0"), "currency": "FCFA"}


def test_first_credit_creates_the_account(db, make_user, sfd):
    user = make_user("client", sfd=sfd)
    assert ledger.get_account(db, user.id) is None

    ledger.update_balance(db, user.id, Decimal("1500.50"), sfd_id=sfd.id)

    account = ledger.get_account(db, user.id)
    assert account is not None
    assert account.currency == "FCFA"
    assert account.sfd_id == sfd.id
    assert Decimal(account.balance) == Decimal("1500.50")


def test_first_debit_on_missing_account_is_rejected(db, make_user):
    user = make_user("client")
    with pytest.raises(ledger.InsufficientBalance):
        ledger.update_balance(db, user.id, -100)
    assert _transactions(db, user.id) == []


@pytest.mark.parametrize("amount", [0, "0.00"])
def test_zero_amount_is_rejected(db, client_file, client_user, amount):
    with pytest.raises(ledger.LedgerError, match="zero"):
        ledger.update_balance(db, client_user.id, amount)


@pytest.mark.parametrize("amount", [-5, 0])
def test_deposit_requires_positive_amount(db, client_file, client_user, amount):
    with pytest.raises(ledger.LedgerError, match="greater than 0"):
        ledger.process_deposit(db, client_user.id, amount)


def test_invalid_amount(db, client_file, client_user):
    with pytest.raises(ledger.LedgerError, match="Invalid amount"):
        ledger.process_deposit(db, client_user.id, "abc")
    with pytest.raises(ledger.LedgerError, match="Invalid amount"):
        ledger.process_deposit(db, client_user.id, "NaN")


def test_every_mutation_writes_one_row_notification_and_audit(db, client_file, client_user, cashier):
    ledger.process_deposit(db, client_user.id, 100000, performed_by=cashier.id)
    ledger.process_withdrawal(db, client_user.id, 25000, performed_by=cashier.id)
    ledger.update_balance(db, client_user.id, Decimal("-5000"), performed_by=cashier.id, description="Frais")

    rows = _transactions(db, client_user.id)
    assert len(rows) == 3
    assert sum(Decimal(row.amount) for row in rows) == ledger.get_balance(db, client_user.id)["balance"]

    notifications = db.query(AdminNotification).filter(
        AdminNotification.recipient_id == client_user.id, AdminNotification.type == "transaction"
    ).count()
    assert notifications == 3

    audits = db.query(AuditLog).filter(AuditLog.category == AuditLogCategory.FINANCIAL).all()
    assert sorted(a.action for a in audits) == ["deposit_processed", "withdrawal_processed", "withdrawal_processed"]
    assert all(a.user_id == cashier.id for a in audits)


def test_version_is_bumped_on_each_change(db, client_file, client_user):
    ledger.process_deposit(db, client_user.id, 1000)
    ledger.process_deposit(db, client_user.id, 1000)
    account = db.query(Account).filter(Account.user_id == client_user.id).one()
    assert account.version == 2


def test_failed_withdrawal_leaves_no_side_effects(db, client_file, client_user):
    with pytest.raises(ledger.InsufficientBalance):
        ledger.process_withdrawal(db, client_user.id, 1)

    db.expire_all()
    assert db.query(AdminNotification).filter(AdminNotification.type == "transaction").count() == 0
    assert db.query(AuditLog).filter(AuditLog.category == AuditLogCategory.FINANCIAL).count() == 0


def test_resolve_user_id(db, client_file, client_user, unlinked_client, sfd):
    assert ledger.resolve_user_id(db, client_id=client_file.id) == (client_user.id, sfd.id)
    assert ledger.resolve_user_id(db, user_id=client_user.id) == (client_user.id, sfd.id)

    with pytest.raises(ledger.ClientNotFound, match="Client not found"):
        ledger.resolve_user_id(db, client_id=uuid.uuid4())
    with pytest.raises(ledger.ClientNotFound, match="no associated user"):
        ledger.resolve_user_id(db, client_id=unlinked_client.id)
    with pytest.raises(ledger.AccountNotFound):
        ledger.resolve_user_id(db, user_id=uuid.uuid4())
    with pytest.raises(ledger.LedgerError):
        ledger.resolve_user_id(db)


def test_get_transactions_limit(db, client_file, client_user):
    for _ in range(4):
        ledger.process_deposit(db, client_user.id, 100)
    assert len(ledger.get_transactions(db, client_user.id, limit=3)) == 3


def test_list_transactions_filters(db, client_file, client_user, make_user, other_sfd):
    other = make_user("client", sfd=other_sfd)
    ledger.process_deposit(db, client_user.id, 1000)
    ledger.process_withdrawal(db, client_user.id, 400)
    ledger.update_balance(db, other.id, 700, sfd_id=other_sfd.id)

    total, rows = ledger.list_transactions(db, sfd_id=client_file.sfd_id)
    assert total == 2
    total, rows = ledger.list_transactions(db, tx_type=TransactionType.WITHDRAWAL.value)
    assert total == 1 and rows[0].amount == Decimal("-400")
    total, rows = ledger.list_transactions(db, skip=1, limit=1)
    assert total == 3 and len(rows) == 1
