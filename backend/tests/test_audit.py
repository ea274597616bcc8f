from datetime import datetime, timedelta, timezone

from ngnasoro.models.audit import AuditLog, AuditLogCategory, AuditLogSeverity, AuditLogStatus
from ngnasoro.services.audit import CSV_COLUMNS, export_audit_logs_csv, get_audit_logs, log_audit_event


def _seed(db, admin):
    log_audit_event(db, "login", AuditLogCategory.AUTHENTICATION, user_id=admin.id)
    log_audit_event(
        db, "login_failed", AuditLogCategory.AUTHENTICATION,
        severity=AuditLogSeverity.WARNING, status=AuditLogStatus.FAILURE, error_message="bad password",
    )
    log_audit_event(db, "deposit_processed", AuditLogCategory.FINANCIAL, user_id=admin.id, details={"amount": 1000})
    log_audit_event(
        db, "sfd_suspended", AuditLogCategory.ADMINISTRATION,
        severity=AuditLogSeverity.CRITICAL, user_id=admin.id, commit=True,
    )


def test_log_is_added_to_the_session_only(db, admin):
    log_audit_event(db, "login", AuditLogCategory.AUTHENTICATION, user_id=admin.id)
    db.rollback()
    assert db.query(AuditLog).count() == 0


def test_details_are_made_json_safe(db, admin):
    entry = log_audit_event(
        db, "role_assigned", AuditLogCategory.USER_MANAGEMENT,
        details={"user_id": admin.id, "when": datetime(2024, 5, 1)}, commit=True,
    )
    assert entry.details == {"user_id": str(admin.id), "when": "2024-05-01 00:00:00"}


def test_filters(db, admin):
    _seed(db, admin)

    assert len(get_audit_logs(db)) == 4
    assert {log.action for log in get_audit_logs(db, category="AUTHENTICATION")} == {"login", "login_failed"}
    assert len(get_audit_logs(db, category=["FINANCIAL", "ADMINISTRATION"])) == 2
    assert [log.action for log in get_audit_logs(db, severity=["WARNING", "CRITICAL"], status="failure")] == [
        "login_failed"
    ]
    assert len(get_audit_logs(db, user_id=admin.id)) == 3
    assert len(get_audit_logs(db, limit=2)) == 2


def test_date_range(db, admin):
    _seed(db, admin)
    now = datetime.now(timezone.utc)
    assert len(get_audit_logs(db, start_date=now - timedelta(hours=1), end_date=now + timedelta(hours=1))) == 4
    assert get_audit_logs(db, start_date=now + timedelta(days=1)) == []


def test_csv_export(db, admin):
    _seed(db, admin)
    lines = export_audit_logs_csv(get_audit_logs(db)).strip().splitlines()
    assert lines[0] == ",".join(CSV_COLUMNS)
    assert len(lines) == 5


def test_audit_endpoints_require_capability(api, db, admin, cashier, headers_for):
    _seed(db, admin)

    assert api.get("/audit-logs", headers=headers_for(cashier)).status_code == 403

    response = api.get("/audit-logs", params={"category": "AUTHENTICATION"}, headers=headers_for(admin))
    assert response.status_code == 200
    assert {row["action"] for row in response.json()} == {"login", "login_failed"}

    response = api.get("/audit-logs/export", headers=headers_for(admin))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.text.startswith("id,created_at")


def test_login_is_audited(api, db, make_user):
    from ngnasoro.core.security import hash_password

    make_user("client", email="mariam@example.com", hashed_password=hash_password("bonjour-123"))

    assert api.post("/auth/login", json={"email": "mariam@example.com", "password": "wrong-pass"}).status_code == 401
    assert api.post("/auth/login", json={"email": "mariam@example.com", "password": "bonjour-123"}).status_code == 200

    db.expire_all()
    actions = {log.action: log for log in get_audit_logs(db, category="AUTHENTICATION")}
    assert actions["login_failed"].status == AuditLogStatus.FAILURE
    assert actions["login"].status == AuditLogStatus.SUCCESS
