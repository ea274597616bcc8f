import pytest

from ngnasoro.models.audit import AuditLog
from ngnasoro.models.loan import ApplicationStatus, LoanStatus, SfdLoan
from ngnasoro.models.notification import AdminNotification
from ngnasoro.services import clients, credit


def _call(api, headers, action, payload=None):
    return api.post("/credit-manager", json={"action": action, "payload": payload or {}}, headers=headers)


@pytest.fixture
def application(db, client_file, sfd_admin):
    return credit.create_application(
        db,
        client_id=client_file.id,
        amount=500000,
        purpose="Fonds de roulement boutique",
        duration_months=12,
        created_by=sfd_admin.id,
    )


def test_create_application(api, sfd_admin, client_file, headers_for):
    response = _call(api, headers_for(sfd_admin), "create_application", {
        "client_id": str(client_file.id),
        "amount": 300000,
        "purpose": "Achat de semences",
        "duration_months": 6,
    })

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["reference"].startswith("CR-")
    assert data["status"] == "pending"
    assert 0 <= data["score"] <= 100


def test_references_are_sequential(db, client_file, sfd_admin):
    first = credit.create_application(db, client_file.id, 1000, "A", 3, sfd_admin.id)
    second = credit.create_application(db, client_file.id, 1000, "B", 3, sfd_admin.id)
    assert first.reference.endswith("-0001")
    assert second.reference.endswith("-0002")


@pytest.mark.parametrize("role_fixture", ["sfd_admin", "cashier", "client_user"])
def test_only_admin_can_approve(request, api, application, headers_for, role_fixture):
    caller = request.getfixturevalue(role_fixture)
    response = _call(api, headers_for(caller), "approve_application", {"application_id": str(application.id)})
    assert response.status_code == 403


@pytest.mark.parametrize("role_fixture", ["sfd_admin", "cashier", "client_user"])
def test_only_admin_can_reject(request, api, application, headers_for, role_fixture):
    caller = request.getfixturevalue(role_fixture)
    response = _call(api, headers_for(caller), "reject_application", {
        "application_id": str(application.id), "reason": "Dossier incomplet",
    })
    assert response.status_code == 403


def test_admin_approves(api, db, admin, sfd_admin, application, headers_for):
    response = _call(api, headers_for(admin), "approve_application", {"application_id": str(application.id)})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["application"]["status"] == "approved"
    assert data["loan"]["status"] == "approved"
    assert data["loan"]["remaining_amount"] == 500000

    db.expire_all()
    loan = db.query(SfdLoan).filter(SfdLoan.application_id == application.id).one()
    assert loan.status == LoanStatus.APPROVED
    assert db.query(AuditLog).filter(AuditLog.action == "credit_approval").count() == 1
    assert db.query(AdminNotification).filter(
        AdminNotification.recipient_id == sfd_admin.id, AdminNotification.type == "credit"
    ).count() == 1


def test_decided_application_cannot_change(api, admin, application, headers_for):
    headers = headers_for(admin)
    assert _call(api, headers, "approve_application", {"application_id": str(application.id)}).status_code == 200

    response = _call(api, headers, "reject_application", {"application_id": str(application.id), "reason": "Trop tard"})
    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert "not pending" in body["message"]


def test_reject_requires_reason(api, admin, application, headers_for):
    response = _call(api, headers_for(admin), "reject_application", {"application_id": str(application.id)})
    assert response.status_code == 400
    assert response.json() == {"error": "Rejection reason is required"}


def test_reject(api, db, admin, application, headers_for):
    response = _call(api, headers_for(admin), "reject_application", {
        "application_id": str(application.id), "reason": "Capacité de remboursement insuffisante",
    })
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "rejected"
    db.expire_all()
    assert db.query(SfdLoan).count() == 0


def test_unknown_action(api, admin, headers_for):
    response = _call(api, headers_for(admin), "delete_everything")
    assert response.status_code == 400
    assert "error" in response.json()


def test_missing_authorization(api):
    response = api.post("/credit-manager", json={"action": "get_applications"})
    assert response.status_code == 401


def test_invalid_payload(api, sfd_admin, client_file, headers_for):
    response = _call(api, headers_for(sfd_admin), "create_application", {
        "client_id": str(client_file.id), "amount": -5, "purpose": "x", "duration_months": 6,
    })
    assert response.status_code == 400

    response = _call(api, headers_for(sfd_admin), "create_application", {
        "client_id": str(client_file.id), "amount": 1000, "purpose": "x", "duration_months": 500,
    })
    assert response.status_code == 400


def test_sfd_admin_cannot_submit_for_another_sfd(api, db, make_user, other_sfd, client_file, headers_for):
    foreign_admin = make_user("sfd_admin", sfd=other_sfd)
    response = _call(api, headers_for(foreign_admin), "create_application", {
        "client_id": str(client_file.id), "amount": 1000, "purpose": "Commerce", "duration_months": 6,
    })
    assert response.status_code == 500
    assert response.json()["message"] == "Client not found"


def test_get_applications_is_scoped(api, db, admin, sfd_admin, other_sfd, application, headers_for):
    foreign = clients.create_client(db, sfd_id=other_sfd.id, full_name="Oumar Sangaré")
    credit.create_application(db, foreign.id, 20000, "Elevage", 10, admin.id)

    response = _call(api, headers_for(sfd_admin), "get_applications")
    assert response.status_code == 200
    assert [a["id"] for a in response.json()["data"]] == [str(application.id)]

    response = _call(api, headers_for(admin), "get_applications", {"status": "pending"})
    assert len(response.json()["data"]) == 2


def test_clients_cannot_list_applications(api, client_user, headers_for):
    assert _call(api, headers_for(client_user), "get_applications").status_code == 403


def test_monthly_payment():
    from decimal import Decimal

    assert credit.monthly_payment(Decimal("120000"), Decimal("0"), 12) == Decimal("10000")
    # 100 000 at 12 %/year over 12 months
    assert credit.monthly_payment(Decimal("100000"), Decimal("12"), 12) == Decimal("8885")


def test_approve_with_interest_sets_total_due(db, admin, client_file, sfd_admin):
    from decimal import Decimal

    application = credit.create_application(
        db, client_file.id, 100000, "Equipement", 12, sfd_admin.id, interest_rate=Decimal("12")
    )
    approved, loan = credit.approve_application(db, application.id, admin.id)
    assert approved.status == ApplicationStatus.APPROVED
    assert loan.monthly_payment == Decimal("8885")
    assert loan.remaining_amount == Decimal("106620")
