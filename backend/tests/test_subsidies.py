from decimal import Decimal

import pytest

from ngnasoro.models.audit import AuditLog
from ngnasoro.models.notification import AdminNotification
from ngnasoro.models.sfd import Sfd
from ngnasoro.models.subsidy import SubsidyStatus
from ngnasoro.services import subsidies
from ngnasoro.services.credit import WorkflowError


@pytest.fixture
def fund_request(db, sfd, sfd_admin, admin):
    return subsidies.create_request(
        db,
        sfd_id=sfd.id,
        amount=1000000,
        purpose="Crédits agricoles campagne 2024",
        requested_by=sfd_admin.id,
        justification="Hausse de la demande",
        priority="high",
    )


def test_create_request_notifies_admins(db, fund_request, admin, sfd):
    assert fund_request.status == SubsidyStatus.PENDING
    assert fund_request.region == sfd.region
    assert [a.activity_type for a in subsidies.get_activities(db, fund_request.id)] == ["request_created"]
    assert db.query(AdminNotification).filter(AdminNotification.recipient_id == admin.id).count() == 1
    assert db.query(AuditLog).filter(AuditLog.action == "fund_request_submit").count() == 1


def test_approval_credits_the_sfd(db, fund_request, admin, sfd, sfd_admin):
    approved = subsidies.approve_request(db, fund_request.id, admin.id, comments="Validé en comité")

    assert approved.status == SubsidyStatus.APPROVED
    assert approved.approved_amount == Decimal("1000000")
    db.expire_all()
    assert db.query(Sfd).filter(Sfd.id == sfd.id).one().subsidy_balance == Decimal("1000000")
    assert db.query(AdminNotification).filter(
        AdminNotification.recipient_id == sfd_admin.id, AdminNotification.type == "subsidy_approved"
    ).count() == 1


def test_approved_amount_is_capped_at_150_percent(db, fund_request, admin):
    with pytest.raises(WorkflowError, match="150%"):
        subsidies.approve_request(db, fund_request.id, admin.id, approved_amount=1500001)
    with pytest.raises(WorkflowError, match="positive"):
        subsidies.approve_request(db, fund_request.id, admin.id, approved_amount=0)

    approved = subsidies.approve_request(db, fund_request.id, admin.id, approved_amount=1500000)
    assert approved.approved_amount == Decimal("1500000")


def test_only_pending_requests_are_decided(db, fund_request, admin):
    subsidies.reject_request(db, fund_request.id, admin.id, "Budget épuisé")
    with pytest.raises(WorkflowError, match="not pending"):
        subsidies.approve_request(db, fund_request.id, admin.id)
    with pytest.raises(WorkflowError, match="not approved"):
        subsidies.complete_request(db, fund_request.id, admin.id)


def test_reject_requires_reason(db, fund_request, admin):
    with pytest.raises(WorkflowError, match="reason"):
        subsidies.reject_request(db, fund_request.id, admin.id, "  ")


def test_full_lifecycle(db, fund_request, admin):
    subsidies.approve_request(db, fund_request.id, admin.id)
    subsidies.update_priority(db, fund_request.id, "urgent", admin.id)
    completed = subsidies.complete_request(db, fund_request.id, admin.id)

    assert completed.status == SubsidyStatus.COMPLETED
    assert completed.completed_at is not None
    activity_types = {a.activity_type for a in subsidies.get_activities(db, fund_request.id)}
    assert activity_types == {"request_created", "request_approved", "priority_changed", "funds_transferred"}


def test_subsidy_endpoints(api, admin, sfd_admin, other_sfd, headers_for):
    response = api.post("/subsidies/requests", json={
        "amount": 250000, "purpose": "Microcrédits femmes rurales",
    }, headers=headers_for(sfd_admin))
    assert response.status_code == 201
    request_id = response.json()["id"]
    assert response.json()["amount"] == 250000

    response = api.post("/subsidies/requests", json={
        "sfd_id": str(other_sfd.id), "amount": 1000, "purpose": "x",
    }, headers=headers_for(sfd_admin))
    assert response.status_code == 403

    approve = f"/subsidies/requests/{request_id}/approve"
    assert api.post(approve, json={}, headers=headers_for(sfd_admin)).status_code == 403
    response = api.post(approve, json={"approved_amount": 300000}, headers=headers_for(admin))
    assert response.status_code == 200
    assert response.json()["approved_amount"] == 300000
    assert api.post(approve, json={}, headers=headers_for(admin)).status_code == 409

    response = api.post(approve.replace(request_id, "00000000-0000-0000-0000-000000000000"), json={},
                        headers=headers_for(admin))
    assert response.status_code == 404

    listing = api.get("/subsidies/requests", params={"status": "approved"}, headers=headers_for(sfd_admin))
    assert [row["id"] for row in listing.json()] == [request_id]
