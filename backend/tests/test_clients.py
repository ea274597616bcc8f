import pytest

from ngnasoro.models.account import Account
from ngnasoro.models.sfd import ClientStatus, SfdStatus
from ngnasoro.services import clients


def test_validation_opens_the_account(db, client_file, client_user):
    assert client_file.status == ClientStatus.VALIDATED
    assert client_file.kyc_level == 1
    account = db.query(Account).filter(Account.user_id == client_user.id).one()
    assert account.sfd_id == client_file.sfd_id
    assert account.currency == "FCFA"


def test_validate_and_reject_rules(db, unlinked_client, sfd_admin):
    validated = clients.validate_client(db, unlinked_client.id, sfd_admin.id, kyc_level=2)
    assert validated.kyc_level == 2
    # No mobile user yet, so no account either
    assert db.query(Account).count() == 0

    with pytest.raises(clients.ClientError, match="already validated"):
        clients.validate_client(db, unlinked_client.id, sfd_admin.id)
    with pytest.raises(clients.ClientError, match="not pending"):
        clients.reject_client(db, unlinked_client.id, sfd_admin.id, "Pièce d'identité expirée")


def test_reject_requires_reason(db, unlinked_client, sfd_admin):
    with pytest.raises(clients.ClientError, match="reason"):
        clients.reject_client(db, unlinked_client.id, sfd_admin.id, "")
    rejected = clients.reject_client(db, unlinked_client.id, sfd_admin.id, "Doublon")
    assert rejected.status == ClientStatus.REJECTED
    assert rejected.rejection_reason == "Doublon"


def test_kyc_level_only_goes_up(db, client_file, sfd_admin):
    upgraded = clients.upgrade_kyc_level(db, client_file.id, 3, sfd_admin.id)
    assert upgraded.kyc_level == 3
    with pytest.raises(clients.ClientError, match="only increase"):
        clients.upgrade_kyc_level(db, client_file.id, 2, sfd_admin.id)


def test_pending_client_cannot_be_upgraded(db, unlinked_client, sfd_admin):
    with pytest.raises(clients.ClientError, match="validated"):
        clients.upgrade_kyc_level(db, unlinked_client.id, 2, sfd_admin.id)


def test_suspended_sfd_takes_no_new_clients(db, sfd, admin):
    clients.set_sfd_status(db, sfd.id, "suspended", performed_by=admin.id, reason="Audit en cours")
    assert clients.get_sfd(db, sfd.id).status == SfdStatus.SUSPENDED
    with pytest.raises(clients.ClientError, match="not active"):
        clients.create_client(db, sfd.id, "Issa Touré")


def test_duplicate_sfd_code(db, sfd):
    with pytest.raises(clients.ClientError, match="already exists"):
        clients.create_sfd(db, "Autre", "kafo")


def test_link_client_user(db, unlinked_client, make_user, sfd_admin, sfd):
    user = make_user("user")
    clients.validate_client(db, unlinked_client.id, sfd_admin.id)

    linked = clients.link_client_user(db, unlinked_client.id, user, performed_by=sfd_admin.id)

    assert linked.user_id == user.id
    db.refresh(user)
    assert user.role == "client"
    assert user.sfd_id == sfd.id
    assert db.query(Account).filter(Account.user_id == user.id).count() == 1

    with pytest.raises(clients.ClientError, match="another user"):
        clients.link_client_user(db, unlinked_client.id, make_user("user"))


def test_find_client_by_phone_only_matches_validated(db, client_file, unlinked_client, sfd_admin):
    assert clients.find_client_by_phone(db, "+22370000001").id == client_file.id
    unlinked_client.phone = "+22370000002"
    db.commit()
    assert clients.find_client_by_phone(db, "+22370000002") is None


def test_client_endpoints(api, db, sfd, cashier, other_cashier, client_user, headers_for):
    headers = headers_for(cashier)
    response = api.post("/clients", json={"full_name": "Bakary Dembélé", "phone": "+22376000000"}, headers=headers)
    assert response.status_code == 201
    client_id = response.json()["id"]
    assert response.json()["sfd_id"] == str(sfd.id)
    assert response.json()["status"] == "pending"

    assert api.get(f"/clients/{client_id}", headers=headers_for(other_cashier)).status_code == 403
    assert api.post(f"/clients/{client_id}/validate", json={}, headers=headers_for(client_user)).status_code == 403

    response = api.post(f"/clients/{client_id}/validate", json={"kyc_level": 2}, headers=headers)
    assert response.status_code == 200
    assert response.json()["kyc_level"] == 2
    assert api.post(f"/clients/{client_id}/validate", json={}, headers=headers).status_code == 409

    response = api.post(f"/clients/{client_id}/kyc", json={"level": 3}, headers=headers)
    assert response.json()["kyc_level"] == 3

    response = api.post(f"/clients/{client_id}/link-user", json={"email": client_user.email}, headers=headers)
    assert response.status_code == 200
    assert response.json()["user_id"] == str(client_user.id)

    listing = api.get("/clients", params={"search": "Bakary"}, headers=headers).json()
    assert [row["id"] for row in listing] == [client_id]
    assert api.get("/clients", headers=headers_for(other_cashier)).json() == []


def test_sfd_endpoints(api, admin, sfd_admin, headers_for):
    response = api.post("/sfds", json={"name": "Soro Yiriwaso", "code": "sy"}, headers=headers_for(admin))
    assert response.status_code == 201
    assert response.json()["code"] == "SY"
    assert response.json()["subsidy_balance"] == 0

    assert api.post("/sfds", json={"name": "X", "code": "XX"}, headers=headers_for(sfd_admin)).status_code == 403
    assert api.post("/sfds", json={"name": "Dup", "code": "SY"}, headers=headers_for(admin)).status_code == 409

    sfd_id = response.json()["id"]
    response = api.patch(f"/sfds/{sfd_id}/status", json={"status": "suspended"}, headers=headers_for(admin))
    assert response.json()["status"] == "suspended"

    names = {row["name"] for row in api.get("/sfds", headers=headers_for(sfd_admin)).json()}
    assert names == {"Kafo Jiginew"}
