import uuid

import pytest

from ngnasoro.models.user import AdminUser, User
from ngnasoro.services import roles


def test_assign_sfd_admin_updates_every_record(db, make_user, sfd):
    user = make_user("user", email="awa.sidibe@example.com")

    roles.assign_role_to_user(db, "Awa.Sidibe@example.com", "sfd_admin", sfd_id=sfd.id)

    db.expire_all()
    stored = db.query(User).filter(User.id == user.id).one()
    mirror = db.query(AdminUser).filter(AdminUser.id == user.id).one()
    assert stored.role == "sfd_admin"
    assert mirror.role == "sfd_admin"
    assert stored.sfd_id == sfd.id
    assert roles.get_user_roles(db, user.id) == ["sfd_admin"]


def test_demotion_removes_the_staff_mirror(db, make_user, sfd):
    user = make_user("cashier", sfd=sfd)
    roles.assign_role_to_user(db, user.email, "cashier")
    assert db.query(AdminUser).filter(AdminUser.id == user.id).count() == 1

    roles.assign_role_to_user(db, user.email, "client")

    db.expire_all()
    assert db.query(AdminUser).filter(AdminUser.id == user.id).count() == 0
    assert roles.get_user_roles(db, user.id) == ["client"]


def test_assignment_errors(db, make_user):
    user = make_user("user")
    with pytest.raises(roles.RoleAssignmentError, match="No user found"):
        roles.assign_role_to_user(db, "nobody@example.com", "admin")
    with pytest.raises(roles.RoleAssignmentError, match="Invalid role"):
        roles.assign_role_to_user(db, user.email, "superuser")
    with pytest.raises(roles.RoleAssignmentError, match="requires an SFD"):
        roles.assign_role_to_user(db, user.email, "cashier")


def test_create_staff_user(db, sfd, admin):
    staff = roles.create_staff_user(
        db, "caisse@kafo.ml", "mot-de-passe-1", "cashier", full_name="Caisse 1", sfd_id=sfd.id, performed_by=admin.id
    )
    assert staff.role == "cashier"
    assert db.query(AdminUser).filter(AdminUser.id == staff.id).one().role == "cashier"

    with pytest.raises(roles.RoleAssignmentError, match="already registered"):
        roles.create_staff_user(db, "caisse@kafo.ml", "mot-de-passe-1", "cashier", sfd_id=sfd.id)
    with pytest.raises(roles.RoleAssignmentError, match="Invalid staff role"):
        roles.create_staff_user(db, "x@kafo.ml", "mot-de-passe-1", "client")


def test_delete_sfd_user(db, cashier, admin, client_user):
    roles.delete_sfd_user(db, cashier.id, performed_by=admin.id)

    db.expire_all()
    stored = db.query(User).filter(User.id == cashier.id).one()
    assert stored.is_active is False
    assert stored.role == "user"
    assert db.query(AdminUser).filter(AdminUser.id == cashier.id).count() == 0

    with pytest.raises(roles.RoleAssignmentError, match="Only SFD users"):
        roles.delete_sfd_user(db, client_user.id)
    with pytest.raises(roles.RoleAssignmentError, match="User not found"):
        roles.delete_sfd_user(db, uuid.uuid4())


def test_assign_role_endpoint(api, db, admin, sfd_admin, make_user, sfd, headers_for):
    target = make_user("user")
    body = {"email": target.email, "role": "sfd_admin", "sfd_id": str(sfd.id)}

    assert api.post("/admin/roles", json=body, headers=headers_for(sfd_admin)).status_code == 403

    response = api.post("/admin/roles", json=body, headers=headers_for(admin))
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "sfd_admin"
    assert response.json()["roles"] == ["sfd_admin"]

    response = api.post("/admin/roles", json={**body, "email": "ghost@example.com"}, headers=headers_for(admin))
    assert response.status_code == 404


def test_staff_listing_and_deletion_endpoints(api, admin, sfd, headers_for):
    headers = headers_for(admin)
    response = api.post("/admin/users", json={
        "email": "agent@kafo.ml", "password": "mot-de-passe-1", "role": "sfd_admin", "sfd_id": str(sfd.id),
    }, headers=headers)
    assert response.status_code == 201
    staff_id = response.json()["id"]

    listing = api.get("/admin/users", params={"role": "sfd_admin"}, headers=headers).json()
    assert [row["id"] for row in listing] == [staff_id]
    assert listing[0]["sfd_id"] == str(sfd.id)

    assert api.delete(f"/admin/sfd-users/{staff_id}", headers=headers).status_code == 200
    assert api.get("/admin/users", headers=headers).json() == []


def test_deleted_user_can_no_longer_authenticate(api, db, admin, cashier, headers_for):
    headers = headers_for(cashier)
    roles.delete_sfd_user(db, cashier.id, performed_by=admin.id)
    response = api.post("/client-accounts", json={"action": "getBalance"}, headers=headers)
    assert response.status_code == 401
