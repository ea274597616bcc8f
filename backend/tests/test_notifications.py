from ngnasoro.services import ledger


def test_deposit_notification_can_be_read(api, db, client_file, client_user, cashier, headers_for):
    ledger.process_deposit(db, client_user.id, 250000, performed_by=cashier.id)
    headers = headers_for(client_user)

    inbox = api.get("/notifications", params={"unread_only": True}, headers=headers).json()
    deposit = next(n for n in inbox if n["type"] == "transaction")
    assert deposit["title"] == "Dépôt reçu"
    assert "250 000 FCFA" in deposit["message"]
    assert deposit["read"] is False

    response = api.post(f"/notifications/{deposit['id']}/read", headers=headers)
    assert response.status_code == 200
    assert response.json()["read"] is True

    unread = api.get("/notifications", params={"unread_only": True}, headers=headers).json()
    assert deposit["id"] not in [n["id"] for n in unread]


def test_cannot_read_someone_elses_notification(api, db, client_file, client_user, cashier, headers_for):
    ledger.process_deposit(db, client_user.id, 1000, performed_by=cashier.id)
    notification_id = api.get("/notifications", headers=headers_for(client_user)).json()[0]["id"]

    response = api.post(f"/notifications/{notification_id}/read", headers=headers_for(cashier))
    assert response.status_code == 404


def test_notifications_require_a_token(api):
    assert api.get("/notifications").status_code == 401


def test_only_platform_admins_change_sfd_status(api, sfd, sfd_admin, headers_for):
    response = api.patch(f"/sfds/{sfd.id}/status", json={"status": "suspended"}, headers=headers_for(sfd_admin))
    assert response.status_code == 403
    assert response.json()["detail"] == "Admin access required"
