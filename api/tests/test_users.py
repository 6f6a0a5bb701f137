import os

ADMIN_HEADERS = {"X-Access-Token": os.getenv("ADMIN_ACCESS_TOKEN", "admin-test-token")}


def test_register_returns_token_usable_for_me(client, make_user):
    user, headers = make_user("Individual", email="Someone@Example.com", username="someone")
    assert user["email"] == "someone@example.com"
    me = client.get("/api/users/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["username"] == "someone"


def test_register_rejects_duplicates_and_admin(client, make_user):
    make_user("Individual", email="dup@example.com", username="dup")
    resp = client.post("/api/users", json={"username": "dup2", "email": "DUP@example.com", "role": "Individual"})
    assert resp.status_code == 409
    resp = client.post("/api/users", json={"username": "dup", "email": "other@example.com", "role": "Individual"})
    assert resp.status_code == 409
    resp = client.post("/api/users", json={"username": "root", "email": "root@example.com", "role": "Admin"})
    assert resp.status_code == 400


def test_staff_registration_requires_real_agency(client, make_user):
    individual, _ = make_user("Individual")
    resp = client.post(
        "/api/users",
        json={"username": "s", "email": "s@example.com", "role": "Staff", "agency_id": individual["id"]},
    )
    assert resp.status_code == 400

    agency, _ = make_user("Agency")
    staff, _ = make_user("Staff", agency_id=agency["id"])
    assert staff["agency_id"] == agency["id"]
    # agency_id is ignored for non-Staff roles
    loner, _ = make_user("Individual", agency_id=agency["id"])
    assert loner["agency_id"] is None


def test_agency_staff_listing(client, make_user):
    agency, agency_headers = make_user("Agency")
    staff, staff_headers = make_user("Staff", agency_id=agency["id"])
    make_user("Staff")

    listed = client.get("/api/users/agency-staff", headers=agency_headers).json()
    assert [u["id"] for u in listed] == [staff["id"]]
    assert client.get("/api/users/agency-staff", headers=staff_headers).status_code == 403


def test_profile_access_and_update(client, make_user):
    agency, agency_headers = make_user("Agency")
    staff, staff_headers = make_user("Staff", agency_id=agency["id"])
    other, other_headers = make_user("Individual")

    assert client.get(f"/api/users/{staff['id']}", headers=agency_headers).status_code == 200
    assert client.get(f"/api/users/{staff['id']}", headers=other_headers).status_code == 403
    assert client.get("/api/users/9999", headers=other_headers).status_code == 404

    resp = client.patch(f"/api/users/{staff['id']}", json={"contact_number": "555-0100"}, headers=agency_headers)
    assert resp.status_code == 200
    assert resp.json()["contact_number"] == "555-0100"

    clash = client.patch(f"/api/users/{staff['id']}", json={"email": other["email"]}, headers=staff_headers)
    assert clash.status_code == 409

    # role and tenant are not editable
    assert client.patch(f"/api/users/{staff['id']}", json={"role": "Agency"}, headers=staff_headers).status_code == 400
    assert client.patch(f"/api/users/{staff['id']}", json={"agency_id": None}, headers=staff_headers).status_code == 400


def test_role_change_invalidates_token(client, make_user, test_engine):
    from sqlmodel import Session
    from agencydocs.models import Role, User

    user, headers = make_user("Individual")
    with Session(test_engine) as s:
        row = s.get(User, user["id"])
        row.role = Role.STAFF
        s.add(row)
        s.commit()
    assert client.get("/api/users/me", headers=headers).status_code == 401


def test_user_directory_by_role(client, make_user):
    agency, agency_headers = make_user("Agency")
    staff, staff_headers = make_user("Staff", agency_id=agency["id"])
    loner, loner_headers = make_user("Individual")

    listed = client.get("/api/users", headers=agency_headers)
    assert listed.status_code == 200
    assert [u["id"] for u in listed.json()] == [staff["id"]]

    everyone = client.get("/api/users", headers=ADMIN_HEADERS).json()
    assert [u["id"] for u in everyone] == [agency["id"], staff["id"], loner["id"]]
    assert everyone[0]["created_at"].endswith("+00:00")

    assert client.get("/api/users", headers=staff_headers).status_code == 403
    assert client.get("/api/users", headers=loner_headers).status_code == 403


def test_delete_self_and_member(client, make_user):
    agency, agency_headers = make_user("Agency")
    staff, staff_headers = make_user("Staff", agency_id=agency["id"])
    loner, loner_headers = make_user("Individual")

    assert client.delete(f"/api/users/{staff['id']}", headers=loner_headers).status_code == 403
    assert client.delete(f"/api/users/{loner['id']}", headers=ADMIN_HEADERS).status_code == 403
    assert client.delete("/api/users/9999", headers=loner_headers).status_code == 404

    # an agency cannot leave members without a tenant
    resp = client.delete(f"/api/users/{agency['id']}", headers=agency_headers)
    assert resp.status_code == 409
    assert resp.json()["error"] == "conflict"

    assert client.delete(f"/api/users/{staff['id']}", headers=agency_headers).status_code == 204
    assert client.get("/api/users/me", headers=staff_headers).status_code == 401

    assert client.delete(f"/api/users/{loner['id']}", headers=loner_headers).status_code == 204
    assert client.get("/api/users/me", headers=loner_headers).status_code == 401
    assert client.delete(f"/api/users/{agency['id']}", headers=agency_headers).status_code == 204


def test_delete_blocked_while_documents_remain(client, make_user, upload):
    user, headers = make_user("Individual")
    doc = upload(headers).json()
    assert client.delete(f"/api/users/{user['id']}", headers=headers).status_code == 409
    assert client.delete(f"/api/documents/{doc['id']}", headers=headers).status_code == 204
    assert client.delete(f"/api/users/{user['id']}", headers=headers).status_code == 204


def test_deleted_agency_rejects_its_pending_invitations(client, make_user, test_engine):
    from sqlmodel import Session
    from agencydocs.models import Invitation, InvitationStatus

    agency, agency_headers = make_user("Agency")
    make_user("Individual", email="invitee@example.com")
    sent = client.post("/api/invitations/send", json={"recipient_email": "invitee@example.com"}, headers=agency_headers)
    assert sent.status_code == 201, sent.text

    assert client.delete(f"/api/users/{agency['id']}", headers=agency_headers).status_code == 204
    with Session(test_engine) as s:
        assert s.get(Invitation, sent.json()["id"]).status == InvitationStatus.REJECTED
