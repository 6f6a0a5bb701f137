from datetime import timedelta

from sqlmodel import Session, select

from agencydocs.models import Invitation, InvitationStatus, User
from agencydocs.utils import utcnow


def token_for(test_engine, email):
    with Session(test_engine) as s:
        inv = s.exec(
            select(Invitation).where(Invitation.recipient_email == email).order_by(Invitation.id.desc())
        ).first()
        return inv.token


def send(client, headers, email, message=None):
    return client.post("/api/invitations/send", json={"recipient_email": email, "message": message}, headers=headers)


def accept(client, headers, token):
    return client.post("/api/invitations/accept", json={"token": token}, headers=headers)


def test_full_tenant_join_and_signature_scenario(client, make_user, upload, sent_emails, test_engine):
    agency, agency_headers = make_user("Agency")
    resp = send(client, agency_headers, "staff@x.com", "Welcome aboard")
    assert resp.status_code == 201, resp.text
    assert resp.json()["status"] == "Pending"
    assert resp.json()["recipient_id"] is None
    assert "token" not in resp.json()
    assert sent_emails[-1]["to"] == "staff@x.com"

    u, u_headers = make_user("Staff", email="staff@x.com")
    _, v_headers = make_user("Individual")
    token = token_for(test_engine, "staff@x.com")
    assert token in sent_emails[-1]["text"]
    assert len(token) == 64

    accepted = accept(client, u_headers, token)
    assert accepted.status_code == 200, accepted.text
    assert accepted.json()["agency_id"] == agency["id"]
    assert accepted.json()["invitation"]["status"] == "Accepted"
    assert client.get("/api/users/me", headers=u_headers).json()["agency_id"] == agency["id"]

    doc = upload(u_headers).json()
    # the upload took the new tenant snapshot
    assert doc["agency_id"] == agency["id"]
    assert client.put(f"/api/documents/{doc['id']}/mark-signed", headers=v_headers).status_code == 403

    requested = client.post(
        f"/api/documents/{doc['id']}/request-signature",
        json={"recipient_id": u["id"]},
        headers=agency_headers,
    )
    assert requested.json()["status"] == "PendingSignature"
    assert requested.json()["signature_recipient_id"] == u["id"]

    signed = client.put(f"/api/documents/{doc['id']}/mark-signed", headers=u_headers).json()
    assert signed["status"] == "Signed"
    assert [s["signer_id"] for s in signed["signed_by"]] == [u["id"]]
    assert client.put(f"/api/documents/{doc['id']}/mark-signed", headers=v_headers).status_code == 403

    inbox = client.get("/api/notifications", headers=agency_headers).json()
    assert {n["type"] for n in inbox} == {"invitation_accepted", "document_signed"}


def test_accepting_twice_is_conflict(client, make_user, test_engine):
    _, agency_headers = make_user("Agency")
    _, member_headers = make_user("Individual", email="member@example.com")
    send(client, agency_headers, "member@example.com")
    token = token_for(test_engine, "member@example.com")

    assert accept(client, member_headers, token).status_code == 200
    second = accept(client, member_headers, token)
    assert second.status_code == 409
    assert "accepted" in second.json()["detail"]


def test_expired_invitation_is_gone_and_membership_unchanged(client, make_user, test_engine):
    _, agency_headers = make_user("Agency")
    member, member_headers = make_user("Individual", email="late@example.com")
    send(client, agency_headers, "late@example.com")

    with Session(test_engine) as s:
        inv = s.exec(select(Invitation).where(Invitation.recipient_email == "late@example.com")).one()
        inv.expires_at = utcnow() - timedelta(minutes=1)
        s.add(inv)
        s.commit()
        token = inv.token
        inv_id = inv.id

    resp = accept(client, member_headers, token)
    assert resp.status_code == 410
    assert resp.json()["error"] == "expired_token"

    with Session(test_engine) as s:
        assert s.get(Invitation, inv_id).status == InvitationStatus.EXPIRED
        assert s.get(User, member["id"]).agency_id is None

    # a later retry reports the terminal status
    assert accept(client, member_headers, token).status_code == 409


def test_accept_is_bound_to_invited_address(client, make_user, test_engine):
    _, agency_headers = make_user("Agency")
    _, intended_headers = make_user("Individual", email="intended@example.com")
    _, thief_headers = make_user("Individual", email="thief@example.com")
    send(client, agency_headers, "intended@example.com")
    token = token_for(test_engine, "intended@example.com")

    resp = accept(client, thief_headers, token)
    assert resp.status_code == 403
    assert accept(client, intended_headers, token).status_code == 200


def test_accept_requires_member_role_and_known_token(client, make_user):
    _, agency_headers = make_user("Agency")
    _, member_headers = make_user("Individual")
    assert accept(client, agency_headers, "whatever").status_code == 403
    assert accept(client, member_headers, "0" * 64).status_code == 404


def test_no_agency_switching_on_accept(client, make_user, test_engine):
    first, first_headers = make_user("Agency")
    _, second_headers = make_user("Agency")
    _, member_headers = make_user("Individual", email="mover@example.com")

    send(client, first_headers, "mover@example.com")
    send(client, second_headers, "mover@example.com")
    with Session(test_engine) as s:
        invs = s.exec(
            select(Invitation).where(Invitation.recipient_email == "mover@example.com").order_by(Invitation.id)
        ).all()
        first_token, second_token = invs[0].token, invs[1].token

    assert accept(client, member_headers, first_token).status_code == 200
    resp = accept(client, member_headers, second_token)
    assert resp.status_code == 409
    assert "another agency" in resp.json()["detail"]
    assert client.get("/api/users/me", headers=member_headers).json()["agency_id"] == first["id"]


def test_send_conflicts(client, make_user):
    agency, agency_headers = make_user("Agency")
    other_agency, other_headers = make_user("Agency", email="boss@example.com")
    make_user("Staff", email="taken@example.com", agency_id=other_agency["id"])
    make_user("Staff", email="mine@example.com", agency_id=agency["id"])

    assert send(client, agency_headers, "boss@example.com").status_code == 409
    assert send(client, agency_headers, "taken@example.com").status_code == 409
    assert send(client, agency_headers, "mine@example.com").status_code == 409

    assert send(client, agency_headers, "new@example.com").status_code == 201
    dup = send(client, agency_headers, "New@Example.com")
    assert dup.status_code == 409
    assert dup.json()["error"] == "conflict"
    # a different agency may invite the same address
    assert send(client, other_headers, "new@example.com").status_code == 201


def test_send_requires_agency_and_valid_email(client, make_user):
    _, agency_headers = make_user("Agency")
    _, member_headers = make_user("Individual")
    assert send(client, member_headers, "x@example.com").status_code == 403
    assert send(client, agency_headers, "not-an-email").status_code == 400


def test_expired_pending_does_not_block_new_invitation(client, make_user, test_engine):
    _, agency_headers = make_user("Agency")
    send(client, agency_headers, "again@example.com")
    with Session(test_engine) as s:
        inv = s.exec(select(Invitation).where(Invitation.recipient_email == "again@example.com")).one()
        inv.expires_at = utcnow() - timedelta(hours=1)
        s.add(inv)
        s.commit()
        stale_id = inv.id

    assert send(client, agency_headers, "again@example.com").status_code == 201
    with Session(test_engine) as s:
        assert s.get(Invitation, stale_id).status == InvitationStatus.EXPIRED


def test_existing_user_gets_recipient_id_and_inbox_entry(client, make_user):
    _, agency_headers = make_user("Agency")
    member, member_headers = make_user("Individual", email="known@example.com")
    resp = send(client, agency_headers, "known@example.com")
    assert resp.json()["recipient_id"] == member["id"]

    inbox = client.get("/api/notifications", headers=member_headers).json()
    assert [n["type"] for n in inbox] == ["invitation_received"]

    pending = client.get("/api/invitations/pending", headers=member_headers).json()
    assert [p["id"] for p in pending] == [resp.json()["id"]]


def test_revoke(client, make_user, test_engine):
    _, agency_headers = make_user("Agency")
    _, other_headers = make_user("Agency")
    _, member_headers = make_user("Individual", email="revoked@example.com")
    inv = send(client, agency_headers, "revoked@example.com").json()
    token = token_for(test_engine, "revoked@example.com")

    assert client.put(f"/api/invitations/{inv['id']}/revoke", headers=other_headers).status_code == 403
    assert client.put("/api/invitations/9999/revoke", headers=agency_headers).status_code == 404

    resp = client.put(f"/api/invitations/{inv['id']}/revoke", headers=agency_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "Rejected"

    assert client.put(f"/api/invitations/{inv['id']}/revoke", headers=agency_headers).status_code == 409
    # a revoked token cannot be replayed
    assert accept(client, member_headers, token).status_code == 409
    assert client.get("/api/invitations/pending", headers=member_headers).json() == []


def test_list_sent_newest_first(client, make_user):
    _, agency_headers = make_user("Agency")
    first = send(client, agency_headers, "one@example.com").json()
    second = send(client, agency_headers, "two@example.com").json()
    sent = client.get("/api/invitations/sent", headers=agency_headers).json()
    assert [i["id"] for i in sent] == [second["id"], first["id"]]
