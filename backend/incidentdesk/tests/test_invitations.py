from datetime import datetime, timedelta, timezone
from uuid import UUID

from .conftest import client, db, ensure_auth_headers, create_company, create_user, PASSWORD
from incidentdesk import models, notify


def invite(client, headers, company, email="new.worker@example.com", role="frontline_worker"):
    return client.post(
        "/api/invitations",
        json={"email": email, "role": role, "company_id": str(company.id)},
        headers=headers,
    )


def token_from_outbox() -> str:
    body = notify.EMAIL_OUTBOX[-1][2]
    return body.split("token=")[1].split()[0]


def test_send_invitation_emails_link(client):
    headers, admin, company = ensure_auth_headers("company_admin")
    resp = invite(client, headers, company, email="New.Worker@Example.com")
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["email"] == "new.worker@example.com"
    assert body["status"] == "pending"
    assert body["inviter_name"] == admin.name
    to, subject, message = notify.EMAIL_OUTBOX[-1]
    assert to == "new.worker@example.com"
    assert company.name in subject
    assert "https://app.example.com/invite/accept?token=" in message


def test_duplicate_pending_invitation_rejected(client):
    headers, _, company = ensure_auth_headers("company_admin")
    assert invite(client, headers, company).status_code == 200
    assert invite(client, headers, company).status_code == 409


def test_existing_user_cannot_be_invited(client):
    headers, _, company = ensure_auth_headers("company_admin")
    create_user(email="taken@example.com")
    assert invite(client, headers, company, email="taken@example.com").status_code == 409


def test_only_admins_of_that_company_can_invite(client):
    headers, _, company = ensure_auth_headers("team_lead")
    assert invite(client, headers, company).status_code == 403
    admin_headers, _, _ = ensure_auth_headers("company_admin")
    assert invite(client, admin_headers, company).status_code == 403


def test_email_failure_removes_invitation(client, db, monkeypatch):
    headers, _, company = ensure_auth_headers("company_admin")

    def broken(*args, **kwargs):
        raise notify.EmailDeliveryError("smtp down")

    monkeypatch.setattr(notify, "send_invitation_email", broken)
    resp = invite(client, headers, company)
    assert resp.status_code == 502
    assert db.query(models.UserInvitation).count() == 0


def test_list_and_revoke(client):
    headers, _, company = ensure_auth_headers("company_admin")
    created = invite(client, headers, company).json()
    listed = client.get("/api/invitations", headers=headers).json()
    assert [i["id"] for i in listed] == [created["id"]]
    revoked = client.post(f"/api/invitations/{created['id']}/revoke", headers=headers)
    assert revoked.json()["status"] == "revoked"
    again = client.post(f"/api/invitations/{created['id']}/revoke", headers=headers)
    assert again.status_code == 400
    assert client.get("/api/invitations", headers=headers).json() == []


def test_lookup_and_accept_creates_user_and_session(client):
    headers, _, company = ensure_auth_headers("company_admin")
    invite(client, headers, company, role="team_lead")
    token = token_from_outbox()

    lookup = client.get(f"/api/invitations/lookup?token={token}")
    assert lookup.status_code == 200
    assert lookup.json()["company_name"] == company.name
    assert lookup.json()["is_expired"] is False

    weak = client.post("/api/invitations/accept", json={"token": token, "name": "New Lead", "password": "weak"})
    assert weak.status_code == 400

    resp = client.post("/api/invitations/accept", json={"token": token, "name": "New Lead", "password": PASSWORD})
    assert resp.status_code == 200, resp.text
    session = resp.json()
    assert session["user"]["role"] == "team_lead"
    assert session["user"]["company_id"] == str(company.id)
    me = client.get("/api/users/me", headers={"Authorization": f"Bearer {session['session_token']}"})
    assert me.json()["email"] == "new.worker@example.com"

    reused = client.post("/api/invitations/accept", json={"token": token, "name": "New Lead", "password": PASSWORD})
    assert reused.status_code == 400


def test_expired_invitation_cannot_be_accepted(client, db):
    headers, _, company = ensure_auth_headers("company_admin")
    created = invite(client, headers, company).json()
    token = token_from_outbox()
    record = db.get(models.UserInvitation, UUID(created["id"]))
    record.expires_at = datetime.now(timezone.utc) - timedelta(hours=1)
    db.commit()

    assert client.get(f"/api/invitations/lookup?token={token}").json()["is_expired"] is True
    resp = client.post("/api/invitations/accept", json={"token": token, "name": "Late Comer", "password": PASSWORD})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "This invitation has expired"


def test_unknown_token(client):
    assert client.get("/api/invitations/lookup?token=nope").status_code == 400
