from .conftest import client, db, enforce_foreign_keys, ensure_auth_headers, create_user, create_company, create_incident, auth_headers, PASSWORD
from incidentdesk import models


def test_me_and_profile_update(client):
    headers, user, _ = ensure_auth_headers("frontline_worker")
    resp = client.get("/api/users/me", headers=headers)
    assert resp.json()["email"] == user.email
    resp = client.patch("/api/users/me", json={"name": "Renamed Worker"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["name"] == "Renamed Worker"


def test_company_admin_creates_user_in_own_company(client):
    headers, admin, company = ensure_auth_headers("company_admin")
    resp = client.post(
        "/api/users",
        json={"name": "New Lead", "email": "Lead@Example.com", "password": PASSWORD, "role": "team_lead"},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["email"] == "lead@example.com"
    assert body["company_id"] == str(company.id)

    dup = client.post(
        "/api/users",
        json={"name": "Again", "email": "lead@example.com", "password": PASSWORD},
        headers=headers,
    )
    assert dup.status_code == 409


def test_company_admin_cannot_grant_platform_roles(client):
    headers, _, _ = ensure_auth_headers("company_admin")
    resp = client.post(
        "/api/users",
        json={"name": "Sneaky", "email": "sneaky@example.com", "password": PASSWORD, "role": "system_admin"},
        headers=headers,
    )
    assert resp.status_code == 403


def test_worker_cannot_list_users(client):
    headers, _, _ = ensure_auth_headers("frontline_worker")
    assert client.get("/api/users", headers=headers).status_code == 403


def test_list_users_is_scoped_to_company(client):
    headers, admin, company = ensure_auth_headers("company_admin")
    create_user("frontline_worker", company.id, name="Alex Same")
    other = create_company("Elsewhere")
    create_user("frontline_worker", other.id, name="Blake Other")
    names = {u["name"] for u in client.get("/api/users", headers=headers).json()}
    assert "Alex Same" in names
    assert "Blake Other" not in names
    resp = client.get(f"/api/users?company_id={other.id}", headers=headers)
    assert resp.status_code == 403


def test_role_change_and_delete(client):
    headers, admin, company = ensure_auth_headers("company_admin")
    target = create_user("frontline_worker", company.id)
    resp = client.patch(f"/api/users/{target.id}/role", json={"role": "team_lead"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["role"] == "team_lead"

    bad = client.patch(f"/api/users/{target.id}/role", json={"role": "wizard"}, headers=headers)
    assert bad.status_code == 400

    assert client.delete(f"/api/users/{admin.id}", headers=headers).status_code == 400
    assert client.delete(f"/api/users/{target.id}", headers=headers).status_code == 200
    assert client.get(f"/api/users/{target.id}", headers=headers).status_code == 404


def test_cannot_manage_users_in_other_company(client):
    headers, _, _ = ensure_auth_headers("company_admin")
    outsider = create_user("frontline_worker", create_company("Other Org").id)
    resp = client.delete(f"/api/users/{outsider.id}", headers=headers)
    assert resp.status_code == 403
    assert client.get("/api/users/not-a-uuid", headers=headers).status_code == 400


def test_delete_reporter_deactivates_instead(client, db, enforce_foreign_keys):
    headers, _, company = ensure_auth_headers("company_admin")
    worker = create_user("frontline_worker", company.id)
    worker_headers = auth_headers(worker)
    incident = create_incident(client, worker_headers)

    resp = client.delete(f"/api/users/{worker.id}", headers=headers)
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"status": "deactivated"}
    assert client.get("/api/users/me", headers=worker_headers).status_code == 401
    assert client.get(f"/api/users/{worker.id}", headers=headers).json()["is_active"] is False
    assert client.get(f"/api/incidents/{incident['id']}", headers=headers).status_code == 200
    assert db.query(models.UserSession).filter(models.UserSession.user_id == worker.id).count() == 0
    actions = [a.action for a in db.query(models.AuditLog).filter(models.AuditLog.target_id == worker.id)]
    assert "deactivate_user" in actions


def test_delete_user_without_records_with_foreign_keys(client, enforce_foreign_keys):
    headers, _, company = ensure_auth_headers("company_admin")
    newcomer = create_user("frontline_worker", company.id)
    auth_headers(newcomer)
    resp = client.delete(f"/api/users/{newcomer.id}", headers=headers)
    assert resp.json() == {"status": "deleted"}
    assert client.get(f"/api/users/{newcomer.id}", headers=headers).status_code == 404
