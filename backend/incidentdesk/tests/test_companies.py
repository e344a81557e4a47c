from .conftest import client, ensure_auth_headers, create_company, create_user, create_incident


def test_system_admin_creates_company(client):
    headers, admin, _ = ensure_auth_headers("system_admin")
    resp = client.post(
        "/api/companies",
        json={"name": "Harbour Care", "slug": "harbour-care", "contact_email": "Ops@Harbour.com.au"},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["slug"] == "harbour-care"
    assert body["contact_email"] == "ops@harbour.com.au"
    assert body["created_by"] == str(admin.id)

    dup = client.post(
        "/api/companies",
        json={"name": "Harbour Again", "slug": "harbour-care", "contact_email": "x@example.com"},
        headers=headers,
    )
    assert dup.status_code == 409


def test_slug_must_be_lowercase(client):
    headers, _, _ = ensure_auth_headers("system_admin")
    resp = client.post(
        "/api/companies",
        json={"name": "Bad Slug", "slug": "Bad Slug", "contact_email": "x@example.com"},
        headers=headers,
    )
    assert resp.status_code == 422


def test_company_admin_sees_only_own_company(client):
    headers, _, company = ensure_auth_headers("company_admin")
    other = create_company("Other Org", "other-org")
    listed = client.get("/api/companies", headers=headers).json()
    assert [c["id"] for c in listed] == [str(company.id)]
    assert client.get(f"/api/companies/{other.id}", headers=headers).status_code == 403
    assert client.get("/api/companies/by-slug/other-org", headers=headers).status_code == 403
    assert client.get(f"/api/companies/{company.id}", headers=headers).status_code == 200


def test_company_admin_updates_details_but_not_status(client):
    headers, _, company = ensure_auth_headers("company_admin")
    resp = client.patch(f"/api/companies/{company.id}", json={"name": "Sunrise Renamed"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["name"] == "Sunrise Renamed"
    resp = client.patch(f"/api/companies/{company.id}/status", json={"status": "suspended"}, headers=headers)
    assert resp.status_code == 403


def test_status_change_by_platform_admin(client):
    headers, _, _ = ensure_auth_headers("system_admin")
    company = create_company()
    resp = client.patch(f"/api/companies/{company.id}/status", json={"status": "suspended"}, headers=headers)
    assert resp.json()["status"] == "suspended"
    filtered = client.get("/api/companies?status=suspended", headers=headers).json()
    assert [c["id"] for c in filtered] == [str(company.id)]


def test_company_stats(client):
    headers, _, company = ensure_auth_headers("company_admin")
    create_user("frontline_worker", company.id)
    create_incident(client, headers)
    stats = client.get(f"/api/companies/{company.id}/stats", headers=headers).json()
    assert stats == {"user_count": 2, "incident_count": 1, "active_incidents": 1, "participant_count": 0}
