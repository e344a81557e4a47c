from .conftest import client, db, ensure_auth_headers, create_user, auth_headers, create_incident, FULL_NARRATIVE
from incidentdesk import models
from incidentdesk.narratives import dashboard_stats, derive_overall_status


def test_create_incident_starts_in_draft(client):
    headers, user, company = ensure_auth_headers("frontline_worker")
    incident = create_incident(client, headers)
    assert incident["capture_status"] == "draft"
    assert incident["analysis_status"] == "not_started"
    assert incident["overall_status"] == "capture_pending"
    assert incident["created_by"] == str(user.id)
    assert incident["company_id"] == str(company.id)
    narrative = client.get(f"/api/incidents/{incident['id']}/narrative", headers=headers)
    assert narrative.status_code == 200
    assert narrative.json()["version"] == 1


def test_create_incident_requires_participant(client):
    headers, _, _ = ensure_auth_headers("frontline_worker")
    resp = client.post(
        "/api/incidents",
        json={"reporter_name": "Jordan", "event_date_time": "2025-03-14T09:30", "location": "Kitchen"},
        headers=headers,
    )
    assert resp.status_code == 400


def test_platform_admin_without_company_cannot_report(client):
    headers, _, _ = ensure_auth_headers("system_admin")
    resp = client.post(
        "/api/incidents",
        json={"reporter_name": "Jordan", "participant_name": "Sam", "event_date_time": "now", "location": "Kitchen"},
        headers=headers,
    )
    assert resp.status_code == 400


def test_workers_only_see_their_own_incidents(client):
    headers, worker, company = ensure_auth_headers("frontline_worker")
    mine = create_incident(client, headers)
    colleague = create_user("frontline_worker", company.id)
    colleague_headers = auth_headers(colleague)
    theirs = create_incident(client, colleague_headers, participant_name="Riley Ng")

    listed = [i["id"] for i in client.get("/api/incidents", headers=headers).json()]
    assert listed == [mine["id"]]
    resp = client.get(f"/api/incidents/{theirs['id']}", headers=headers)
    assert resp.status_code == 403

    lead_headers = auth_headers(create_user("team_lead", company.id))
    listed = {i["id"] for i in client.get("/api/incidents", headers=lead_headers).json()}
    assert listed == {mine["id"], theirs["id"]}


def test_cross_company_access_denied(client):
    headers, _, _ = ensure_auth_headers("company_admin")
    incident = create_incident(client, headers)
    outsider_headers, _, _ = ensure_auth_headers("company_admin")
    resp = client.get(f"/api/incidents/{incident['id']}", headers=outsider_headers)
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Access denied: incident belongs to different company"

    admin_headers, _, _ = ensure_auth_headers("system_admin")
    assert client.get(f"/api/incidents/{incident['id']}", headers=admin_headers).status_code == 200


def test_missing_and_malformed_incident_ids(client):
    headers, _, _ = ensure_auth_headers("company_admin")
    assert client.get("/api/incidents/not-a-uuid", headers=headers).status_code == 400
    missing = client.get("/api/incidents/00000000-0000-0000-0000-000000000000", headers=headers)
    assert missing.status_code == 404


def test_only_reporter_or_admin_can_edit(client):
    headers, _, company = ensure_auth_headers("frontline_worker")
    incident = create_incident(client, headers)
    lead_headers = auth_headers(create_user("team_lead", company.id))
    resp = client.patch(f"/api/incidents/{incident['id']}", json={"location": "Garden"}, headers=lead_headers)
    assert resp.status_code == 403
    admin_headers = auth_headers(create_user("company_admin", company.id))
    resp = client.patch(f"/api/incidents/{incident['id']}", json={"location": " Garden "}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["location"] == "Garden"


def test_completed_capture_blocks_edits(client, db):
    headers, _, _ = ensure_auth_headers("company_admin")
    incident = create_incident(client, headers)
    resp = client.patch(
        f"/api/incidents/{incident['id']}/status", json={"capture_status": "completed"}, headers=headers
    )
    assert resp.json()["overall_status"] == "analysis_pending"
    resp = client.patch(f"/api/incidents/{incident['id']}", json={"location": "Garden"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Cannot edit incident: capture phase is completed"


def test_worker_cannot_set_analysis_status(client):
    headers, _, _ = ensure_auth_headers("frontline_worker")
    incident = create_incident(client, headers)
    resp = client.patch(
        f"/api/incidents/{incident['id']}/status", json={"analysis_status": "completed"}, headers=headers
    )
    assert resp.status_code == 403


def test_dashboard_counts(client):
    headers, _, _ = ensure_auth_headers("company_admin")
    create_incident(client, headers)
    second = create_incident(client, headers)
    client.patch(f"/api/incidents/{second['id']}/status", json={"capture_status": "completed"}, headers=headers)
    stats = client.get("/api/incidents/dashboard", headers=headers).json()
    assert stats["total_incidents"] == 2
    assert stats["captures_pending"] == 1
    assert stats["analysis_pending"] == 1
    assert stats["completed"] == 0
    assert stats["recent_incidents"] == 2


def test_derive_overall_status():
    assert derive_overall_status("draft", "not_started") == "capture_pending"
    assert derive_overall_status("in_progress", "completed") == "capture_pending"
    assert derive_overall_status("completed", "in_progress") == "analysis_pending"
    assert derive_overall_status("completed", "completed") == "completed"
    assert dashboard_stats([])["total_incidents"] == 0


def test_export_incident_report(client):
    headers, _, _ = ensure_auth_headers("company_admin")
    incident = create_incident(client, headers)
    client.patch(f"/api/incidents/{incident['id']}/narrative", json=FULL_NARRATIVE, headers=headers)
    text = client.get(f"/api/incidents/{incident['id']}/export", headers=headers)
    assert text.status_code == 200
    assert text.headers["content-type"].startswith("text/plain")
    assert "Sam Taylor" in text.text
    assert FULL_NARRATIVE["during_event"] in text.text

    markdown = client.get(f"/api/incidents/{incident['id']}/export?format=markdown", headers=headers)
    assert markdown.headers["content-type"].startswith("text/markdown")
    assert markdown.text.startswith("#")
