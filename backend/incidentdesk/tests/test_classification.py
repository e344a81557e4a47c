import pytest

from .conftest import client, db, fake_llm, ensure_auth_headers
from incidentdesk import models
from incidentdesk.classification import parse_classifications

from .test_analysis import CONDITIONS, analyst_for, submitted_incident

CLASSIFICATIONS_REPLY = """```json
{
  "classifications": [
    {"incident_type": "behavioral", "severity": "High", "confidence_score": 0.9,
     "supporting_evidence": "Sam pushed a chair towards a peer."},
    {"incident_type": "noise", "severity": "low", "confidence_score": 1.4,
     "supporting_evidence": "Music was playing loudly during lunch."},
    {"incident_type": "medical", "severity": "low", "supporting_evidence": ""}
  ]
}
```"""


def analysed_incident(client, fake_llm):
    headers, _, company = ensure_auth_headers("frontline_worker")
    incident = submitted_incident(client, headers, fake_llm)
    lead = analyst_for(company)
    fake_llm.replies = [CONDITIONS]
    resp = client.post(f"/api/incidents/{incident['id']}/analysis/generate", headers=lead)
    assert resp.status_code == 200, resp.text
    return incident, lead


def test_parse_classifications_normalises_values():
    parsed = parse_classifications(CLASSIFICATIONS_REPLY)
    assert parsed == [
        {
            "incident_type": "behavioural",
            "severity": "high",
            "confidence_score": 0.9,
            "supporting_evidence": "Sam pushed a chair towards a peer.",
        },
        {
            "incident_type": "other",
            "severity": "low",
            "confidence_score": 1.0,
            "supporting_evidence": "Music was playing loudly during lunch.",
        },
    ]
    with pytest.raises(ValueError):
        parse_classifications("no json here")
    with pytest.raises(ValueError):
        parse_classifications('{"classifications": []}')


def test_generate_classifications(client, db, fake_llm):
    incident, lead = analysed_incident(client, fake_llm)
    url = f"/api/incidents/{incident['id']}/analysis/classifications"
    fake_llm.replies = [CLASSIFICATIONS_REPLY]

    resp = client.post(f"{url}/generate", headers=lead)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["correlation_id"]
    assert {(c["incident_type"], c["severity"]) for c in body["classifications"]} == {
        ("behavioural", "high"),
        ("other", "low"),
    }
    assert all(c["ai_generated"] and not c["user_reviewed"] for c in body["classifications"])
    assert all(c["classification_id"].startswith("cls_") for c in body["classifications"])

    prompt = fake_llm.requests[-1].prompt
    assert "Sensory overload" in prompt
    assert "Sam Taylor" in prompt
    assert "{{" not in prompt
    assert len(client.get(url, headers=lead).json()) == 2
    log = db.query(models.AIRequestLog).filter(models.AIRequestLog.operation == "classify_incident").one()
    assert log.success is True


def test_generate_requires_analysis_and_conditions(client, fake_llm):
    headers, _, company = ensure_auth_headers("frontline_worker")
    incident = submitted_incident(client, headers, fake_llm)
    lead = analyst_for(company)
    url = f"/api/incidents/{incident['id']}/analysis"
    assert client.post(f"{url}/classifications/generate", headers=lead).status_code == 404

    client.post(url, headers=lead)
    resp = client.post(f"{url}/classifications/generate", headers=lead)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Contributing conditions must be completed before generating classifications"


def test_generate_failure_returns_bad_gateway(client, db, fake_llm):
    incident, lead = analysed_incident(client, fake_llm)
    fake_llm.replies = ["I cannot classify this."]
    resp = client.post(f"/api/incidents/{incident['id']}/analysis/classifications/generate", headers=lead)
    assert resp.status_code == 502
    failed = db.query(models.AIRequestLog).filter(models.AIRequestLog.operation == "classify_incident").one()
    assert failed.success is False
    assert db.query(models.IncidentClassification).count() == 0


def test_review_marks_modified_and_regeneration_keeps_reviewed(client, fake_llm):
    incident, lead = analysed_incident(client, fake_llm)
    url = f"/api/incidents/{incident['id']}/analysis/classifications"
    fake_llm.replies = [CLASSIFICATIONS_REPLY]
    generated = client.post(f"{url}/generate", headers=lead).json()["classifications"]
    behavioural = next(c for c in generated if c["incident_type"] == "behavioural")

    notes_only = client.patch(f"{url}/{behavioural['id']}", json={"review_notes": "Agreed"}, headers=lead).json()
    assert notes_only["user_reviewed"] is True
    assert notes_only["user_modified"] is False

    changed = client.patch(f"{url}/{behavioural['id']}", json={"severity": "medium"}, headers=lead).json()
    assert changed["severity"] == "medium"
    assert changed["user_modified"] is True

    fake_llm.replies = ['[{"incident_type": "environmental", "severity": "low", "supporting_evidence": "Loud music."}]']
    regenerated = client.post(f"{url}/generate", headers=lead).json()["classifications"]
    assert {c["incident_type"] for c in regenerated} == {"behavioural", "environmental"}


def test_manual_classification_and_validation(client, fake_llm):
    incident, lead = analysed_incident(client, fake_llm)
    url = f"/api/incidents/{incident['id']}/analysis/classifications"
    manual = client.post(
        url,
        json={"incident_type": "communication", "severity": "low", "supporting_evidence": "  Missed handover  "},
        headers=lead,
    )
    assert manual.status_code == 200
    record = manual.json()
    assert record["ai_generated"] is False
    assert record["user_reviewed"] is True
    assert record["supporting_evidence"] == "Missed handover"
    assert record["confidence_score"] == 1.0

    edited = client.patch(f"{url}/{record['id']}", json={"incident_type": "other"}, headers=lead).json()
    assert edited["user_modified"] is False

    bad_type = client.post(
        url, json={"incident_type": "noise", "severity": "low", "supporting_evidence": "x"}, headers=lead
    )
    assert bad_type.status_code == 422
    bad_score = client.post(
        url,
        json={"incident_type": "other", "severity": "low", "supporting_evidence": "x", "confidence_score": 2},
        headers=lead,
    )
    assert bad_score.status_code == 422
    assert client.patch(f"{url}/not-a-uuid", json={"severity": "low"}, headers=lead).status_code == 400


def test_classification_belongs_to_its_incident(client, fake_llm):
    incident, lead = analysed_incident(client, fake_llm)
    other, other_lead = analysed_incident(client, fake_llm)
    created = client.post(
        f"/api/incidents/{incident['id']}/analysis/classifications",
        json={"incident_type": "medical", "severity": "high", "supporting_evidence": "Fall in kitchen"},
        headers=lead,
    ).json()
    resp = client.patch(
        f"/api/incidents/{other['id']}/analysis/classifications/{created['id']}",
        json={"severity": "low"},
        headers=other_lead,
    )
    assert resp.status_code == 404


def test_completion_locks_classifications_and_appears_in_export(client, fake_llm):
    incident, lead = analysed_incident(client, fake_llm)
    url = f"/api/incidents/{incident['id']}/analysis"
    fake_llm.replies = [CLASSIFICATIONS_REPLY]
    client.post(f"{url}/classifications/generate", headers=lead)

    too_soon = client.patch(
        url, json={"contributing_conditions": "short", "analysis_status": "completed"}, headers=lead
    )
    assert too_soon.status_code == 400
    done = client.patch(
        url, json={"contributing_conditions": CONDITIONS, "analysis_status": "completed"}, headers=lead
    )
    assert done.status_code == 200
    assert done.json()["analysis_status"] == "completed"

    locked = client.post(
        f"{url}/classifications",
        json={"incident_type": "other", "severity": "low", "supporting_evidence": "Late addition"},
        headers=lead,
    )
    assert locked.status_code == 400
    assert locked.json()["detail"] == "Cannot modify classifications of a completed analysis"

    report = client.get(f"/api/incidents/{incident['id']}/export", headers=lead).text
    assert "CLASSIFICATIONS" in report
    assert "- behavioural (high, confidence 0.90): Sam pushed a chair towards a peer." in report
