import pytest

from .conftest import client, db, fake_llm, ensure_auth_headers, create_incident, FULL_NARRATIVE
from incidentdesk import models
from incidentdesk.clarification import parse_questions

QUESTIONS_REPLY = """Here you go:
```json
[
  {"question": "Who else was in the kitchen?", "purpose": "context"},
  {"question": "How loud was the music?", "purpose": "triggers"},
  {"question": "What was Sam cooking?", "purpose": "activity"}
]
```"""


def incident_with_narrative(client, headers):
    incident = create_incident(client, headers)
    client.patch(f"/api/incidents/{incident['id']}/narrative", json=FULL_NARRATIVE, headers=headers)
    return incident


def generate(client, headers, incident, phase="before_event"):
    return client.post(f"/api/incidents/{incident['id']}/clarifications/{phase}/generate", headers=headers)


def test_generate_questions_and_cache(client, db, fake_llm):
    headers, user, _ = ensure_auth_headers("frontline_worker")
    incident = incident_with_narrative(client, headers)
    fake_llm.replies = [QUESTIONS_REPLY]

    resp = generate(client, headers, incident)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["cached"] is False
    assert [q["question_id"] for q in body["questions"]] == ["before_event_q1", "before_event_q2", "before_event_q3"]
    assert body["questions"][0]["question_text"] == "Who else was in the kitchen?"
    assert "Sam was preparing lunch" in fake_llm.requests[0].prompt
    assert "{{" not in fake_llm.requests[0].prompt

    again = generate(client, headers, incident)
    assert again.json()["cached"] is True
    assert len(fake_llm.requests) == 1

    refreshed = client.get(f"/api/incidents/{incident['id']}", headers=headers).json()
    assert refreshed["questions_generated"] is True
    log = db.query(models.AIRequestLog).one()
    assert log.success is True
    assert log.operation == "generate_clarification_questions"
    assert log.tokens_used == 120


def test_changed_narrative_regenerates_questions(client, db, fake_llm):
    headers, _, _ = ensure_auth_headers("frontline_worker")
    incident = incident_with_narrative(client, headers)
    fake_llm.replies = [QUESTIONS_REPLY, '["Where were the staff standing?"]']
    generate(client, headers, incident)
    client.patch(
        f"/api/incidents/{incident['id']}/narrative",
        json={"before_event": "Sam was cooking alone while staff were on break."},
        headers=headers,
    )
    resp = generate(client, headers, incident)
    assert resp.json()["cached"] is False
    questions = client.get(f"/api/incidents/{incident['id']}/clarifications", headers=headers).json()
    assert [q["question_text"] for q in questions] == ["Where were the staff standing?"]
    inactive = db.query(models.ClarificationQuestion).filter(models.ClarificationQuestion.is_active.is_(False))
    assert inactive.count() == 3


def test_llm_failure_is_logged_and_reported(client, db, fake_llm):
    headers, _, _ = ensure_auth_headers("frontline_worker")
    incident = incident_with_narrative(client, headers)
    fake_llm.error = "provider down"
    resp = generate(client, headers, incident)
    assert resp.status_code == 502
    assert "provider down" in resp.json()["detail"]
    log = db.query(models.AIRequestLog).one()
    assert log.success is False
    assert db.query(models.ClarificationQuestion).count() == 0


def test_unparseable_reply_is_a_failure(client, fake_llm):
    headers, _, _ = ensure_auth_headers("frontline_worker")
    incident = incident_with_narrative(client, headers)
    fake_llm.replies = ["I cannot help with that."]
    assert generate(client, headers, incident).status_code == 502


def test_empty_phase_cannot_generate(client, fake_llm):
    headers, _, _ = ensure_auth_headers("frontline_worker")
    incident = create_incident(client, headers)
    resp = generate(client, headers, incident, phase="end_event")
    assert resp.status_code == 400
    assert fake_llm.requests == []


def test_unknown_phase_rejected(client):
    headers, _, _ = ensure_auth_headers("frontline_worker")
    incident = create_incident(client, headers)
    assert generate(client, headers, incident, phase="aftermath").status_code == 422


def test_answers_upsert_and_completeness(client, fake_llm):
    headers, _, _ = ensure_auth_headers("frontline_worker")
    incident = incident_with_narrative(client, headers)
    fake_llm.replies = [QUESTIONS_REPLY]
    generate(client, headers, incident)
    url = f"/api/incidents/{incident['id']}/clarifications/answers"

    short = client.put(url, json={"question_id": "before_event_q1", "answer_text": "Two peers"}, headers=headers)
    assert short.status_code == 200
    assert short.json()["is_complete"] is False
    assert short.json()["word_count"] == 2

    full = client.put(
        url,
        json={"question_id": "before_event_q1", "answer_text": "  Two peers and one support worker  "},
        headers=headers,
    )
    body = full.json()
    assert body["answer_text"] == "Two peers and one support worker"
    assert body["is_complete"] is True
    assert body["phase"] == "before_event"

    answers = client.get(url, headers=headers).json()
    assert len(answers) == 1
    questions = client.get(
        f"/api/incidents/{incident['id']}/clarifications?phase=before_event", headers=headers
    ).json()
    assert questions[0]["answered"] is True
    assert questions[1]["answered"] is False

    missing = client.put(url, json={"question_id": "post_event_q9", "answer_text": "Anything"}, headers=headers)
    assert missing.status_code == 404


@pytest.mark.parametrize(
    "content,expected",
    [
        ('["One?", "Two?"]', ["One?", "Two?"]),
        ('```\n[{"question_text": "Fenced?"}]\n```', ["Fenced?"]),
        ('{"questions": [{"question": "Wrapped?"}, {"question": " "}]}', ["Wrapped?"]),
    ],
)
def test_parse_questions_shapes(content, expected):
    assert parse_questions(content) == expected


def test_parse_questions_rejects_empty():
    with pytest.raises(ValueError):
        parse_questions("[]")
    with pytest.raises(ValueError):
        parse_questions('{"answer": 1}')
