import os
os.environ["TESTING"] = "1"
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("APP_BASE_URL", "https://app.example.com")
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

import uuid

sys.path.append(str(Path(__file__).resolve().parents[2]))

from incidentdesk.main import app
from incidentdesk.database import Base, get_db
from incidentdesk import models, notify, llm
from incidentdesk.auth import create_session, get_password_hash

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PASSWORD = "Str0ng!Pass"

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def fresh_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    notify.EMAIL_OUTBOX.clear()
    yield


@pytest.fixture
def enforce_foreign_keys():
    """Turn on sqlite foreign key checks so deletes behave as they do on Postgres."""

    def _pragma(dbapi_connection, _record):
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    engine.dispose()
    event.listen(engine, "connect", _pragma)
    yield
    event.remove(engine, "connect", _pragma)
    engine.dispose()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


class FakeLLM:
    """Stands in for the OpenRouter client; replies are consumed in order."""

    def __init__(self):
        self.replies: list[str] = []
        self.requests: list[llm.LLMRequest] = []
        self.error: str | None = None

    def complete(self, request):
        self.requests.append(request)
        if self.error:
            raise llm.LLMError(self.error)
        content = self.replies.pop(0) if self.replies else ""
        return llm.LLMResponse(
            content=content,
            model="openai/gpt-5-nano",
            correlation_id=request.correlation_id,
            tokens_used=120,
            cost_usd=llm.estimate_cost("openai/gpt-5-nano", 120),
            processing_time_ms=42,
        )


@pytest.fixture
def fake_llm(monkeypatch):
    fake = FakeLLM()
    monkeypatch.setattr(llm, "get_client", lambda: fake)
    return fake


def _detached(session, obj):
    session.refresh(obj)
    session.expunge(obj)
    return obj


def create_company(name: str = "Sunrise Support", slug: str | None = None, status: str = "active"):
    """
    purpose: insert a company directly so tests do not depend on admin endpoints
    outputs: detached Company instance
    """

    with TestingSessionLocal() as session:
        company = models.Company(
            name=name,
            slug=slug or f"co-{uuid.uuid4().hex[:8]}",
            contact_email="ops@example.com",
            status=status,
        )
        session.add(company)
        session.commit()
        return _detached(session, company)


def create_user(
    role: str = "frontline_worker",
    company_id=None,
    *,
    email: str | None = None,
    name: str = "Test User",
    password: str = PASSWORD,
):
    with TestingSessionLocal() as session:
        user = models.User(
            name=name,
            email=(email or f"user-{uuid.uuid4().hex[:8]}@example.com").lower(),
            hashed_password=get_password_hash(password),
            role=role,
            company_id=company_id,
        )
        session.add(user)
        session.commit()
        return _detached(session, user)


def auth_headers(user) -> dict:
    with TestingSessionLocal() as session:
        db_user = session.get(models.User, user.id)
        token = create_session(session, db_user).session_token
    return {"Authorization": f"Bearer {token}"}


def ensure_auth_headers(role: str = "company_admin", company=None):
    """
    purpose: convenience wrapper returning authorization headers plus the actor and tenant
    outputs: tuple(headers dict, User, Company | None)
    """

    if company is None and role not in ("system_admin", "demo_admin"):
        company = create_company()
    user = create_user(role, company.id if company else None)
    return auth_headers(user), user, company


def create_incident(client, headers, **overrides):
    payload = {
        "reporter_name": "Jordan Lee",
        "participant_name": "Sam Taylor",
        "event_date_time": "2025-03-14T09:30",
        "location": "Day program kitchen",
    }
    payload.update(overrides)
    resp = client.post("/api/incidents", json=payload, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


FULL_NARRATIVE = {
    "before_event": "Sam was preparing lunch with two peers while music played loudly.",
    "during_event": "Sam dropped a pot and shouted, then pushed a chair towards a peer.",
    "end_event": "Staff guided Sam outside and the situation calmed after ten minutes.",
    "post_event": "Sam had water, rested in the garden and later rejoined the group.",
}
