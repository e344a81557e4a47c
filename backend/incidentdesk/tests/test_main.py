import inspect

from .conftest import client, ensure_auth_headers
from incidentdesk import __version__
from incidentdesk.main import app


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": __version__}


def test_metrics_use_route_templates(client):
    headers, _, _ = ensure_auth_headers("company_admin")
    client.get("/api/incidents/00000000-0000-0000-0000-000000000000", headers=headers)
    body = client.get("/metrics").text
    assert "request_count_total" in body
    assert 'endpoint="/api/incidents/{incident_id}"' in body


def test_cors_preflight(client):
    resp = client.options(
        "/api/auth/login",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
    )
    assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"


def test_llm_endpoints_run_in_threadpool():
    llm_paths = {
        "/api/incidents/{incident_id}/clarifications/{phase}/generate",
        "/api/incidents/{incident_id}/enhance/{phase}",
        "/api/incidents/{incident_id}/analysis/generate",
        "/api/incidents/{incident_id}/analysis/classifications/generate",
    }
    endpoints = {
        route.path: route.endpoint
        for route in app.routes
        if route.path in llm_paths and "POST" in getattr(route, "methods", set())
    }
    assert set(endpoints) == llm_paths
    assert not any(inspect.iscoroutinefunction(endpoint) for endpoint in endpoints.values())
