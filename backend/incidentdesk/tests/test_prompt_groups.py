from .conftest import client, db, ensure_auth_headers
from incidentdesk import prompts


def test_create_list_and_update_groups(client):
    headers, _, _ = ensure_auth_headers("system_admin")
    first = client.post("/api/prompt-groups", json={"group_name": "Drafting"}, headers=headers).json()
    second = client.post("/api/prompt-groups", json={"group_name": "Review"}, headers=headers).json()
    assert first["display_order"] == 1
    assert second["display_order"] == 2
    assert first["prompt_count"] == 0

    updated = client.patch(
        f"/api/prompt-groups/{second['id']}", json={"display_order": 0, "default_collapsed": True}, headers=headers
    ).json()
    assert updated["default_collapsed"] is True
    names = [g["group_name"] for g in client.get("/api/prompt-groups", headers=headers).json()]
    assert names == ["Review", "Drafting"]


def test_groups_need_system_configuration(client):
    headers, _, _ = ensure_auth_headers("company_admin")
    assert client.post("/api/prompt-groups", json={"group_name": "Nope"}, headers=headers).status_code == 403
    assert client.get("/api/prompt-groups", headers=headers).status_code == 200


def test_move_and_reorder_prompts(client, db):
    headers, user, _ = ensure_auth_headers("system_admin")
    prompts.seed_default_prompts(db)
    target = client.post("/api/prompt-groups", json={"group_name": "Custom"}, headers=headers).json()
    active = client.get("/api/prompts", headers=headers).json()
    by_name = {p["prompt_name"]: p for p in active}
    clarify = by_name[prompts.CLARIFICATION_PROMPT]

    moved = client.post(
        "/api/prompt-groups/move",
        json={"prompt_id": clarify["id"], "group_id": target["id"], "display_order": 7},
        headers=headers,
    ).json()
    assert moved["group_id"] == target["id"]
    assert moved["display_order"] == 7
    group = client.get(f"/api/prompt-groups/{target['id']}", headers=headers).json()
    assert group["prompt_count"] == 1

    ids = [by_name[prompts.ENHANCEMENT_PROMPT]["id"], by_name[prompts.ANALYSIS_PROMPT]["id"]]
    resp = client.post("/api/prompt-groups/reorder", json={"prompt_ids": ids, "new_orders": [5, 4]}, headers=headers)
    assert resp.json() == {"updated": 2}
    mismatch = client.post("/api/prompt-groups/reorder", json={"prompt_ids": ids, "new_orders": [1]}, headers=headers)
    assert mismatch.status_code == 400


def test_delete_group_with_active_prompts_is_blocked(client, db):
    headers, _, _ = ensure_auth_headers("system_admin")
    prompts.seed_default_prompts(db)
    groups = client.get("/api/prompt-groups", headers=headers).json()
    busy = next(g for g in groups if g["prompt_count"])
    resp = client.delete(f"/api/prompt-groups/{busy['id']}", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("Cannot delete group: 1 active prompts")

    empty = client.post("/api/prompt-groups", json={"group_name": "Empty"}, headers=headers).json()
    assert client.delete(f"/api/prompt-groups/{empty['id']}", headers=headers).json() == {"status": "deleted"}
    assert client.get(f"/api/prompt-groups/{empty['id']}", headers=headers).status_code == 404
