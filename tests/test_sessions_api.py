from datetime import date, timedelta

import pytest

from app.models import DeclutterSession
from app.services.challenges import DAILY_PROMPTS, DAILY_TIP
from tests.utils.factories import load, make_item, make_session


def test_create_item_triage_session(client, headers):
    resp = client.post("/v1/sessions", json={"scenario": "item-triage"}, headers=headers)
    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "active"
    assert data["title"] == "Keep vs Sell Helper"
    assert data["item_count"] == 0
    assert data["expected_revenue"] == 0


def test_create_session_requires_headers(client):
    resp = client.post("/v1/sessions", json={"scenario": "item-triage"})
    assert resp.status_code == 422


def test_missing_user_id_is_unauthorized(client, headers):
    headers = {k: v for k, v in headers.items() if k != "X-User-ID"}
    resp = client.post("/v1/sessions", json={"scenario": "item-triage"}, headers=headers)
    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "UNAUTHORIZED"


def test_wrong_api_version(client, headers):
    resp = client.get("/v1/sessions", headers={**headers, "X-API-Ver": "v2"})
    assert resp.status_code == 426


def test_unknown_scenario_rejected(client, headers):
    resp = client.post("/v1/sessions", json={"scenario": "garage-sale"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "BAD_REQUEST"


def test_move_details_only_for_moving_assistant(client, headers):
    resp = client.post(
        "/v1/sessions",
        json={"scenario": "item-triage", "region": "Bangkok"},
        headers=headers,
    )
    assert resp.status_code == 400

    resp = client.post(
        "/v1/sessions",
        json={
            "scenario": "moving-assistant",
            "move_date": (date.today() + timedelta(days=30)).isoformat(),
            "region": "Bangkok",
            "trade_method": "both",
        },
        headers=headers,
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["region"] == "Bangkok"
    assert data["trade_method"] == "both"
    assert data["title"] == "Moving Assistant"


def test_daily_challenge_creates_tasks_without_ai(client, headers, fake_gpt):
    resp = client.post(
        "/v1/sessions",
        json={"scenario": "daily-challenge"},
        headers=headers,
    )
    assert resp.status_code == 201
    session = resp.json()
    assert session["challenge_days"] == 7
    assert session["title"] == "7-Day Declutter Challenge"

    resp = client.get(
        "/v1/challenges/tasks", params={"session_id": session["id"]}, headers=headers
    )
    calendar = resp.json()
    tasks = calendar["today"] + calendar["upcoming"]
    assert len(tasks) == 7
    dates = sorted(date.fromisoformat(t["scheduled_date"]) for t in tasks)
    assert dates == [date.today() + timedelta(days=i) for i in range(7)]
    assert {t["source"] for t in tasks} == {"daily-challenge"}
    assert {t["tip"] for t in tasks} == {DAILY_TIP}
    assert {t["name"] for t in tasks} == set(DAILY_PROMPTS)
    assert fake_gpt.calls == []

    usage = client.get("/v1/ai/usage", headers=headers).json()
    assert usage["total"] == 0


@pytest.mark.parametrize("days", [0, 31])
def test_daily_challenge_length_is_bounded(client, headers, days):
    resp = client.post(
        "/v1/sessions",
        json={"scenario": "daily-challenge", "days": days},
        headers=headers,
    )
    assert resp.status_code == 400


def test_list_sessions_filters_by_status(client, headers, user_id):
    active = make_session(user_id)
    done = make_session(user_id, status="completed")
    make_session(f"{user_id}-other")

    resp = client.get("/v1/sessions", headers=headers)
    assert {s["id"] for s in resp.json()} == {active, done}

    resp = client.get("/v1/sessions", params={"status": "completed"}, headers=headers)
    assert [s["id"] for s in resp.json()] == [done]


def test_session_detail_counters(client, headers, user_id):
    session_id = make_session(user_id)
    make_item(session_id, decision="sell", price_mid=500.0, status="analyzed")
    make_item(session_id, decision="sell", price_mid=None, status="error")
    make_item(session_id, decision="keep", price_mid=80.0, status="manual")
    make_item(session_id)

    first = client.get(f"/v1/sessions/{session_id}", headers=headers).json()
    second = client.get(f"/v1/sessions/{session_id}", headers=headers).json()
    assert first["item_count"] == 4
    assert first["decided_count"] == 3
    assert first["expected_revenue"] == 500.0
    assert len(first["items"]) == 4
    assert first["items"][0]["photos"][0]["url"].endswith(".jpg")
    for key in ("item_count", "decided_count", "expected_revenue"):
        assert first[key] == second[key]


def test_foreign_session_is_not_found(client, headers, user_id):
    session_id = make_session(f"{user_id}-other")
    resp = client.get(f"/v1/sessions/{session_id}", headers=headers)
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "NOT_FOUND"


def test_complete_and_archive_transitions(client, headers, user_id):
    session_id = make_session(user_id)

    resp = client.post(f"/v1/sessions/{session_id}/complete", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"

    resp = client.post(f"/v1/sessions/{session_id}/archive", headers=headers)
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "CONFLICT"

    other = make_session(user_id)
    resp = client.post(f"/v1/sessions/{other}/archive", headers=headers)
    assert resp.json()["status"] == "archived"


def test_archive_by_non_owner_does_not_mutate(client, headers, user_id):
    session_id = make_session(f"{user_id}-other")

    resp = client.post(f"/v1/sessions/{session_id}/archive", headers=headers)
    assert resp.status_code == 404
    assert load(DeclutterSession, session_id).status == "active"
