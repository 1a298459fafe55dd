from datetime import date, timedelta

import pytest

from app import db as db_module
from app.models import ChallengeTask, DeclutterSession
from app.services.moving_plan import generate_moving_plan
from app.services.quota import QuotaExceededError, check_quota
from app.services.sessions import SessionValidationError
from tests.utils.factories import load, make_item, make_session, make_task

TODAY = date(2026, 10, 19)


def _moving_session(user_id, **fields):
    fields.setdefault("move_date", TODAY + timedelta(days=20))
    fields.setdefault("region", "Seoul")
    return make_session(user_id, scenario="moving-assistant", **fields)


def _tasks(session_id):
    with db_module.SessionLocal() as db:
        return (
            db.query(ChallengeTask)
            .filter(ChallengeTask.session_id == session_id)
            .order_by(ChallengeTask.scheduled_date, ChallengeTask.id)
            .all()
        )


def test_plan_is_stored_and_scheduled(user_id, fake_gpt, monkeypatch):
    from app.services import gpt

    captured = {}

    def _plan_move(**kwargs):
        captured.update(kwargs)
        return fake_gpt.plan

    monkeypatch.setattr(gpt, "plan_move", _plan_move)
    session_id = _moving_session(user_id, trade_method="ship")
    make_item(session_id, category="Books", status="analyzed")
    make_item(session_id, category="Books", status="analyzed")
    make_item(session_id)

    result = generate_moving_plan(user_id, session_id, today=TODAY)
    assert result.tasks_scheduled == 3
    assert captured["weeks"] == 3
    assert captured["days_until_move"] == 20
    assert captured["inventory"] == {"Books": 2, "Uncategorized": 1}
    assert captured["trade_method"] == "ship"

    session = load(DeclutterSession, session_id)
    assert session.ai_plan_generated is True
    assert session.moving_plan["tips"] == ["Label boxes by room"]
    assert check_quota(user_id, max_free=2).plans_used == 1

    tasks = _tasks(session_id)
    assert [(t.name, t.scheduled_date) for t in tasks] == [
        ("Sort books", TODAY),
        ("List electronics", TODAY + timedelta(days=1)),
        ("Pack kitchen", TODAY + timedelta(days=7)),
    ]
    assert {t.source for t in tasks} == {"moving-plan"}


def test_plan_without_scheduling(user_id, fake_gpt):
    session_id = _moving_session(user_id)
    result = generate_moving_plan(user_id, session_id, schedule=False, today=TODAY)
    assert result.tasks_scheduled == 0
    assert _tasks(session_id) == []


def test_regenerate_replaces_open_tasks(user_id, fake_gpt):
    session_id = _moving_session(user_id)
    done = make_task(
        user_id, TODAY, session_id=session_id, source="moving-plan", name="Done", completed=True
    )
    make_task(user_id, TODAY, session_id=session_id, source="moving-plan", name="Stale")
    make_task(user_id, TODAY, session_id=session_id, source="manual", name="Mine")

    generate_moving_plan(user_id, session_id, today=TODAY)
    names = sorted(t.name for t in _tasks(session_id))
    assert "Stale" not in names
    assert {"Done", "Mine", "Sort books", "Pack kitchen"} <= set(names)
    assert load(ChallengeTask, done).completed is True


def test_plan_requires_moving_scenario(user_id, fake_gpt):
    session_id = make_session(user_id)
    with pytest.raises(SessionValidationError):
        generate_moving_plan(user_id, session_id, today=TODAY)
    assert fake_gpt.calls == []


def test_plan_requires_move_details(user_id, fake_gpt):
    session_id = make_session(user_id, scenario="moving-assistant", region="Seoul")
    with pytest.raises(SessionValidationError):
        generate_moving_plan(user_id, session_id, today=TODAY)

    past = _moving_session(user_id, move_date=TODAY - timedelta(days=1))
    with pytest.raises(SessionValidationError):
        generate_moving_plan(user_id, past, today=TODAY)
    assert fake_gpt.calls == []


def test_plan_on_move_day_uses_one_week(user_id, fake_gpt, monkeypatch):
    from app.services import gpt

    captured = {}

    def _plan_move(**kwargs):
        captured.update(kwargs)
        return fake_gpt.plan

    monkeypatch.setattr(gpt, "plan_move", _plan_move)
    session_id = _moving_session(user_id, move_date=TODAY)
    generate_moving_plan(user_id, session_id, today=TODAY)
    assert captured["weeks"] == 1
    assert captured["days_until_move"] == 0


def test_plan_refused_when_quota_used(user_id, fake_gpt, monkeypatch):
    from app.services import quota

    monkeypatch.setattr(quota.settings, "free_ai_limit", 1)
    session_id = _moving_session(user_id)
    make_item(session_id, status="analyzed", ai_recommendation="sell")

    with pytest.raises(QuotaExceededError):
        generate_moving_plan(user_id, session_id, today=TODAY)
    assert fake_gpt.calls == []
    assert load(DeclutterSession, session_id).ai_plan_generated is False


def test_gateway_failure_leaves_session_untouched(user_id, fake_gpt):
    fake_gpt.error = TimeoutError("slow")
    session_id = _moving_session(user_id)
    with pytest.raises(TimeoutError):
        generate_moving_plan(user_id, session_id, today=TODAY)
    session = load(DeclutterSession, session_id)
    assert session.ai_plan_generated is False
    assert session.moving_plan is None
    assert check_quota(user_id, max_free=2).total == 0


def test_moving_plan_endpoint(client, headers, user_id, fake_gpt):
    session_id = make_session(
        user_id,
        scenario="moving-assistant",
        move_date=date.today() + timedelta(days=10),
        region="Bangkok",
    )
    resp = client.post(f"/v1/sessions/{session_id}/moving-plan", headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["session_id"] == session_id
    assert body["tasks_scheduled"] == 3
    assert body["plan"]["estimated_boxes"] == 12

    usage = client.get("/v1/ai/usage", headers=headers).json()
    assert usage["plans_used"] == 1
    assert usage["remaining"] == 1

    calendar = client.get(
        f"/v1/challenges/tasks?session_id={session_id}", headers=headers
    ).json()
    assert len(calendar["today"]) + len(calendar["upcoming"]) == 3


def test_moving_plan_endpoint_errors(client, headers, user_id, fake_gpt, monkeypatch):
    triage = make_session(user_id)
    resp = client.post(f"/v1/sessions/{triage}/moving-plan", headers=headers)
    assert resp.status_code == 400

    archived = _moving_session(user_id, move_date=date.today() + timedelta(days=5), status="archived")
    resp = client.post(f"/v1/sessions/{archived}/moving-plan", headers=headers)
    assert resp.status_code == 409

    foreign = _moving_session(f"{user_id}-other", move_date=date.today() + timedelta(days=5))
    resp = client.post(f"/v1/sessions/{foreign}/moving-plan", headers=headers)
    assert resp.status_code == 404

    from app.services import quota

    monkeypatch.setattr(quota.settings, "free_ai_limit", 0)
    session_id = _moving_session(user_id, move_date=date.today() + timedelta(days=5))
    resp = client.post(f"/v1/sessions/{session_id}/moving-plan", headers=headers)
    assert resp.status_code == 402
    assert resp.json()["detail"]["code"] == "LIMIT_REACHED"
    assert fake_gpt.calls == []
