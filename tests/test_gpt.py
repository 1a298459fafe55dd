from __future__ import annotations

import json
from types import SimpleNamespace

import httpx
import pytest
from openai import APIConnectionError, APITimeoutError

from app.services import gpt

URLS = ["https://cdn.example.com/u1/items/1.jpg"]


def _fake_openai_response(payload: dict | str | None) -> SimpleNamespace:
    content = payload if isinstance(payload, str) or payload is None else json.dumps(payload)
    message = SimpleNamespace(content=content)
    choice = SimpleNamespace(message=message)
    return SimpleNamespace(choices=[choice])


def _fake_client(create_fn):
    chat = SimpleNamespace(completions=SimpleNamespace(create=create_fn))
    return SimpleNamespace(chat=chat)


def _reply_with(monkeypatch, payload, captured: dict | None = None):
    def _create(**kwargs):
        if captured is not None:
            captured.update(kwargs)
        return _fake_openai_response(payload)

    monkeypatch.setattr(gpt, "_get_client", lambda: _fake_client(_create))


CLASSIFICATION = {
    "category": "electronics",
    "condition": "good",
    "usage_score": 140,
    "sentiment": "neutral",
    "recommendation": "Sell",
    "rationale": "Works well and has resale value",
}


def test_classify_item_normalises_fields(monkeypatch):
    captured: dict = {}
    _reply_with(monkeypatch, CLASSIFICATION, captured)

    result = gpt.classify_item(URLS, title="Camera", scenario="item-triage", region="Seoul")
    assert result["recommendation"] == "sell"
    assert result["usage_score"] == 100
    assert result["category"] == "electronics"
    assert captured["response_format"] == {"type": "json_object"}
    user_content = captured["messages"][1]["content"]
    assert user_content[1]["image_url"]["url"] == URLS[0]
    assert "Region: Seoul" in user_content[0]["text"]


def test_classify_item_defaults_missing_fields(monkeypatch):
    _reply_with(monkeypatch, {"recommendation": "keep"})
    result = gpt.classify_item(URLS)
    assert result["category"] == "Other"
    assert result["condition"] == "Good"
    assert result["usage_score"] is None
    assert result["rationale"] == "AI analysis completed"


@pytest.mark.parametrize("recommendation", [None, "recycle", ""])
def test_classify_item_rejects_unknown_recommendation(monkeypatch, recommendation):
    _reply_with(monkeypatch, dict(CLASSIFICATION, recommendation=recommendation))
    with pytest.raises(ValueError):
        gpt.classify_item(URLS)


@pytest.mark.parametrize("payload", ["not json", None, "[1, 2]"])
def test_malformed_reply_raises_value_error(monkeypatch, payload):
    _reply_with(monkeypatch, payload)
    with pytest.raises(ValueError):
        gpt.classify_item(URLS)


def test_empty_choices_raise_value_error(monkeypatch):
    monkeypatch.setattr(
        gpt, "_get_client", lambda: _fake_client(lambda **kw: SimpleNamespace(choices=[]))
    )
    with pytest.raises(ValueError):
        gpt.classify_item(URLS)


def test_classify_item_requires_images():
    with pytest.raises(ValueError):
        gpt.classify_item([])


def test_suggest_price_validates_band(monkeypatch):
    _reply_with(
        monkeypatch,
        {"price_low": 50, "price_mid": 70, "price_high": 90, "confidence": 0.8, "rationale": "ok"},
    )
    result = gpt.suggest_price(URLS, title="Desk", category="furniture", condition="good")
    assert (result["price_low"], result["price_mid"], result["price_high"]) == (50.0, 70.0, 90.0)
    assert result["confidence"] == 0.8


@pytest.mark.parametrize(
    "payload",
    [
        {"price_low": 90, "price_mid": 70, "price_high": 50, "confidence": 0.5},
        {"price_low": -1, "price_mid": 70, "price_high": 90, "confidence": 0.5},
        {"price_low": 10, "price_mid": 20, "price_high": 30, "confidence": 1.5},
        {"price_low": "cheap", "price_mid": 20, "price_high": 30, "confidence": 0.5},
    ],
)
def test_suggest_price_rejects_invalid_band(monkeypatch, payload):
    _reply_with(monkeypatch, payload)
    with pytest.raises(ValueError):
        gpt.suggest_price(URLS, title="Desk", category="furniture", condition="good")


def test_write_listings_cleans_hashtags(monkeypatch):
    _reply_with(
        monkeypatch,
        {
            "listings": {
                "en": {"title": "Desk", "body": "Solid oak desk", "hashtags": ["#desk", "desk", "oak"]},
                "ko": {"title": "책상", "body": "원목 책상입니다", "hashtags": ["책상"]},
            }
        },
    )
    result = gpt.write_listings(title="Desk", condition="good", languages=["en", "ko"])
    assert result["en"]["hashtags"] == ["desk", "oak"]
    assert set(result) == {"en", "ko"}


def test_write_listings_missing_language(monkeypatch):
    _reply_with(
        monkeypatch,
        {"listings": {"en": {"title": "Desk", "body": "Solid oak desk", "hashtags": ["desk"]}}},
    )
    with pytest.raises(ValueError):
        gpt.write_listings(title="Desk", condition="good", languages=["en", "ko"])


def test_plan_move_normalises_timeline(monkeypatch):
    _reply_with(
        monkeypatch,
        {
            "timeline": [
                {"week": 1, "startDate": "2026-11-01", "tasks": ["Sort", ""], "priority": "urgent"},
            ],
            "tips": ["Label boxes"],
            "estimated_boxes": "15",
        },
    )
    plan = gpt.plan_move(
        move_date="2026-11-20",
        region="Bangkok",
        days_until_move=19,
        weeks=3,
        inventory={"Books": 2},
    )
    week = plan["timeline"][0]
    assert week["start_date"] == "2026-11-01"
    assert week["tasks"] == ["Sort"]
    assert week["priority"] == "medium"
    assert plan["estimated_boxes"] == 15
    assert plan["action_items"] == []


def test_plan_move_requires_timeline(monkeypatch):
    _reply_with(monkeypatch, {"timeline": []})
    with pytest.raises(ValueError):
        gpt.plan_move(
            move_date="2026-11-20", region="Bangkok", days_until_move=19, weeks=3, inventory={}
        )


def test_fallback_on_timeout(monkeypatch):
    models_called: list[str] = []

    def _fake_request(client, model, payload):
        models_called.append(model)
        if len(models_called) == 1:
            raise TimeoutError("timeout")
        return _fake_openai_response(CLASSIFICATION)

    monkeypatch.setattr(gpt, "_request_completion", _fake_request)
    monkeypatch.setattr(gpt, "_get_client", lambda: None)
    monkeypatch.setattr(gpt, "_MODEL", "gpt-4o")
    monkeypatch.setattr(gpt, "_MODEL_FALLBACK", "gpt-4o-mini")

    assert gpt.classify_item(URLS)["recommendation"] == "sell"
    assert models_called == ["gpt-4o", "gpt-4o-mini"]


def test_timeout_without_fallback(monkeypatch):
    def _fake_request(client, model, payload):
        raise TimeoutError("boom")

    monkeypatch.setattr(gpt, "_request_completion", _fake_request)
    monkeypatch.setattr(gpt, "_get_client", lambda: None)
    monkeypatch.setattr(gpt, "_MODEL_FALLBACK", None)

    with pytest.raises(TimeoutError):
        gpt.classify_item(URLS)


def test_sdk_timeout_maps_to_timeout_error(monkeypatch):
    def _create(**kwargs):
        raise APITimeoutError(httpx.Request("POST", "https://example.com"))

    monkeypatch.setattr(gpt, "_get_client", lambda: _fake_client(_create))
    monkeypatch.setattr(gpt, "_MODEL_FALLBACK", None)
    with pytest.raises(TimeoutError):
        gpt.classify_item(URLS)


def test_sdk_error_maps_to_runtime_error(monkeypatch):
    def _create(**kwargs):
        raise APIConnectionError(request=httpx.Request("POST", "https://example.com"))

    monkeypatch.setattr(gpt, "_get_client", lambda: _fake_client(_create))
    with pytest.raises(RuntimeError):
        gpt.classify_item(URLS)


def test_get_client_requires_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setattr(gpt, "_client", None)
    monkeypatch.setattr(gpt, "_http_client", None)
    with pytest.raises(RuntimeError):
        gpt._get_client()


def test_get_client_recreates_after_close(monkeypatch):
    calls = 0

    class _FakeOpenAI:
        def __init__(self, **kwargs):
            nonlocal calls
            calls += 1
            self.chat = SimpleNamespace(completions=SimpleNamespace(create=lambda **kw: None))

    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.setattr(gpt, "OpenAI", _FakeOpenAI)
    monkeypatch.setattr(gpt, "_client", None)
    monkeypatch.setattr(gpt, "_http_client", None)

    first = gpt._get_client()
    assert gpt._get_client() is first
    gpt._close_client()
    second = gpt._get_client()

    assert calls == 2
    assert first is not second


def test_classify_item_ignores_non_finite_usage_score(monkeypatch):
    _reply_with(
        monkeypatch,
        '{"category": "books", "condition": "fair", "usage_score": Infinity,'
        ' "recommendation": "donate", "rationale": "Read once"}',
    )
    result = gpt.classify_item(URLS)
    assert result["usage_score"] is None
    assert result["recommendation"] == "donate"


@pytest.mark.parametrize("high", ["Infinity", "NaN", "1e400"])
def test_suggest_price_rejects_non_finite_numbers(monkeypatch, high):
    _reply_with(
        monkeypatch,
        '{"price_low": 10, "price_mid": 20, "price_high": %s, "confidence": 0.5}' % high,
    )
    with pytest.raises(ValueError):
        gpt.suggest_price(URLS, title="Desk", category="furniture", condition="good")


def test_plan_move_replaces_unusable_numbers(monkeypatch):
    _reply_with(
        monkeypatch,
        '{"timeline": [{"week": Infinity, "tasks": ["Sort"]}, {"week": 900, "tasks": ["Pack"]}],'
        ' "estimated_boxes": -Infinity}',
    )
    plan = gpt.plan_move(
        move_date="2026-11-20", region="Bangkok", days_until_move=19, weeks=3, inventory={}
    )
    assert [week["week"] for week in plan["timeline"]] == [1, 2]
    assert plan["estimated_boxes"] == 0
