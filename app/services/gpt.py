"""AI Gateway: OpenAI chat completions returning one JSON object per call.

Four request kinds are supported: item classification (vision), price
suggestion (vision), listing copy and a weekly moving plan. Every reply is
parsed defensively; anything unusable raises :class:`ValueError`, timeouts
raise :class:`TimeoutError` and SDK failures raise :class:`RuntimeError`.
"""

from __future__ import annotations

import atexit
import json
import logging
import math
import os
import time
from typing import Any

import httpx
from openai import APITimeoutError, OpenAI, OpenAIError

from app.config import Settings
from app.metrics import (
    ai_failures_total,
    ai_latency_seconds,
    ai_requests_total,
    gpt_timeout_total,
)
from app.models import DECISIONS, LANGUAGES

settings = Settings()
logger = logging.getLogger(__name__)

_MODEL = settings.openai_model
_MODEL_FALLBACK = settings.openai_model_fallback
_TIMEOUT_SECONDS = settings.openai_timeout_s

_client: OpenAI | None = None
_http_client: httpx.Client | None = None


def _get_client() -> OpenAI:
    """Lazily build and cache the OpenAI client."""

    global _client, _http_client
    if _client is None:
        mounts: dict[str, httpx.HTTPTransport] = {}
        http_proxy = os.environ.get("HTTP_PROXY")
        https_proxy = os.environ.get("HTTPS_PROXY")
        if http_proxy:
            mounts["http://"] = httpx.HTTPTransport(proxy=http_proxy)
        if https_proxy:
            mounts["https://"] = httpx.HTTPTransport(proxy=https_proxy)

        _http_client = httpx.Client(mounts=mounts) if mounts else None
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY environment variable is not set")
        _client = OpenAI(api_key=api_key, http_client=_http_client)
    return _client


def _close_client() -> None:
    global _client, _http_client
    if _http_client is not None:
        _http_client.close()
    _http_client = None
    _client = None


atexit.register(_close_client)


def _request_completion(client: Any, model: str, payload: dict[str, Any]) -> Any:
    try:
        return client.chat.completions.create(model=model, **payload)
    except APITimeoutError as exc:
        raise TimeoutError("OpenAI request timed out") from exc
    except OpenAIError as exc:
        raise RuntimeError("OpenAI request failed") from exc


def _complete_json(
    kind: str,
    messages: list[dict[str, Any]],
    *,
    max_tokens: int,
    temperature: float,
) -> dict[str, Any]:
    """Run one JSON-mode completion, falling back to the spare model on timeout."""
    payload = {
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
        "response_format": {"type": "json_object"},
        "timeout": _TIMEOUT_SECONDS,
    }
    ai_requests_total.labels(kind=kind).inc()
    start = time.perf_counter()
    try:
        client = _get_client()
        try:
            response = _request_completion(client, _MODEL, payload)
        except TimeoutError:
            if not _MODEL_FALLBACK or _MODEL_FALLBACK == _MODEL:
                raise
            logger.warning(
                "gpt.%s timeout on %s, retrying with %s",
                kind,
                _MODEL,
                _MODEL_FALLBACK,
                extra={"kind": kind},
            )
            response = _request_completion(client, _MODEL_FALLBACK, payload)
        try:
            raw = response.choices[0].message.content
            data = json.loads(raw or "")
        except (AttributeError, IndexError, TypeError, json.JSONDecodeError) as exc:
            raise ValueError("Malformed GPT response") from exc
        if not isinstance(data, dict):
            raise ValueError("Malformed GPT response")
        return data
    except TimeoutError:
        gpt_timeout_total.inc()
        ai_failures_total.labels(kind=kind).inc()
        raise
    except (ValueError, RuntimeError):
        ai_failures_total.labels(kind=kind).inc()
        raise
    finally:
        ai_latency_seconds.labels(kind=kind).observe(time.perf_counter() - start)


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_float(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValueError(f"not a number: {value!r}") from exc
    # json.loads accepts Infinity, NaN and 1e400
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {value!r}")
    return number


def _to_int(value: Any) -> int | None:
    """Round a reply field to an int; ``None`` when it is missing or unusable."""
    try:
        return int(round(_to_float(value)))
    except ValueError:
        return None


def _image_parts(image_urls: list[str]) -> list[dict[str, Any]]:
    return [
        {"type": "image_url", "image_url": {"url": url, "detail": "low"}}
        for url in image_urls
    ]


_CLASSIFY_PROMPT = """You are an expert item decluttering analyst. Analyze the provided item and return a JSON response with the following structure:

{
  "category": "string (e.g., 'furniture', 'clothing', 'electronics', 'books', 'kitchenware', 'decor', 'sports', 'toys', 'other')",
  "condition": "string (e.g., 'excellent', 'good', 'fair', 'poor')",
  "usage_score": number (0-100, where 100 = actively used daily, 0 = never used),
  "sentiment": "string (e.g., 'attached', 'neutral', 'ready_to_let_go')",
  "recommendation": "string ('keep', 'sell', 'donate', or 'dispose')",
  "rationale": "string (brief explanation for the recommendation)"
}

Consider these factors:
- Condition and marketability
- Practical utility and usage frequency
- Emotional attachment indicators
- Storage space efficiency
- Market demand and resale value

Be practical and honest in your assessment."""


def classify_item(
    image_urls: list[str],
    *,
    title: str | None = None,
    notes: str | None = None,
    scenario: str | None = None,
    region: str | None = None,
    locale: str = "en",
) -> dict[str, Any]:
    """Classify an item from its photos and return normalised fields."""
    if not image_urls:
        raise ValueError("At least one image is required")
    lines = [f"Item: {title or 'Untitled item'}"]
    if notes:
        lines.append(f"Notes: {notes}")
    if scenario:
        lines.append(f"Situation: {scenario}")
    if region:
        lines.append(f"Region: {region}")
    lines.append(f"Answer in locale: {locale}")
    lines.append(
        "Please analyze this item and provide recommendations. "
        f"I've included {len(image_urls)} photo(s) for reference."
    )
    messages = [
        {"role": "system", "content": _CLASSIFY_PROMPT},
        {
            "role": "user",
            "content": [{"type": "text", "text": "\n".join(lines)}, *_image_parts(image_urls)],
        },
    ]
    data = _complete_json("classify", messages, max_tokens=500, temperature=0.7)

    recommendation = str(data.get("recommendation") or "").strip().lower()
    if recommendation not in DECISIONS:
        raise ValueError(f"Unexpected recommendation: {recommendation or 'missing'}")

    usage_score = _to_int(data.get("usage_score"))
    if usage_score is not None:
        usage_score = max(0, min(100, usage_score))

    return {
        "category": _clean_text(data.get("category")) or "Other",
        "condition": _clean_text(data.get("condition")) or "Good",
        "usage_score": usage_score,
        "sentiment": _clean_text(data.get("sentiment")) or "neutral",
        "recommendation": recommendation,
        "rationale": _clean_text(data.get("rationale")) or "AI analysis completed",
    }


_REGION_CONTEXT = {
    "Thailand": "Thai market, convert to local THB mentally",
    "Bangkok": "Bangkok market, convert to local THB mentally",
    "Korea": "Korean market, convert to local KRW mentally",
    "Seoul": "Seoul market, convert to local KRW mentally",
}
_DEFAULT_REGION = "Thailand"


def suggest_price(
    image_urls: list[str],
    *,
    title: str,
    category: str,
    condition: str,
    region: str | None = None,
    scenario: str | None = None,
) -> dict[str, Any]:
    """Return a USD price band (low/mid/high) with a confidence in 0..1."""
    if not image_urls:
        raise ValueError("At least one photo is required")
    region_key = region if region in _REGION_CONTEXT else _DEFAULT_REGION
    system = (
        "You are an expert in secondhand item pricing. Analyze the provided item "
        "and return a JSON response with price suggestions in USD:\n\n"
        "{\n"
        '  "price_low": number (conservative/quick sale price),\n'
        '  "price_mid": number (fair market value),\n'
        '  "price_high": number (optimistic/premium price),\n'
        '  "confidence": number (0.0-1.0, confidence in pricing accuracy),\n'
        '  "rationale": "string (brief explanation of pricing factors)",\n'
        '  "market_notes": "string (additional market insights)"\n'
        "}\n\n"
        "Consider condition and age, category demand, regional differences, "
        "seasonality, brand value and comparable marketplace listings. "
        f"Be realistic and consider local secondhand market conditions. {_REGION_CONTEXT[region_key]}."
    )
    lines = [
        f"Item: {title}",
        f"Category: {category}",
        f"Condition: {condition}",
        f"Region: {region or region_key}",
    ]
    if scenario:
        lines.append(f"Situation: {scenario}")
    lines.append(
        "Please analyze this item and provide price suggestions for selling on secondhand "
        f"marketplaces. I've included {len(image_urls)} photo(s) for reference."
    )
    messages = [
        {"role": "system", "content": system},
        {
            "role": "user",
            "content": [{"type": "text", "text": "\n".join(lines)}, *_image_parts(image_urls)],
        },
    ]
    data = _complete_json("price", messages, max_tokens=400, temperature=0.3)

    low = _to_float(data.get("price_low"))
    mid = _to_float(data.get("price_mid"))
    high = _to_float(data.get("price_high"))
    confidence = _to_float(data.get("confidence"))
    if min(low, mid, high) < 0:
        raise ValueError("Negative price")
    if not low <= mid <= high:
        raise ValueError("Invalid price range order")
    if not 0.0 <= confidence <= 1.0:
        raise ValueError("Confidence out of range")
    return {
        "price_low": low,
        "price_mid": mid,
        "price_high": high,
        "confidence": confidence,
        "rationale": _clean_text(data.get("rationale")),
        "market_notes": _clean_text(data.get("market_notes")),
    }


_LANGUAGE_NAMES = {"en": "English", "ko": "Korean"}


def _clean_hashtags(value: Any) -> list[str]:
    if not isinstance(value, list):
        raise ValueError("hashtags must be a list")
    tags = []
    for raw in value:
        tag = str(raw or "").strip().lstrip("#").strip()
        if tag and tag not in tags:
            tags.append(tag)
    if not tags:
        raise ValueError("hashtags are empty")
    return tags[:10]


def write_listings(
    *,
    title: str,
    condition: str,
    features: list[str] | None = None,
    languages: list[str] | None = None,
    tone: str = "friendly",
) -> dict[str, dict[str, Any]]:
    """Generate marketplace copy ``{lang: {title, body, hashtags}}``."""
    languages = languages or ["en"]
    unknown = [lang for lang in languages if lang not in LANGUAGES]
    if unknown:
        raise ValueError(f"Unsupported language: {', '.join(unknown)}")
    language_names = " and ".join(_LANGUAGE_NAMES[lang] for lang in languages)
    system = (
        "You are an expert marketplace listing writer. Create compelling, honest "
        "listings for secondhand items.\n\n"
        "Return JSON in this format:\n"
        "{\n"
        '  "listings": {\n'
        '    "<language code>": {\n'
        '      "title": "string (concise, searchable title)",\n'
        '      "body": "string (detailed description)",\n'
        '      "hashtags": ["string"] (3-5 relevant hashtags without # symbol)\n'
        "    }\n"
        "  }\n"
        "}\n\n"
        "Guidelines:\n"
        "- Be honest about condition and flaws\n"
        "- Highlight key features and benefits\n"
        "- Include practical details (size, material, usage)\n"
        "- Use marketplace-friendly language\n"
        f"- Tone: {tone}\n"
        "- Avoid exaggerated claims\n"
        "- Make titles searchable and clear"
    )
    lines = [
        "Create marketplace listings for this item:",
        "",
        f"Title: {title}",
        f"Condition: {condition}",
    ]
    if features:
        lines.append(f"Features: {', '.join(features)}")
    lines.append("")
    lines.append(f"Generate listings in: {language_names} (codes: {', '.join(languages)})")
    messages = [
        {"role": "system", "content": system},
        {"role": "user", "content": "\n".join(lines)},
    ]
    data = _complete_json("listing", messages, max_tokens=800, temperature=0.7)

    listings = data.get("listings")
    if not isinstance(listings, dict):
        raise ValueError("listings object missing")
    result: dict[str, dict[str, Any]] = {}
    for lang in languages:
        entry = listings.get(lang)
        if not isinstance(entry, dict):
            raise ValueError(f"Missing listing for language: {lang}")
        entry_title = _clean_text(entry.get("title"))
        body = _clean_text(entry.get("body"))
        if not entry_title or not body:
            raise ValueError(f"Incomplete listing for language: {lang}")
        result[lang] = {
            "title": entry_title[:200],
            "body": body,
            "hashtags": _clean_hashtags(entry.get("hashtags")),
        }
    return result


_MOVING_PROMPT = """You are an expert moving coordinator. Create a detailed moving plan based on the user's inventory and timeline.

Return a JSON response with this structure:
{
  "timeline": [
    {
      "week": 1,
      "start_date": "YYYY-MM-DD",
      "end_date": "YYYY-MM-DD",
      "tasks": ["task1", "task2"],
      "priority": "high" | "medium" | "low"
    }
  ],
  "action_items": ["urgent action 1"],
  "tips": ["helpful tip 1"],
  "estimated_boxes": number,
  "special_considerations": ["consideration 1"]
}

Create a realistic week-by-week schedule leading up to the move date.
Focus on practical tasks like sorting, packing, selling unwanted items, arranging movers, etc.
The plan should be specific to the categories of items they have."""


def _clean_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item or "").strip()]


def plan_move(
    *,
    move_date: str,
    region: str,
    days_until_move: int,
    weeks: int,
    inventory: dict[str, int],
    trade_method: str | None = None,
) -> dict[str, Any]:
    """Build a week-by-week moving plan."""
    inventory_desc = (
        ", ".join(f"{category}: {count} item(s)" for category, count in sorted(inventory.items()))
        or "no items catalogued yet"
    )
    lines = [
        "Create a moving plan for:",
        f"- Move Date: {move_date}",
        f"- Destination: {region}",
        f"- Days until move: {days_until_move}",
        f"- Weeks available: {weeks}",
        f"- Inventory: {inventory_desc}",
    ]
    if trade_method:
        lines.append(f"- Preferred trade method for sold items: {trade_method}")
    lines.append(
        f"\nPlease create a practical {weeks}-week moving plan with specific tasks for each week."
    )
    messages = [
        {"role": "system", "content": _MOVING_PROMPT},
        {"role": "user", "content": "\n".join(lines)},
    ]
    data = _complete_json("moving_plan", messages, max_tokens=1000, temperature=0.7)

    raw_timeline = data.get("timeline")
    if not isinstance(raw_timeline, list) or not raw_timeline:
        raise ValueError("timeline missing")
    timeline = []
    for index, week in enumerate(raw_timeline, start=1):
        if not isinstance(week, dict):
            raise ValueError("timeline entry is not an object")
        week_no = _to_int(week.get("week"))
        if week_no is None or not 1 <= week_no <= max(weeks, len(raw_timeline)):
            week_no = index
        priority = str(week.get("priority") or "medium").lower()
        if priority not in {"high", "medium", "low"}:
            priority = "medium"
        timeline.append(
            {
                "week": week_no,
                "start_date": _clean_text(week.get("start_date") or week.get("startDate")),
                "end_date": _clean_text(week.get("end_date") or week.get("endDate")),
                "tasks": _clean_list(week.get("tasks")),
                "priority": priority,
            }
        )
    boxes = max(0, _to_int(data.get("estimated_boxes")) or 0)
    return {
        "timeline": timeline,
        "action_items": _clean_list(data.get("action_items")),
        "tips": _clean_list(data.get("tips")),
        "estimated_boxes": boxes,
        "special_considerations": _clean_list(data.get("special_considerations")),
    }


__all__ = ["classify_item", "suggest_price", "write_listings", "plan_move"]
